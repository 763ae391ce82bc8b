from __future__ import annotations
import json
import logging
from dataclasses import replace

import streamlit as st

from pitch432.audio import decode_audio
from pitch432.config import PRESETS, RetuneConfig, VERIFY_ANALYSER
from pitch432.errors import Pitch432Error
from pitch432.grids import available_systems
from pitch432.peaks import resolves_semitones
from pitch432.resample import retune_with_report, tuned_filename
from pitch432.segments import analyze_segments, reduce_verdicts
from pitch432.tuning import ExactMatch, can_retune, describe_verdict
from pitch432.wav import encode, encode_to_base64

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

# ─────────────────────────── Streamlit UI ───────────────────────────
st.set_page_config(page_title="432 Hz Tuning Checker", layout="centered")
st.title("🎼 432 Hz Tuning Checker")

with st.sidebar:
    st.header("Analysis")
    preset_name = st.radio("Mode", list(PRESETS), index=0,
                           help="Detailed: 80–5000 Hz, 1% direct match, loudness weighting • "
                                "Coarse: 20–10000 Hz, ±3 Hz direct match, strongest-peak weighting")
    preset = PRESETS[preset_name]
    analyser = replace(
        preset.analyser,
        threshold_db=float(st.slider("Peak threshold (dB)", -90, -40, int(preset.analyser.threshold_db), step=1)),
        smoothing=float(st.slider("Frame smoothing (0..1)", 0.0, 0.9, preset.analyser.smoothing, step=0.05)),
        fft_size=int(st.selectbox("FFT size", [8192, 16384, 32768, 65536], index=2)),
    )
    systems = list(available_systems())
    classifier = replace(
        preset.classifier,
        grid_system=st.selectbox("Note grid", systems, index=systems.index(preset.classifier.grid_system),
                                 help="Scale both references are scored against"),
        margin=float(st.number_input("Decision margin (×)", 1.0, 2.0, preset.classifier.margin, step=0.05)),
    )
    analysis = replace(preset, analyser=analyser, classifier=classifier)

    st.header("Conversion")
    interpolation = st.radio("Interpolation", ["linear", "nearest"], index=0)
    chunk_seconds = st.number_input("Chunk length (s)", 2.0, 60.0, 10.0, step=1.0)

retune_cfg = RetuneConfig(
    analysis=analysis,
    verify_analyser=replace(VERIFY_ANALYSER, fft_size=analyser.fft_size),
    interpolation=interpolation,
    chunk_seconds=float(chunk_seconds),
)

uploaded = st.file_uploader("Upload audio (WAV/FLAC/OGG/MP3)", type=["wav", "flac", "ogg", "mp3"])
if uploaded is None:
    st.info("Upload audio to check whether it is tuned to 440 Hz or 432 Hz.")
    st.stop()

state = st.session_state
file_key = (uploaded.name, uploaded.size)
if state.get("file_key") != file_key:
    # new file: forget results that belonged to the previous one
    state.file_key = file_key
    state.pop("verdicts", None)
    state.pop("tuned", None)

try:
    buffer = decode_audio(uploaded.getvalue())
except Pitch432Error as e:
    st.error(f"Decode failed: {e}")
    st.stop()

st.caption(f"Selected file: {uploaded.name} — {buffer.duration:.2f}s, "
           f"{buffer.sample_rate} Hz, {buffer.channel_count} channel(s)")
if not resolves_semitones(buffer.sample_rate, analyser.fft_size, analyser.band_low_hz):
    st.warning(f"A {analyser.fft_size}-point FFT cannot separate semitones near "
               f"{analyser.band_low_hz:.0f} Hz at {buffer.sample_rate} Hz; pick a larger FFT size.")

if st.button("Check frequency", type="primary"):
    with st.spinner("Analysing…"):
        try:
            state.verdicts = analyze_segments(buffer, analysis)
        except Pitch432Error as e:
            st.error(f"Analysis failed: {e}")
            st.stop()

verdict = None
if "verdicts" in state:
    verdict = reduce_verdicts(state.verdicts)
    st.subheader(describe_verdict(verdict))
    st.markdown("Per segment: " + ", ".join(
        f"**{v.numeric:g} Hz**" if isinstance(v, ExactMatch) else f"{v.numeric:g}"
        for v in state.verdicts))

tune_disabled = verdict is not None and not can_retune(verdict, retune_cfg.target_hz)
if st.button("Tune to 432 Hz", disabled=tune_disabled):
    bar = st.progress(0.0, text="Tuning…")
    try:
        result = retune_with_report(
            buffer, config=retune_cfg,
            progress=lambda done, total: bar.progress(done / total, text=f"Chunk {done}/{total}"),
        )
        wav_bytes = encode(result.buffer)
        state.tuned = (result, wav_bytes, encode_to_base64(result.buffer))
    except Pitch432Error as e:
        st.error(f"Tuning failed: {e}")
    finally:
        bar.empty()

if "tuned" in state:
    result, wav_bytes, wav_b64 = state.tuned
    if result.resampled:
        msg = f"Audio has been tuned to 432Hz (ratio {result.ratio:.6f})"
        if result.verified_hz is not None:
            msg += f" — strongest peak now {result.verified_hz:.2f} Hz"
        st.success(msg)
    else:
        st.success("Audio already appears to be at 432Hz; no changes made.")
    st.components.v1.html(
        f'<audio controls preload="auto" style="width:100%" src="data:audio/wav;base64,{wav_b64}"></audio>',
        height=60,
    )
    st.download_button("⬇️ Download", data=wav_bytes,
                       file_name=tuned_filename(uploaded.name, retune_cfg.target_hz),
                       mime="audio/wav")

# Export session JSON
if verdict is not None:
    session = {
        "file": uploaded.name,
        "verdict": verdict.numeric,
        "segments": [v.numeric for v in state.verdicts],
        "settings": retune_cfg.to_dict(),
    }
    if "tuned" in state:
        tuned = state.tuned[0]
        session["retune"] = {"ratio": tuned.ratio, "resampled": tuned.resampled,
                             "verified_hz": tuned.verified_hz, "source": tuned.source.numeric}
    st.download_button("⬇️ Export session JSON", file_name="tuning_session.json",
                       mime="application/json", data=json.dumps(session, indent=2))
