#!/usr/bin/env python
"""
Decoding of source files and serialization of rendered buffers to WAV.
"""
import io
import logging
import os
import wave
from pathlib import Path
from typing import Union

import librosa
import numpy as np
import soundfile as sf

from loop_studio.errors import DecodeError
from loop_studio.models import SampleBuffer

logger = logging.getLogger(__name__)

WAV_HEADER_BYTES = 44


def decode(raw_bytes: bytes) -> SampleBuffer:
    """
    Decode an in-memory audio file at its native sample rate.

    Raises:
        DecodeError: If the bytes are empty, unreadable or contain no samples
    """
    if not raw_bytes:
        raise DecodeError("No audio data")
    try:
        data, sr = sf.read(io.BytesIO(raw_bytes), dtype="float32", always_2d=True)
    except Exception as e:
        raise DecodeError(f"Error decoding audio: {e}") from e
    return _to_buffer(data.T, sr)


def load_file(path: Union[str, Path]) -> SampleBuffer:
    """
    Load an audio file from disk, keeping its sample rate and channels.

    Raises:
        DecodeError: If the file is missing or cannot be decoded
    """
    if not os.path.exists(path):
        raise DecodeError(f"Audio file not found: {path}")
    try:
        y, sr = librosa.load(str(path), sr=None, mono=False)
    except Exception as e:
        raise DecodeError(f"Error loading audio file: {e}") from e
    buffer = _to_buffer(y, sr)
    logger.info(f"Loaded {path}: {buffer.duration:.2f}s at {sr} Hz")
    return buffer


def _to_buffer(samples: np.ndarray, sr: int) -> SampleBuffer:
    if samples.size == 0:
        raise DecodeError("Decoded audio contains no samples")
    return SampleBuffer(int(sr), samples)


def to_pcm16(samples: np.ndarray) -> np.ndarray:
    """
    Convert float samples to int16: clamp to [-1, 1], then scale negatives by
    32768 and positives by 32767.
    """
    clipped = np.clip(np.asarray(samples, dtype=np.float64), -1.0, 1.0)
    scaled = np.where(clipped < 0, clipped * 32768.0, clipped * 32767.0)
    return np.round(scaled).astype(np.int16)


def encode_wav(buffer: SampleBuffer) -> bytes:
    """Serialize to a 16-bit PCM WAV: 44-byte header plus interleaved frames."""
    pcm = to_pcm16(buffer.samples)
    out = io.BytesIO()
    with wave.open(out, "wb") as wf:
        wf.setnchannels(buffer.channel_count)
        wf.setsampwidth(2)
        wf.setframerate(buffer.sample_rate)
        wf.writeframes(pcm.T.astype("<i2").tobytes())
    return out.getvalue()


def save_wav(buffer: SampleBuffer, path: Union[str, Path]) -> str:
    """
    Write the buffer as a 16-bit WAV file.

    Returns:
        The path written, as a string
    """
    path = Path(path)
    path.write_bytes(encode_wav(buffer))
    logger.info(f"Saved {buffer.duration:.2f}s of audio to: {path}")
    return str(path)
