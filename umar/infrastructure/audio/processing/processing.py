"""
Basic audio processing functions including format conversions and normalization.
"""
import io
import wave
from math import gcd

import numpy as np
from scipy.signal import firwin

from ....config import TARGET_RMS

# Full-scale divisor per sample width in bytes
_FULL_SCALE = {1: 128.0, 2: 32768.0, 4: 2147483648.0}
_DTYPES = {1: np.uint8, 2: np.int16, 4: np.int32}


def pcm_to_float(pcm: bytes, sample_width: int = 2) -> np.ndarray:
    """Convert little-endian PCM bytes to float32 samples in [-1, 1]."""
    if sample_width not in _DTYPES:
        raise ValueError(f"Unsupported sample width: {sample_width}")
    samples = np.frombuffer(pcm, dtype=_DTYPES[sample_width]).astype(np.float64)
    if sample_width == 1:
        # 8-bit PCM is unsigned with silence at 128
        samples = samples - 128.0
    return (samples / _FULL_SCALE[sample_width]).astype(np.float32)


def float_to_pcm16(audio: np.ndarray) -> bytes:
    """Convert float samples in [-1, 1] to PCM16 bytes."""
    return np.clip(audio * 32767, -32768, 32767).astype(np.int16).tobytes()


def frame_rms(pcm: bytes, sample_width: int = 2) -> float:
    """Root-mean-square volume of one frame, normalized to [0, 1] by bit depth."""
    if not pcm:
        return 0.0
    samples = np.frombuffer(pcm, dtype=_DTYPES[sample_width]).astype(np.float64)
    if sample_width == 1:
        samples = samples - 128.0
    samples = samples / _FULL_SCALE[sample_width]
    return float(np.sqrt(np.mean(samples ** 2)))


def stereo_to_mono(x: np.ndarray) -> np.ndarray:
    """Convert stereo audio to mono by averaging channels."""
    return np.mean(x, axis=1)


def remove_dc(x: np.ndarray) -> np.ndarray:
    """Remove DC offset from audio signal."""
    return x - np.mean(x)


class StreamResampler:
    """
    Polyphase resampler for audio that arrives in consecutive blocks.

    The anti-aliasing filter state and the output phase carry over from one
    block to the next, so resampling a signal block by block gives the same
    samples as resampling it in one piece.
    """

    def __init__(self, sr_in: int, sr_out: int, taps_per_phase: int = 20):
        g = gcd(sr_in, sr_out)
        self.up = sr_out // g
        self.down = sr_in // g
        ratio = max(self.up, self.down)
        per_phase = taps_per_phase * -(-ratio // self.up)
        taps = firwin(per_phase * self.up, 1.0 / ratio, window=("kaiser", 5.0)) * self.up
        # bank[p, k] is the tap applied to input sample (i - k) at filter phase p
        self._bank = taps.reshape(per_phase, self.up).T
        self._history = np.zeros(per_phase - 1, dtype=np.float64)
        self._consumed = 0
        self._produced = 0

    def reset(self) -> None:
        self._history[:] = 0.0
        self._consumed = 0
        self._produced = 0

    def process(self, block: np.ndarray) -> np.ndarray:
        block = np.asarray(block, dtype=np.float64)
        if self.up == self.down:
            return block.astype(np.float32)

        buf = np.concatenate([self._history, block])
        self._consumed += block.size
        first = self._consumed - buf.size  # input index of buf[0]

        # Output m sits at input position m * down / up
        end = -(-self._consumed * self.up // self.down)
        positions = np.arange(self._produced, end) * self.down
        phases = positions % self.up
        newest = positions // self.up - first
        idx = newest[:, None] - np.arange(self._bank.shape[1])[None, :]
        out = np.sum(self._bank[phases] * buf[idx], axis=1)

        self._produced = end
        if self._history.size:
            self._history = buf[-self._history.size:]
        return out.astype(np.float32)


def normalize_audio(audio: np.ndarray, target_rms: float = TARGET_RMS) -> np.ndarray:
    """Normalize audio to target RMS level."""
    rms = float(np.sqrt(np.mean(audio**2)) + 1e-9)
    gain = min(20.0, target_rms / rms) if rms > 0 else 1.0
    return audio * gain


def encode_wav(pcm16: bytes, sr: int, channels: int = 1) -> bytes:
    """Wrap PCM16 audio data in a WAV container."""
    buf = io.BytesIO()
    with wave.open(buf, "wb") as wf:
        wf.setnchannels(channels)
        wf.setsampwidth(2)
        wf.setframerate(sr)
        wf.writeframes(pcm16)
    return buf.getvalue()


def prepare_utterance(chunks, sr: int, target_rms: float = TARGET_RMS) -> bytes:
    """
    Concatenate captured PCM16 chunks into one WAV payload for transcription.
    DC offset is removed and the level normalized before encoding.
    """
    pcm = b"".join(chunks)
    if not pcm:
        return encode_wav(b"", sr)
    audio = remove_dc(pcm_to_float(pcm))
    audio = normalize_audio(audio, target_rms)
    return encode_wav(float_to_pcm16(audio), sr)
