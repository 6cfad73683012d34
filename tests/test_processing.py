"""Frame volume, resampling and WAV packaging for captured audio."""
import asyncio
import io
import math
import wave

import numpy as np

from umar.infrastructure.audio.processing import (
    frame_rms, pcm_to_float, float_to_pcm16, encode_wav, prepare_utterance,
    MicrophoneSource, StreamResampler
)

SR = 16000


def pcm16_values(values) -> bytes:
    return np.asarray(values, dtype=np.int16).tobytes()


def test_frame_rms_silence_is_zero():
    assert frame_rms(pcm16_values([0] * 480)) == 0.0
    assert frame_rms(b"") == 0.0


def test_frame_rms_normalized_by_bit_depth():
    full_scale = frame_rms(pcm16_values([-32768] * 480))
    assert math.isclose(full_scale, 1.0, abs_tol=1e-9)

    half = frame_rms(pcm16_values([16384, -16384] * 240))
    assert math.isclose(half, 0.5, abs_tol=1e-9)


def test_frame_rms_8bit_is_centred_on_128():
    silence = np.full(480, 128, dtype=np.uint8).tobytes()
    assert frame_rms(silence, sample_width=1) == 0.0
    loud = np.full(480, 0, dtype=np.uint8).tobytes()
    assert math.isclose(frame_rms(loud, sample_width=1), 1.0, abs_tol=1e-9)


def test_pcm_float_conversion_scaling():
    f = pcm_to_float(pcm16_values([-32768, 0, 32767]))
    assert f.dtype == np.float32
    assert math.isclose(float(f[0]), -1.0, abs_tol=1e-6)
    assert math.isclose(float(f[2]), 32767.0 / 32768.0, abs_tol=1e-6)
    back = np.frombuffer(float_to_pcm16(np.array([2.0, -2.0], dtype=np.float32)), dtype=np.int16)
    assert list(back) == [32767, -32768]


def sine(freq, sr, seconds, amplitude=0.3):
    t = np.arange(int(round(sr * seconds))) / sr
    return (amplitude * np.sin(2 * np.pi * freq * t)).astype(np.float32)


def test_stream_resampler_frame_lengths():
    x = np.zeros(48000 * 30 // 1000, dtype=np.float32)  # one 30 ms frame
    assert StreamResampler(48000, 16000).process(x).size == 480
    assert StreamResampler(16000, 16000).process(x).size == x.size
    odd = StreamResampler(44100, 16000)
    assert sum(odd.process(np.zeros(1323)).size for _ in range(10)) == 4800


def test_stream_resampler_blocks_match_one_piece():
    x = sine(440, 44100, 0.3)
    whole = StreamResampler(44100, 16000).process(x)
    chunked = StreamResampler(44100, 16000)
    pieces = np.concatenate([chunked.process(x[i:i + 1323]) for i in range(0, x.size, 1323)])
    assert pieces.size == whole.size
    assert np.allclose(pieces, whole, atol=1e-6)


def test_microphone_frames_join_without_clicks():
    async def scenario():
        source = MicrophoneSource(num_channels=1, sr_capture=48000, sr_target=SR)
        source._queue = asyncio.Queue()
        source._closed = False

        x = sine(440, 48000, 0.9)
        for i in range(0, x.size, 1440):
            source._enqueue(float_to_pcm16(x[i:i + 1440]))
        frames = []
        while not source._queue.empty():
            frames.append(source._queue.get_nowait())
        return frames

    frames = asyncio.run(scenario())
    assert len(frames) == 30
    assert all(len(f) == 480 * 2 for f in frames)
    y = np.frombuffer(b"".join(frames), dtype=np.int16) / 32768.0

    # Output n sits at input sample 3n, behind the filter delay of 29.5 samples
    n = np.arange(y.size)
    expected = 0.3 * np.sin(2 * np.pi * 440 * (3 * n - 29.5) / 48000)
    assert np.max(np.abs(y[30:] - expected[30:])) < 0.005


def test_encode_wav_header():
    wav = encode_wav(pcm16_values([0, 1, 2, 3]), SR)
    assert wav[:4] == b"RIFF"
    with wave.open(io.BytesIO(wav), "rb") as wf:
        assert wf.getframerate() == SR
        assert wf.getnchannels() == 1
        assert wf.getsampwidth() == 2
        assert wf.getnframes() == 4


def test_prepare_utterance_concatenates_chunks():
    t = np.arange(480) / SR
    chunk = float_to_pcm16(0.01 * np.sin(2 * np.pi * 440 * t).astype(np.float32))
    wav = prepare_utterance([chunk, chunk, chunk], SR, target_rms=0.06)
    with wave.open(io.BytesIO(wav), "rb") as wf:
        assert wf.getnframes() == 480 * 3
        samples = np.frombuffer(wf.readframes(wf.getnframes()), dtype=np.int16) / 32768.0
    # Quiet speech is brought up towards the target level
    assert float(np.sqrt(np.mean(samples ** 2))) > 0.03


def test_prepare_utterance_empty():
    wav = prepare_utterance([], SR)
    with wave.open(io.BytesIO(wav), "rb") as wf:
        assert wf.getnframes() == 0
