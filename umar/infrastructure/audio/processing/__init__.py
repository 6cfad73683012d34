"""Audio processing and capture modules."""

# Import processing functions immediately (numpy/scipy only)
from .processing import (
    frame_rms,
    pcm_to_float,
    float_to_pcm16,
    stereo_to_mono,
    remove_dc,
    StreamResampler,
    normalize_audio,
    encode_wav,
    prepare_utterance,
)
from .capture import AudioSource, MicrophoneSource

__all__ = [
    "AudioSource",
    "MicrophoneSource",
    "frame_rms",
    "pcm_to_float",
    "float_to_pcm16",
    "stereo_to_mono",
    "remove_dc",
    "StreamResampler",
    "normalize_audio",
    "encode_wav",
    "prepare_utterance",
]
