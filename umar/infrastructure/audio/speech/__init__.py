"""Speech-to-text and text-to-speech modules."""

from .stt import GoogleTranscriber, GoogleStreamingTranscriber, TranscriptToken
from .tts import GoogleSynthesizer, AudioPlayer

__all__ = [
    "GoogleTranscriber",
    "GoogleStreamingTranscriber",
    "TranscriptToken",
    "GoogleSynthesizer",
    "AudioPlayer",
]
