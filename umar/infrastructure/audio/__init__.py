"""
Audio capture, signal processing and speech services for UMAR.

This module contains all audio-related functionality organized into clear submodules:
- processing: Microphone capture, frame RMS, resampling and WAV encoding
- speech: Google speech-to-text (batch and streaming) and text-to-speech
"""

from .processing import AudioSource, MicrophoneSource, frame_rms, prepare_utterance

__all__ = [
    "AudioSource",
    "MicrophoneSource",
    "frame_rms",
    "prepare_utterance",
]
