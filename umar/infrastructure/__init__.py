"""Infrastructure components for UMAR.

This module contains low-level technical components: audio capture and
signal processing, the LLM client, and session data. Speech providers live
in infrastructure.audio.speech and are imported on demand.
"""

# Audio infrastructure
from .audio import AudioSource, MicrophoneSource, frame_rms, prepare_utterance

# LLM infrastructure
from .llm import VertexRestClient

__all__ = [
    # Audio processing
    "AudioSource", "MicrophoneSource", "frame_rms", "prepare_utterance",

    # LLM client
    "VertexRestClient"
]
