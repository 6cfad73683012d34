"""
UMAR Configuration System
=========================

This file contains ALL configuration for the UMAR roleplay trainer.
- User settings at the top (things users might want to change)
- Internal constants at the bottom (technical defaults)
"""
import os
from dataclasses import dataclass
from typing import Optional


# =============================================================================
# USER SETTINGS - Edit these to customize the training session
# =============================================================================

# REQUIRED: Set your Google Cloud project
GOOGLE_CLOUD_PROJECT = "your-project-id"  # Change this!
GOOGLE_APPLICATION_CREDENTIALS = None  # Optional: path to credentials JSON

# Session settings
WORKDIR = "./_sessions"
SCENARIO_ID = None  # None picks a random scenario each session

# Detection strategy: "vad" (local energy threshold) or "streaming" (provider endpointing)
DETECTION_STRATEGY = "vad"

# Voice activity threshold on normalized RMS (0..1).
# This is the single most important tunable: raise it in noisy rooms or with
# hot microphone gain, lower it if quiet speakers are never picked up.
VAD_THRESHOLD = 0.01

# Seconds of silence (VAD) or of no new final tokens (streaming) that end an utterance.
# Found empirically; depends on the acoustic environment.
VAD_SILENCE_DURATION = 1.5
ENDPOINT_SILENCE_DURATION = 1.5

# Speech settings
ENABLE_TTS = True
LANGUAGE_CODE = "ur-PK"
TTS_LANGUAGE_CODE = "ur-IN"
TTS_VOICE = "ur-IN-Wavenet-B"
TTS_SPEAKING_RATE = 1.0

# Roleplay
END_CALL_GRACE_SECONDS = 2.0
MAX_ROLEPLAY_EXCHANGES = 20

# Logging
LOG_FILE = "./_sessions/umar.log"
LOG_LEVEL = "INFO"


# =============================================================================
# INTERNAL CONSTANTS - Don't change these unless you know what you're doing
# =============================================================================

# Audio capture
SAMPLE_RATE_CAPTURE = 48000
SAMPLE_RATE_TARGET = 16000
CHANNELS = 1
FRAME_MS = 30
TARGET_RMS = 0.06
CAPTURE_QUEUE_FRAMES = 200

# Streaming detection
STREAM_RESTART_BACKOFF = 1.0
MAX_STREAM_RESTARTS = 5

# Playback
PLAYER_COMMANDS = (("afplay",), ("aplay", "-q"))

# LLM
VERTEX_LOCATION = "us-central1"
MODEL_NAME = "gemini-2.5-flash-lite"
LLM_TIMEOUT = 60
MAX_OUTPUT_TOKENS = 256
DIALOGUE_TEMPERATURE = 0.9
ROMANIZE_TEMPERATURE = 0.3

# End-of-call marker appended by the dialogue model
END_CALL_MARKER = "[END_CALL]"


# =============================================================================
# MAIN CONFIG OBJECT
# =============================================================================

@dataclass
class Config:
    """Main configuration object."""
    google_cloud_project: str
    google_application_credentials: Optional[str] = None
    workdir: str = WORKDIR
    scenario_id: Optional[str] = SCENARIO_ID
    detection_strategy: str = DETECTION_STRATEGY
    vad_threshold: float = VAD_THRESHOLD
    vad_silence_duration: float = VAD_SILENCE_DURATION
    endpoint_silence_duration: float = ENDPOINT_SILENCE_DURATION
    enable_tts: bool = ENABLE_TTS
    language_code: str = LANGUAGE_CODE
    tts_language_code: str = TTS_LANGUAGE_CODE
    tts_voice: str = TTS_VOICE
    tts_speaking_rate: float = TTS_SPEAKING_RATE
    end_call_grace_seconds: float = END_CALL_GRACE_SECONDS
    max_roleplay_exchanges: int = MAX_ROLEPLAY_EXCHANGES
    vertex_location: str = VERTEX_LOCATION
    model_name: str = MODEL_NAME
    log_file: str = LOG_FILE
    log_level: str = LOG_LEVEL


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}")


def get_config() -> Config:
    """
    Load configuration; environment variables override the settings above.

    Raises:
        ValueError: If the project is not set or an override is malformed
    """
    project = os.getenv("GOOGLE_CLOUD_PROJECT") or GOOGLE_CLOUD_PROJECT
    credentials = os.getenv("GOOGLE_APPLICATION_CREDENTIALS") or GOOGLE_APPLICATION_CREDENTIALS

    if project == "your-project-id":
        raise ValueError("Please set GOOGLE_CLOUD_PROJECT in config.py or as environment variable")

    return Config(
        google_cloud_project=project,
        google_application_credentials=credentials,
        workdir=os.getenv("UMAR_WORKDIR") or WORKDIR,
        scenario_id=os.getenv("UMAR_SCENARIO") or SCENARIO_ID,
        detection_strategy=os.getenv("UMAR_DETECTION_STRATEGY") or DETECTION_STRATEGY,
        vad_threshold=_env_float("UMAR_VAD_THRESHOLD", VAD_THRESHOLD),
        vad_silence_duration=_env_float("UMAR_SILENCE_DURATION", VAD_SILENCE_DURATION),
        endpoint_silence_duration=_env_float("UMAR_SILENCE_DURATION", ENDPOINT_SILENCE_DURATION),
        log_level=os.getenv("UMAR_LOG_LEVEL") or LOG_LEVEL,
    )


# Constant names used as constructor defaults
DEFAULT_WORKDIR = WORKDIR
DEFAULT_DETECTION_STRATEGY = DETECTION_STRATEGY
DEFAULT_VAD_THRESHOLD = VAD_THRESHOLD
DEFAULT_VAD_SILENCE_DURATION = VAD_SILENCE_DURATION
DEFAULT_ENDPOINT_SILENCE_DURATION = ENDPOINT_SILENCE_DURATION
DEFAULT_ENABLE_TTS = ENABLE_TTS
DEFAULT_LANGUAGE_CODE = LANGUAGE_CODE
DEFAULT_TTS_LANGUAGE_CODE = TTS_LANGUAGE_CODE
DEFAULT_TTS_VOICE = TTS_VOICE
DEFAULT_END_CALL_GRACE_SECONDS = END_CALL_GRACE_SECONDS
DEFAULT_MAX_ROLEPLAY_EXCHANGES = MAX_ROLEPLAY_EXCHANGES
DEFAULT_LOG_FILE = LOG_FILE

DEFAULT_SAMPLE_RATE_CAPTURE = SAMPLE_RATE_CAPTURE
DEFAULT_SAMPLE_RATE_TARGET = SAMPLE_RATE_TARGET
DEFAULT_CHANNELS = CHANNELS
DEFAULT_FRAME_MS = FRAME_MS
DEFAULT_TARGET_RMS = TARGET_RMS
DEFAULT_STREAM_RESTART_BACKOFF = STREAM_RESTART_BACKOFF
DEFAULT_MAX_STREAM_RESTARTS = MAX_STREAM_RESTARTS
DEFAULT_VERTEX_LOCATION = VERTEX_LOCATION
DEFAULT_MODEL_NAME = MODEL_NAME
DEFAULT_LLM_TIMEOUT = LLM_TIMEOUT
DEFAULT_MAX_OUTPUT_TOKENS = MAX_OUTPUT_TOKENS
