"""Training session components.

This module contains the business logic for running a voice roleplay session,
including orchestration, detection, dialogue generation and session services.
"""

# Core orchestrator class
from .orchestrator import TrainingOrchestrator, STRATEGY_VAD, STRATEGY_STREAMING

# Structured schemas and state management
from .schemas import (
    ConversationStage, VoiceStatus, SessionState,
    DialogueRequest, DialogueReply, parse_end_marker, is_affirmative
)

# Detection strategies
from .detection import Detector, EnergyVADDetector, StreamingEndpointDetector

# Service classes
from .services import TranscriptionService, SpeechService, ConversationManager

# Dialogue engine
from .dialogue import DialogueEngine, Romanizer
from .prompts import TrainingPrompts

# Event system
from .events import (
    SessionEventBus, EventLogger, SessionMetrics,
    EventType, SessionEvent, SessionStartedEvent, StageChangedEvent,
    StatusChangedEvent, UtteranceAddedEvent, PartialTranscriptEvent,
    TurnDiscardedEvent, ErrorOccurredEvent, SessionEndedEvent
)

__all__ = [
    # Orchestrator
    "TrainingOrchestrator", "STRATEGY_VAD", "STRATEGY_STREAMING",

    # Schemas and state
    "ConversationStage", "VoiceStatus", "SessionState",
    "DialogueRequest", "DialogueReply", "parse_end_marker", "is_affirmative",

    # Detection
    "Detector", "EnergyVADDetector", "StreamingEndpointDetector",

    # Services
    "TranscriptionService", "SpeechService", "ConversationManager",

    # Dialogue
    "DialogueEngine", "Romanizer", "TrainingPrompts",

    # Events
    "SessionEventBus", "EventLogger", "SessionMetrics",
    "EventType", "SessionEvent", "SessionStartedEvent", "StageChangedEvent",
    "StatusChangedEvent", "UtteranceAddedEvent", "PartialTranscriptEvent",
    "TurnDiscardedEvent", "ErrorOccurredEvent", "SessionEndedEvent",
]
