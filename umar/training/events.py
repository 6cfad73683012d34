"""
Event-driven architecture for the training session.
"""
import logging
from abc import ABC
from typing import Dict, Any, List, Callable, Optional
from dataclasses import dataclass
from enum import Enum

logger = logging.getLogger("events")


class EventType(str, Enum):
    """Types of session events."""
    SESSION_STARTED = "session_started"
    STAGE_CHANGED = "stage_changed"
    STATUS_CHANGED = "status_changed"
    UTTERANCE_ADDED = "utterance_added"
    PARTIAL_TRANSCRIPT = "partial_transcript"
    TURN_DISCARDED = "turn_discarded"
    ERROR_OCCURRED = "error_occurred"
    SESSION_ENDED = "session_ended"


@dataclass
class SessionEvent(ABC):
    """Base class for all session events."""
    event_type: EventType
    session_id: str
    timestamp: float
    data: Dict[str, Any]


@dataclass
class SessionStartedEvent(SessionEvent):
    """Event fired when the session begins."""
    def __init__(self, session_id: str, timestamp: float, scenario_id: str, strategy: str):
        super().__init__(
            event_type=EventType.SESSION_STARTED,
            session_id=session_id,
            timestamp=timestamp,
            data={"scenario_id": scenario_id, "strategy": strategy}
        )


@dataclass
class StageChangedEvent(SessionEvent):
    """Event fired when the conversation stage advances."""
    def __init__(self, session_id: str, timestamp: float, previous: str, stage: str):
        super().__init__(
            event_type=EventType.STAGE_CHANGED,
            session_id=session_id,
            timestamp=timestamp,
            data={"previous": previous, "stage": stage}
        )


@dataclass
class StatusChangedEvent(SessionEvent):
    """Event fired when the voice status changes."""
    def __init__(self, session_id: str, timestamp: float, status: str):
        super().__init__(
            event_type=EventType.STATUS_CHANGED,
            session_id=session_id,
            timestamp=timestamp,
            data={"status": status}
        )


@dataclass
class UtteranceAddedEvent(SessionEvent):
    """Event fired when an utterance is appended to the transcript."""
    def __init__(self, session_id: str, timestamp: float, speaker: str,
                 text: str, roman: Optional[str], index: int):
        super().__init__(
            event_type=EventType.UTTERANCE_ADDED,
            session_id=session_id,
            timestamp=timestamp,
            data={
                "speaker": speaker,
                "text": text,
                "roman": roman,
                "index": index
            }
        )


@dataclass
class PartialTranscriptEvent(SessionEvent):
    """Event fired with the live (committed + preview) transcript."""
    def __init__(self, session_id: str, timestamp: float, committed: str, preview: str):
        super().__init__(
            event_type=EventType.PARTIAL_TRANSCRIPT,
            session_id=session_id,
            timestamp=timestamp,
            data={
                "committed": committed,
                "preview": preview,
                "text": committed + preview
            }
        )


@dataclass
class TurnDiscardedEvent(SessionEvent):
    """Event fired when a detected utterance is dropped without a reply."""
    def __init__(self, session_id: str, timestamp: float, reason: str):
        super().__init__(
            event_type=EventType.TURN_DISCARDED,
            session_id=session_id,
            timestamp=timestamp,
            data={"reason": reason}
        )


@dataclass
class ErrorOccurredEvent(SessionEvent):
    """Event fired when an error occurs."""
    def __init__(self, session_id: str, timestamp: float, error_type: str,
                 error_message: str, component: str):
        super().__init__(
            event_type=EventType.ERROR_OCCURRED,
            session_id=session_id,
            timestamp=timestamp,
            data={
                "error_type": error_type,
                "error_message": error_message,
                "component": component
            }
        )


@dataclass
class SessionEndedEvent(SessionEvent):
    """Event fired once when the session hands off."""
    def __init__(self, session_id: str, timestamp: float, ended_naturally: bool,
                 reason: str, duration_seconds: int, utterance_count: int):
        super().__init__(
            event_type=EventType.SESSION_ENDED,
            session_id=session_id,
            timestamp=timestamp,
            data={
                "ended_naturally": ended_naturally,
                "reason": reason,
                "duration_seconds": duration_seconds,
                "utterance_count": utterance_count
            }
        )


EventHandler = Callable[[SessionEvent], None]


class SessionEventBus:
    """Event bus for session communication."""

    def __init__(self):
        self._handlers: Dict[EventType, List[EventHandler]] = {}
        self._global_handlers: List[EventHandler] = []

    def subscribe(self, event_type: EventType, handler: EventHandler) -> None:
        """
        Subscribe to specific event type.

        Args:
            event_type: Type of event to listen for
            handler: Function to call when event occurs
        """
        self._handlers.setdefault(event_type, []).append(handler)
        logger.debug(f"Subscribed handler to {event_type}")

    def subscribe_all(self, handler: EventHandler) -> None:
        """Subscribe to all events."""
        self._global_handlers.append(handler)
        logger.debug("Subscribed global handler")

    def emit(self, event: SessionEvent) -> None:
        """
        Emit an event to all subscribers.
        A failing handler is logged and does not stop the others.
        """
        logger.debug(f"Emitting event: {event.event_type} for session {event.session_id}")

        for handler in self._handlers.get(event.event_type, []):
            try:
                handler(event)
            except Exception as e:
                logger.error(f"Error in event handler for {event.event_type}: {e}")

        for handler in self._global_handlers:
            try:
                handler(event)
            except Exception as e:
                logger.error(f"Error in global event handler: {e}")


class EventLogger:
    """Logs all events for debugging and analysis."""

    def __init__(self, log_level: int = logging.INFO):
        self.logger = logging.getLogger("event_logger")
        self.logger.setLevel(log_level)

    def handle_event(self, event: SessionEvent) -> None:
        # Partial transcripts arrive several times per second
        if event.event_type == EventType.PARTIAL_TRANSCRIPT:
            self.logger.debug(f"Event: {event.event_type} | Session: {event.session_id} | Data: {event.data}")
            return
        self.logger.info(f"Event: {event.event_type} | Session: {event.session_id} | Data: {event.data}")


class SessionMetrics:
    """Collects metrics from session events."""

    def __init__(self):
        self.reset()

    def handle_event(self, event: SessionEvent) -> None:
        if event.event_type == EventType.SESSION_STARTED:
            self.sessions_started += 1
        elif event.event_type == EventType.SESSION_ENDED:
            self.sessions_ended += 1
            if event.data.get("ended_naturally"):
                self.natural_endings += 1
        elif event.event_type == EventType.UTTERANCE_ADDED:
            self.utterances += 1
        elif event.event_type == EventType.TURN_DISCARDED:
            self.turns_discarded += 1
        elif event.event_type == EventType.STAGE_CHANGED:
            self.stage_changes += 1
        elif event.event_type == EventType.ERROR_OCCURRED:
            self.errors_occurred += 1

    def get_metrics(self) -> Dict[str, int]:
        """Get current metrics snapshot."""
        return {
            "sessions_started": self.sessions_started,
            "sessions_ended": self.sessions_ended,
            "natural_endings": self.natural_endings,
            "utterances": self.utterances,
            "turns_discarded": self.turns_discarded,
            "stage_changes": self.stage_changes,
            "errors_occurred": self.errors_occurred
        }

    def reset(self) -> None:
        self.sessions_started = 0
        self.sessions_ended = 0
        self.natural_endings = 0
        self.utterances = 0
        self.turns_discarded = 0
        self.stage_changes = 0
        self.errors_occurred = 0
