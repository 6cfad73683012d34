"""
Structured data models and state management for the training session.
"""
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, List, Tuple, TYPE_CHECKING

from ..config import END_CALL_MARKER

if TYPE_CHECKING:
    from ..infrastructure.data import Scenario, Utterance

logger = logging.getLogger("session_state")


class ConversationStage(str, Enum):
    """Session stages, in the only order they may be visited."""
    INTRODUCTION = "introduction"
    SCENARIO_ANNOUNCEMENT = "scenario-announcement"
    ROLEPLAY = "roleplay"


_STAGE_ORDER = [
    ConversationStage.INTRODUCTION,
    ConversationStage.SCENARIO_ANNOUNCEMENT,
    ConversationStage.ROLEPLAY,
]


class VoiceStatus(str, Enum):
    """What the voice pipeline is doing right now."""
    IDLE = "idle"
    LISTENING = "listening"
    SPEAKING = "speaking"
    PROCESSING = "processing"
    AI_RESPONDING = "ai-responding"


AFFIRMATIVE_KEYWORDS: Tuple[str, ...] = (
    "yes", "ready", "han", "haan", "ji", "tayyar", "ہاں", "جی", "تیار",
)


@dataclass
class SessionState:
    """
    Single source of truth for the gating flags.

    Detectors read these synchronously on every tick; only the orchestrator
    flips them, and only through the methods below.
    """
    stage: ConversationStage = ConversationStage.INTRODUCTION
    status: VoiceStatus = VoiceStatus.IDLE
    microphone_active: bool = False
    user_muted: bool = False
    playback_muted: bool = False
    turn_in_progress: bool = False
    session_ended: bool = False

    @property
    def microphone_muted(self) -> bool:
        """Muted by the user or force-muted during playback."""
        return self.user_muted or self.playback_muted

    @property
    def accepting_input(self) -> bool:
        """Whether a detector should evaluate the current frame."""
        return (self.microphone_active and not self.microphone_muted
                and not self.turn_in_progress and not self.session_ended)

    def advance_to(self, stage: ConversationStage) -> None:
        """
        Move the session forward.

        Raises:
            ValueError: If the transition would go backward
        """
        if _STAGE_ORDER.index(stage) < _STAGE_ORDER.index(self.stage):
            raise ValueError(f"Cannot move from {self.stage.value} back to {stage.value}")
        if stage != self.stage:
            logger.info(f"Stage {self.stage.value} -> {stage.value}")
        self.stage = stage

    def set_status(self, status: VoiceStatus) -> bool:
        """Update status; returns True if it changed."""
        if status == self.status:
            return False
        self.status = status
        return True

    def activate_microphone(self) -> None:
        self.microphone_active = True

    def set_user_muted(self, muted: bool) -> None:
        self.user_muted = muted

    def begin_playback(self) -> None:
        self.playback_muted = True

    def end_playback(self) -> None:
        self.playback_muted = False

    def begin_turn(self) -> bool:
        """Claim the turn slot; False if a turn already holds it."""
        if self.turn_in_progress:
            return False
        self.turn_in_progress = True
        return True

    def end_turn(self) -> None:
        self.turn_in_progress = False

    def mark_ended(self) -> None:
        self.session_ended = True
        self.microphone_active = False
        self.status = VoiceStatus.IDLE


@dataclass
class DialogueRequest:
    """Everything the generator needs for one customer reply."""
    is_opening_turn: bool
    agent_text: str
    scenario: 'Scenario'
    transcript: List['Utterance'] = field(default_factory=list)


@dataclass
class DialogueReply:
    """The simulated customer's reply."""
    text: str
    roman: Optional[str] = None
    end_of_call: bool = False


def parse_end_marker(raw_text: str, marker: str = END_CALL_MARKER) -> Tuple[str, bool]:
    """
    Detect and strip the end-of-call marker.

    Returns:
        (text, end_of_call). Text without the marker comes back unmodified;
        with the marker, one occurrence is removed and the rest is trimmed.
    """
    if marker not in raw_text:
        return raw_text, False
    return raw_text.replace(marker, "", 1).strip(), True


def is_affirmative(text: str) -> bool:
    """Case-normalised substring match against the readiness keywords."""
    lowered = text.lower()
    return any(keyword in lowered for keyword in AFFIRMATIVE_KEYWORDS)
