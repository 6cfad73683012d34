"""
Conversation data structures.
Handles the utterance-by-utterance transcript and the end-of-session handoff.
"""
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional

AGENT = "agent"
SIMULATED_CUSTOMER = "simulated-customer"


@dataclass(frozen=True)
class Utterance:
    """A single spoken line in the session."""
    speaker: str  # AGENT or SIMULATED_CUSTOMER
    text: str  # Original text (Urdu, Arabic script)
    roman: Optional[str] = None  # Roman Urdu transliteration, best effort
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "speaker": self.speaker,
            "text": self.text,
            "timestamp": self.timestamp,
        }
        if self.roman:
            data["roman"] = self.roman
        return data


class Transcript:
    """Ordered, append-only list of utterances."""

    def __init__(self):
        self._utterances: List[Utterance] = []

    def append(self, utterance: Utterance) -> None:
        self._utterances.append(utterance)

    def add(self, speaker: str, text: str, roman: Optional[str] = None) -> Utterance:
        utterance = Utterance(speaker=speaker, text=text, roman=roman or None)
        self.append(utterance)
        return utterance

    @property
    def utterances(self) -> List[Utterance]:
        return list(self._utterances)

    def count(self, speaker: str) -> int:
        return sum(1 for u in self._utterances if u.speaker == speaker)

    def __len__(self) -> int:
        return len(self._utterances)

    def __iter__(self) -> Iterator[Utterance]:
        return iter(list(self._utterances))

    def to_list(self) -> List[Dict[str, Any]]:
        return [u.to_dict() for u in self._utterances]


@dataclass
class SessionHandoff:
    """Everything the evaluation pass needs, by value."""
    transcript: List[Utterance]
    scenario: Dict[str, Any]
    duration_seconds: int
    ended_naturally: bool
    session_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    end_reason: Optional[str] = None  # user_ended, call_completed, exchange_limit

    def to_dict(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "transcript": [u.to_dict() for u in self.transcript],
            "scenario": self.scenario,
            "duration_seconds": self.duration_seconds,
            "ended_naturally": self.ended_naturally,
            "end_reason": self.end_reason,
        }
