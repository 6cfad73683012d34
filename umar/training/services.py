"""
Service classes for the training session.
"""
import time
import uuid
import logging
from typing import Any, Dict, Optional, Union

from ..infrastructure.data import (
    AGENT, SIMULATED_CUSTOMER, Transcript, Utterance, SessionHandoff, Scenario, SessionRecorder
)

logger = logging.getLogger("services")


class TranscriptionService:
    """Turns a detector payload into agent text."""

    def __init__(self, transcriber=None):
        self.transcriber = transcriber

    @staticmethod
    def needs_transcription(payload: Union[str, bytes]) -> bool:
        return isinstance(payload, (bytes, bytearray))

    async def to_text(self, payload: Union[str, bytes]) -> str:
        """
        Text payloads pass through; audio payloads go to the transcriber.

        Raises:
            RuntimeError: If transcription fails or no transcriber is configured
        """
        if not self.needs_transcription(payload):
            return payload.strip()
        if self.transcriber is None:
            raise RuntimeError("Audio utterance received but no transcriber is configured")
        text = await self.transcriber.transcribe(bytes(payload))
        logger.info(f"Speech recognition result: {text or '(empty)'}")
        return (text or "").strip()


class SpeechService:
    """Handles text-to-speech and playback."""

    def __init__(self, synthesizer=None, player=None, use_tts: bool = True):
        self.synthesizer = synthesizer
        self.player = player
        self.use_tts = use_tts and synthesizer is not None and player is not None

    async def speak(self, text: str) -> bool:
        """
        Synthesize and play text, returning when playback ends.
        Returns False when speech output is disabled.

        Raises:
            RuntimeError: If synthesis or playback fails
        """
        if not self.use_tts or not text.strip():
            return False
        audio = await self.synthesizer.synthesize(text)
        await self.player.play(audio)
        return True

    def stop(self) -> None:
        if self.player is not None:
            self.player.stop()


class ConversationManager:
    """Owns the transcript and builds the end-of-session handoff."""

    def __init__(self, scenario: Scenario, recorder: Optional[SessionRecorder] = None):
        self.scenario = scenario
        self.recorder = recorder
        self.session_id = uuid.uuid4().hex[:12]
        self.transcript = Transcript()
        self.started_at: Optional[float] = None

    def start(self) -> None:
        self.started_at = time.time()

    def add_agent(self, text: str, roman: Optional[str] = None) -> Utterance:
        return self.transcript.add(AGENT, text, roman)

    def add_customer(self, text: str, roman: Optional[str] = None) -> Utterance:
        return self.transcript.add(SIMULATED_CUSTOMER, text, roman)

    def agent_turns(self) -> int:
        return self.transcript.count(AGENT)

    def duration_seconds(self) -> int:
        if self.started_at is None:
            return 0
        return int(round(time.time() - self.started_at))

    def build_handoff(self, ended_naturally: bool, reason: str) -> SessionHandoff:
        return SessionHandoff(
            transcript=self.transcript.utterances,
            scenario=self.scenario.to_dict(),
            duration_seconds=self.duration_seconds(),
            ended_naturally=ended_naturally,
            session_id=self.session_id,
            end_reason=reason,
        )

    def save(self, handoff: SessionHandoff) -> Optional[str]:
        """Hand the session to the recorder; a failing recorder is logged, not raised."""
        if self.recorder is None:
            return None
        try:
            return self.recorder.save(handoff)
        except (OSError, TypeError, ValueError) as e:
            logger.error(f"Failed to save session {handoff.session_id}: {e}")
            return None

    def summary(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "scenario_id": self.scenario.id,
            "utterances": len(self.transcript),
            "agent_turns": self.agent_turns(),
        }
