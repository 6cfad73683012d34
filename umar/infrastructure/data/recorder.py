"""
Session recorder: persists the end-of-session handoff for the evaluation pass.
"""
import json
import logging
import os
from abc import ABC, abstractmethod
from typing import Optional

from .conversations import SessionHandoff

logger = logging.getLogger("session_recorder")


class SessionRecorder(ABC):
    """Receives the handoff once per session."""

    @abstractmethod
    def save(self, handoff: SessionHandoff) -> Optional[str]:
        """Store the handoff and return where it went, if anywhere."""


class JsonSessionRecorder(SessionRecorder):
    """Writes each handoff to {workdir}/session_<id>.json."""

    def __init__(self, workdir: str):
        self.workdir = workdir
        os.makedirs(self.workdir, exist_ok=True)

    def _get_session_path(self, session_id: str) -> str:
        return os.path.join(self.workdir, f"session_{session_id}.json")

    def save(self, handoff: SessionHandoff) -> Optional[str]:
        path = self._get_session_path(handoff.session_id)
        with open(path, 'w', encoding='utf-8') as f:
            json.dump(handoff.to_dict(), f, indent=2, ensure_ascii=False)
        logger.info(f"Saved session handoff to {path}")
        return path

    def load(self, session_id: str) -> dict:
        with open(self._get_session_path(session_id), 'r', encoding='utf-8') as f:
            return json.load(f)
