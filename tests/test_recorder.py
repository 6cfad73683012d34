"""Transcript bookkeeping and handoff persistence."""
import json
import os

from umar.infrastructure.data import (
    AGENT, SIMULATED_CUSTOMER, Transcript, SessionHandoff, JsonSessionRecorder, get_scenario_by_id
)
from umar.training.services import ConversationManager
from umar.training.testing import MockRecorder


def test_transcript_is_append_only_copy():
    transcript = Transcript()
    transcript.add(SIMULATED_CUSTOMER, "السلام علیکم", "Assalam-o-Alaikum")
    transcript.add(AGENT, "ji", "")
    snapshot = transcript.utterances
    snapshot.clear()

    assert len(transcript) == 2
    assert transcript.count(AGENT) == 1
    assert transcript.utterances[1].roman is None
    assert transcript.to_list()[0]["roman"] == "Assalam-o-Alaikum"
    assert "roman" not in transcript.to_list()[1]


def test_json_recorder_writes_unescaped_urdu(tmp_path):
    transcript = Transcript()
    transcript.add(SIMULATED_CUSTOMER, "میرا bill بہت زیادہ آیا ہے")
    handoff = SessionHandoff(
        transcript=transcript.utterances,
        scenario=get_scenario_by_id("billing_complaint").to_dict(),
        duration_seconds=75,
        ended_naturally=True,
        session_id="abc123",
        end_reason="call_completed",
    )
    recorder = JsonSessionRecorder(str(tmp_path / "sessions"))
    path = recorder.save(handoff)

    assert path == os.path.join(str(tmp_path / "sessions"), "session_abc123.json")
    with open(path, encoding="utf-8") as f:
        raw = f.read()
    assert "میرا bill" in raw
    data = json.loads(raw)
    assert data == recorder.load("abc123")
    assert data["ended_naturally"] is True
    assert data["duration_seconds"] == 75
    assert data["scenario"]["persona"]["name"]
    assert data["transcript"][0]["speaker"] == "simulated-customer"


def test_conversation_manager_builds_handoff():
    recorder = MockRecorder()
    manager = ConversationManager(get_scenario_by_id("network_issue"), recorder)
    manager.start()
    manager.add_customer("ہیلو")
    manager.add_agent("ji farmaiye", "ji farmaiye")

    handoff = manager.build_handoff(ended_naturally=False, reason="user_ended")
    manager.save(handoff)

    assert recorder.saved == [handoff]
    assert handoff.session_id == manager.session_id
    assert handoff.scenario["id"] == "network_issue"
    assert handoff.duration_seconds >= 0
    assert [u.speaker for u in handoff.transcript] == [SIMULATED_CUSTOMER, AGENT]
    assert manager.summary()["agent_turns"] == 1


def test_failing_recorder_is_logged_not_raised():
    class BrokenRecorder(MockRecorder):
        def save(self, handoff):
            raise OSError("disk full")

    manager = ConversationManager(get_scenario_by_id("network_issue"), BrokenRecorder())
    assert manager.save(manager.build_handoff(False, "user_ended")) is None
