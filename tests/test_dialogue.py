"""Dialogue prompts, end-of-call parsing and romanization."""
import asyncio

import pytest

from umar.infrastructure.data import AGENT, SIMULATED_CUSTOMER, Transcript, get_scenario_by_id
from umar.training.dialogue import DialogueEngine, Romanizer
from umar.training.prompts import TrainingPrompts, conversation_phase
from umar.training.schemas import DialogueRequest
from umar.training.testing import MockLLMClient


def make_transcript(lines):
    transcript = Transcript()
    for speaker, text in lines:
        transcript.add(speaker, text)
    return transcript.utterances


def test_opening_turn_uses_first_message_rules():
    scenario = get_scenario_by_id("billing_complaint")
    llm = MockLLMClient(["السلام علیکم، میرا bill بہت زیادہ آیا ہے۔"])
    engine = DialogueEngine(llm)

    reply = engine.generate_sync(DialogueRequest(True, "", scenario, []))

    assert reply.text == "السلام علیکم، میرا bill بہت زیادہ آیا ہے۔"
    assert reply.roman == "roman"
    assert reply.end_of_call is False
    request = llm.dialogue_requests[0]
    assert request["system_instruction"].startswith(scenario.system_prompt)
    assert "FIRST MESSAGE INSTRUCTIONS" in request["system_instruction"]
    assert "END_CALL" not in request["system_instruction"]
    assert request["temperature"] == 0.9


def test_reply_prompt_carries_history_and_phase():
    scenario = get_scenario_by_id("network_issue")
    transcript = make_transcript([
        (SIMULATED_CUSTOMER, "ہیلو، میرا internet نہیں چل رہا"),
        (AGENT, "router restart karein"),
    ])
    llm = MockLLMClient(["اچھا، کر کے دیکھتا ہوں"])
    engine = DialogueEngine(llm)

    engine.generate_sync(DialogueRequest(False, "router restart karein", scenario, transcript))

    request = llm.dialogue_requests[0]
    system = request["system_instruction"]
    assert "CONVERSATION SO FAR (1 exchanges)" in system
    assert "CUSTOMER: ہیلو، میرا internet نہیں چل رہا\nAGENT: router restart karein" in system
    assert "- EARLY:" in system
    assert "WHEN TO END THE CALL" in system
    assert request["prompt"].startswith('Agent\'s response: "router restart karein"')


@pytest.mark.parametrize("exchanges,phase", [(0, "EARLY"), (2, "EARLY"), (3, "MIDDLE"),
                                             (6, "MIDDLE"), (7, "EXTENDED"), (15, "EXTENDED")])
def test_conversation_phase_boundaries(exchanges, phase):
    assert conversation_phase(exchanges).startswith(f"- {phase}:")


def test_end_marker_flags_end_of_call():
    scenario = get_scenario_by_id("billing_complaint")
    llm = MockLLMClient(["بہت شکریہ، مسئلہ حل ہو گیا [END_CALL]"])
    reply = DialogueEngine(llm).generate_sync(DialogueRequest(False, "ho gaya", scenario, []))
    assert reply.text == "بہت شکریہ، مسئلہ حل ہو گیا"
    assert reply.end_of_call is True


def test_empty_reply_is_an_error():
    scenario = get_scenario_by_id("billing_complaint")
    llm = MockLLMClient(["   "])
    with pytest.raises(RuntimeError):
        DialogueEngine(llm).generate_sync(DialogueRequest(False, "ji", scenario, []))


def test_bare_end_marker_is_a_hang_up():
    scenario = get_scenario_by_id("billing_complaint")
    llm = MockLLMClient(["  [END_CALL]  "])

    reply = DialogueEngine(llm).generate_sync(DialogueRequest(False, "ji", scenario, []))

    assert reply.text == ""
    assert reply.roman is None
    assert reply.end_of_call is True
    # Nothing to romanize
    assert len(llm.request_history) == 1


def test_llm_failure_propagates():
    scenario = get_scenario_by_id("billing_complaint")
    llm = MockLLMClient([RuntimeError("Vertex REST error 500: boom")])
    with pytest.raises(RuntimeError, match="500"):
        asyncio.run(DialogueEngine(llm).generate(DialogueRequest(True, "", scenario, [])))


def test_romanization_is_best_effort():
    llm = MockLLMClient([], roman_response=RuntimeError("quota"))
    romanizer = Romanizer(llm)
    assert romanizer.romanize_sync("مجھے مسئلہ ہے") == ""

    scenario = get_scenario_by_id("billing_complaint")
    reply = DialogueEngine(llm, romanizer).generate_sync(DialogueRequest(True, "", scenario, []))
    assert reply.text == "جی، ٹھیک ہے۔"
    assert reply.roman is None


def test_romanizer_request_shape():
    llm = MockLLMClient([], roman_response="  Mujhe masla hai ")
    romanizer = Romanizer(llm)
    assert asyncio.run(romanizer.romanize("مجھے مسئلہ ہے")) == "Mujhe masla hai"
    request = llm.request_history[0]
    assert request["prompt"] == "مجھے مسئلہ ہے"
    assert request["temperature"] == 0.3
    assert romanizer.romanize_sync("   ") == ""
    assert len(llm.request_history) == 1


def test_scenario_announcement_names_persona():
    scenario = get_scenario_by_id("technical_support")
    urdu, roman = TrainingPrompts.scenario_announcement(scenario)
    assert scenario.name_urdu in urdu
    assert scenario.name in roman
