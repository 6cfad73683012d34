"""
Training prompt templates and scripted lines.

This module contains all the prompt templates and fixed Urdu lines used by the
training session, keeping them separate from the turn logic for easier editing.
"""

from typing import List, Tuple, TYPE_CHECKING

from ..infrastructure.data import AGENT

if TYPE_CHECKING:
    from ..infrastructure.data import Scenario, Utterance

# (urdu, roman) pairs
INTRO_GREETING: Tuple[str, str] = (
    "السلام علیکم! میں UMAR ہوں، آپ کا AI تربیتی معاون۔ میں مختلف کسٹمرز کا کردار ادا کروں گا "
    "تاکہ آپ اپنی مہارت بہتر بنا سکیں۔ کیا آپ تیار ہیں؟",
    "Assalam-o-Alaikum! Main UMAR hoon, aap ka AI training assistant. Main mukhtalif customers "
    "ka kirdar ada karunga taake aap apni maharat behtar bana sakein. Kya aap tayyar hain?",
)

CLARIFICATION: Tuple[str, str] = (
    'کوئی بات نہیں۔ جب آپ تیار ہوں تو "ہاں" یا "تیار ہوں" کہیں۔',
    'Koi baat nahin. Jab aap tayyar hon to "haan" ya "tayyar hoon" kahein.',
)

FALLBACK_APOLOGY: Tuple[str, str] = (
    "معذرت، مجھے مسئلہ ہو رہا ہے۔",
    "Maazrat, mujhe masla ho raha hai.",
)

CONVERSATION_RULES = """

CONVERSATION STYLE - THIS IS CRITICAL:
1. Keep responses SHORT and natural (1-2 sentences typically, max 3 if explaining something)
2. Talk like a REAL person on a phone call, not a script
3. Use natural fillers occasionally: "ہاں...", "دیکھیں...", "اچھا..."
4. React to what the agent JUST said - don't repeat your whole story
5. One thought per response - don't pile multiple topics together
6. If asking a question, just ask ONE question at a time
7. Show emotion through tone, not long explanations

WHAT MAKES IT FEEL REAL:
- Interrupt yourself sometimes: "میرا bill... یعنی وہ جو آیا ہے..."
- React with short acknowledgments: "ہاں ٹھیک ہے", "اچھا", "پھر؟"
- Express confusion briefly: "مجھے سمجھ نہیں آیا"
- Show impatience naturally: "ہاں ہاں، پھر؟" or "اور؟"

ADAPTING TO THE AGENT:
- If agent is helpful and empathetic → warm up, be cooperative
- If agent is robotic/scripted → show slight annoyance
- If agent asks good questions → answer willingly
- If agent repeats themselves → "یہ تو آپ نے بتایا، آگے بتائیں"
- If agent is rude → react accordingly (hurt/angry depending on persona)
- If agent solves something → acknowledge it naturally"""

FIRST_MESSAGE_RULES = """

FIRST MESSAGE INSTRUCTIONS:
- Just greet and state your issue briefly (2-3 short sentences max)
- Don't explain everything upfront - let the conversation unfold
- Example length: "السلام علیکم، میرا نام احمد ہے، میں اپنے bill کے بارے میں call کر رہا ہوں۔ بہت زیادہ آیا ہے۔\""""

END_CALL_GUIDANCE = """WHEN TO END THE CALL (add [END_CALL] at the end):

POSITIVE ENDINGS:
- Agent solved the problem → "بہت شکریہ، مسئلہ حل ہو گیا" [END_CALL]
- Got a satisfactory answer → "اچھا ٹھیک ہے، شکریہ آپ کا" [END_CALL]
- Received reference number/promise → "ٹھیک ہے، میں انتظار کرتا ہوں" [END_CALL]
- Agent was very helpful → express genuine thanks and end [END_CALL]

NEUTRAL ENDINGS:
- Need to think about it → "میں سوچ کر بتاتا ہوں، شکریہ" [END_CALL]
- Will try suggested solution → "اچھا میں try کرتا ہوں، شکریہ" [END_CALL]
- Agreed to visit service center → "ٹھیک ہے میں آ جاتا ہوں" [END_CALL]

FRUSTRATED ENDINGS (after 5+ exchanges with no progress):
- Same answers repeated → "آپ وہی بات کر رہے ہیں، میں کہیں اور call کرتا ہوں" [END_CALL]
- Agent unhelpful → "شکریہ، میں supervisor سے بات کروں گا" [END_CALL]
- Giving up for now → "ٹھیک ہے بعد میں call کرتا ہوں" [END_CALL]
- Very frustrated → "میں complaint کروں گا" [END_CALL]

IMPORTANT:
- Don't end abruptly without a natural closing phrase
- Don't drag on if the issue is resolved or clearly won't be resolved
- If conversation exceeds 8-10 exchanges, seriously consider wrapping up
- Trust your judgment on when the conversation has run its course"""


def conversation_phase(exchange_count: int) -> str:
    if exchange_count < 3:
        return "- EARLY: Still explaining issue, asking questions, building rapport"
    if exchange_count < 7:
        return "- MIDDLE: Working towards resolution, patience may vary based on agent helpfulness"
    return "- EXTENDED: Either close to resolution OR losing patience - time to wrap up naturally"


class TrainingPrompts:
    """Collection of all training-related prompts."""

    @staticmethod
    def scenario_announcement(scenario: 'Scenario') -> Tuple[str, str]:
        """Scripted line naming the persona the trainee is about to face."""
        return (
            f"بہت اچھا! میں اب {scenario.name_urdu} کا کردار ادا کروں گا۔ "
            f"{scenario.description_urdu}۔ آئیے شروع کریں۔",
            f"Bohat acha! Main ab {scenario.name} ka kirdar ada karunga. "
            f"{scenario.description}. Aiye shuru karein.",
        )

    @staticmethod
    def render_history(transcript: List['Utterance']) -> str:
        return "\n".join(
            f"{'AGENT' if u.speaker == AGENT else 'CUSTOMER'}: {u.text}" for u in transcript
        )

    @staticmethod
    def opening_system_prompt(scenario: 'Scenario') -> str:
        return scenario.system_prompt + CONVERSATION_RULES + FIRST_MESSAGE_RULES

    @staticmethod
    def opening_user_prompt() -> str:
        return "Start the call. Be brief and natural - just greet and state your basic issue."

    @staticmethod
    def reply_system_prompt(scenario: 'Scenario', transcript: List['Utterance']) -> str:
        """System instruction for a mid-call reply, with history and phase hints."""
        exchange_count = sum(1 for u in transcript if u.speaker == AGENT)
        return f"""{scenario.system_prompt}{CONVERSATION_RULES}

CONVERSATION SO FAR ({exchange_count} exchanges):
{TrainingPrompts.render_history(transcript)}

CURRENT CONVERSATION PHASE:
{conversation_phase(exchange_count)}

{END_CALL_GUIDANCE}"""

    @staticmethod
    def reply_user_prompt(agent_text: str) -> str:
        return (f'Agent\'s response: "{agent_text}"\n\n'
                "Reply naturally (1-2 sentences). If it's time to end, include [END_CALL] at the end.")

    @staticmethod
    def romanize_system_prompt() -> str:
        return ('You convert Urdu text (in Arabic script) to Roman Urdu (Urdu written in English alphabet). '
                'Only output the romanized text, nothing else. Example: "مجھے مسئلہ ہے" → "Mujhe masla hai"')
