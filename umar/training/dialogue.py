"""
Dialogue engine: the simulated customer's side of the call.
"""
import asyncio
import logging

from .schemas import DialogueRequest, DialogueReply, parse_end_marker
from .prompts import TrainingPrompts
from ..config import DIALOGUE_TEMPERATURE, ROMANIZE_TEMPERATURE, MAX_OUTPUT_TOKENS
from ..infrastructure.llm import VertexRestClient

logger = logging.getLogger("dialogue")


class Romanizer:
    """Urdu (Arabic script) to Roman Urdu through the LLM. Best effort."""

    def __init__(self, llm_client: VertexRestClient, temperature: float = ROMANIZE_TEMPERATURE):
        self.llm_client = llm_client
        self.temperature = temperature

    def romanize_sync(self, text: str) -> str:
        if not text.strip():
            return ""
        try:
            roman = self.llm_client.generate_content(
                text,
                system_instruction=TrainingPrompts.romanize_system_prompt(),
                temperature=self.temperature,
                max_output_tokens=MAX_OUTPUT_TOKENS,
            )
            return roman.strip()
        except Exception as e:
            logger.warning(f"Romanization failed, continuing without it: {e}")
            return ""

    async def romanize(self, text: str) -> str:
        return await asyncio.to_thread(self.romanize_sync, text)


class DialogueEngine:
    """Generates customer replies in persona. One attempt per request."""

    def __init__(self, llm_client: VertexRestClient, romanizer: Romanizer = None,
                 temperature: float = DIALOGUE_TEMPERATURE):
        self.llm_client = llm_client
        self.romanizer = romanizer or Romanizer(llm_client)
        self.temperature = temperature

    def build_prompts(self, request: DialogueRequest):
        """Return (system_instruction, user_prompt) for the request."""
        if request.is_opening_turn:
            return (TrainingPrompts.opening_system_prompt(request.scenario),
                    TrainingPrompts.opening_user_prompt())
        return (TrainingPrompts.reply_system_prompt(request.scenario, request.transcript),
                TrainingPrompts.reply_user_prompt(request.agent_text))

    def generate_sync(self, request: DialogueRequest) -> DialogueReply:
        """
        Produce the next customer line.

        Raises:
            RuntimeError: If the LLM call fails or returns nothing usable
        """
        system_instruction, user_prompt = self.build_prompts(request)
        raw_response = self.llm_client.generate_content(
            user_prompt,
            system_instruction=system_instruction,
            temperature=self.temperature,
            max_output_tokens=MAX_OUTPUT_TOKENS,
        )
        logger.info(f"Raw LLM response: {raw_response}")

        text, end_of_call = parse_end_marker(raw_response.strip())
        if not text and not end_of_call:
            raise RuntimeError("Dialogue model returned an empty reply")

        roman = self.romanizer.romanize_sync(text) if text else ""
        return DialogueReply(text=text, roman=roman or None, end_of_call=end_of_call)

    async def generate(self, request: DialogueRequest) -> DialogueReply:
        return await asyncio.to_thread(self.generate_sync, request)
