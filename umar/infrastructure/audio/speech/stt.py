"""
Speech-to-text functionality using Google Cloud Speech.
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import AsyncIterator, List, Optional

from google.api_core import exceptions as google_exceptions
from google.cloud import speech

from ....config import DEFAULT_LANGUAGE_CODE, DEFAULT_SAMPLE_RATE_TARGET

logger = logging.getLogger("speech_stt")


@dataclass(frozen=True)
class TranscriptToken:
    """A piece of recognized text; final tokens will not be revised."""
    text: str
    is_final: bool


class GoogleTranscriber:
    """Batch recognition of one finished utterance."""

    def __init__(self,
                 language_code: str = DEFAULT_LANGUAGE_CODE,
                 sample_rate: int = DEFAULT_SAMPLE_RATE_TARGET,
                 client: Optional[speech.SpeechClient] = None):
        self.language_code = language_code
        self.sample_rate = sample_rate
        self._client = client

    @property
    def client(self) -> speech.SpeechClient:
        if self._client is None:
            self._client = speech.SpeechClient()
        return self._client

    def recognize(self, wav_bytes: bytes) -> str:
        """
        Synchronous Google Cloud Speech-to-Text recognition of a WAV payload.
        Returns transcribed text, or an empty string if no speech was found.

        Raises:
            RuntimeError: If the provider rejects the request
        """
        # WAV carries its own encoding header, so encoding stays unspecified
        audio = speech.RecognitionAudio(content=wav_bytes)
        config = speech.RecognitionConfig(
            sample_rate_hertz=self.sample_rate,
            language_code=self.language_code,
            enable_automatic_punctuation=True,
        )

        try:
            resp = self.client.recognize(config=config, audio=audio)
        except google_exceptions.GoogleAPICallError as e:
            raise RuntimeError(f"Speech recognition failed: {e}")

        texts = [r.alternatives[0].transcript for r in resp.results if r.alternatives]
        return " ".join(texts).strip()

    async def transcribe(self, wav_bytes: bytes) -> str:
        return await asyncio.to_thread(self.recognize, wav_bytes)


class GoogleStreamingTranscriber:
    """
    Streaming recognition with interim results.

    Each provider response becomes one batch of tokens: results marked
    is_final are committed text, the rest is a volatile preview that the
    next batch replaces.
    """

    def __init__(self,
                 language_code: str = DEFAULT_LANGUAGE_CODE,
                 sample_rate: int = DEFAULT_SAMPLE_RATE_TARGET,
                 client: Optional[speech.SpeechAsyncClient] = None):
        self.language_code = language_code
        self.sample_rate = sample_rate
        self._client = client

    @property
    def client(self) -> speech.SpeechAsyncClient:
        if self._client is None:
            self._client = speech.SpeechAsyncClient()
        return self._client

    def _streaming_config(self) -> speech.StreamingRecognitionConfig:
        return speech.StreamingRecognitionConfig(
            config=speech.RecognitionConfig(
                encoding=speech.RecognitionConfig.AudioEncoding.LINEAR16,
                sample_rate_hertz=self.sample_rate,
                language_code=self.language_code,
                enable_automatic_punctuation=True,
            ),
            interim_results=True,
        )

    async def open_stream(self, audio: AsyncIterator[bytes]) -> AsyncIterator[List[TranscriptToken]]:
        """
        Stream PCM16 frames to the provider and yield token batches.
        Provider errors propagate to the caller, which owns restart policy.
        """
        streaming_config = self._streaming_config()

        async def requests():
            yield speech.StreamingRecognizeRequest(streaming_config=streaming_config)
            async for chunk in audio:
                yield speech.StreamingRecognizeRequest(audio_content=chunk)

        logger.debug("Opening streaming recognition session")
        responses = await self.client.streaming_recognize(requests=requests())
        async for response in responses:
            tokens = [
                TranscriptToken(text=result.alternatives[0].transcript, is_final=result.is_final)
                for result in response.results
                if result.alternatives
            ]
            if tokens:
                yield tokens
