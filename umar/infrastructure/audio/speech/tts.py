"""
Text-to-speech functionality using Google Cloud TTS, plus local playback.
"""
import asyncio
import logging
import os
import tempfile
from typing import Optional, Sequence, Tuple

from google.api_core import exceptions as google_exceptions
from google.cloud import texttospeech

from ....config import (
    DEFAULT_TTS_VOICE, DEFAULT_TTS_LANGUAGE_CODE, DEFAULT_SAMPLE_RATE_TARGET,
    TTS_SPEAKING_RATE, PLAYER_COMMANDS
)

logger = logging.getLogger("speech_tts")


class GoogleSynthesizer:
    """Converts reply text to a WAV payload."""

    def __init__(self,
                 voice: str = DEFAULT_TTS_VOICE,
                 language_code: str = DEFAULT_TTS_LANGUAGE_CODE,
                 speaking_rate: float = TTS_SPEAKING_RATE,
                 sample_rate: int = DEFAULT_SAMPLE_RATE_TARGET,
                 client: Optional[texttospeech.TextToSpeechClient] = None):
        self.voice = voice
        self.language_code = language_code
        self.speaking_rate = speaking_rate
        self.sample_rate = sample_rate
        self._client = client

    @property
    def client(self) -> texttospeech.TextToSpeechClient:
        if self._client is None:
            self._client = texttospeech.TextToSpeechClient()
        return self._client

    def synthesize_sync(self, text: str) -> bytes:
        """
        Synthesize text with the configured voice.

        Raises:
            RuntimeError: If the provider fails or returns no audio
        """
        synthesis_input = texttospeech.SynthesisInput(text=text)
        voice_params = texttospeech.VoiceSelectionParams(
            language_code=self.language_code,
            name=self.voice,
        )
        # LINEAR16 responses already carry a WAV header
        audio_config = texttospeech.AudioConfig(
            audio_encoding=texttospeech.AudioEncoding.LINEAR16,
            sample_rate_hertz=self.sample_rate,
            speaking_rate=self.speaking_rate,
        )

        try:
            response = self.client.synthesize_speech(
                input=synthesis_input, voice=voice_params, audio_config=audio_config
            )
        except google_exceptions.GoogleAPICallError as e:
            raise RuntimeError(f"Text-to-speech failed: {e}")

        if not response.audio_content:
            raise RuntimeError("Text-to-speech returned empty audio")
        return response.audio_content

    async def synthesize(self, text: str) -> bytes:
        return await asyncio.to_thread(self.synthesize_sync, text)


class AudioPlayer:
    """
    Plays WAV payloads through the platform audio player.

    Only one clip plays at a time; stop() kills the current player process.
    """

    def __init__(self, commands: Sequence[Tuple[str, ...]] = PLAYER_COMMANDS):
        self.commands = [tuple(c) for c in commands]
        self._process: Optional[asyncio.subprocess.Process] = None

    @property
    def is_playing(self) -> bool:
        return self._process is not None and self._process.returncode is None

    async def play(self, audio: bytes) -> None:
        """
        Play audio and return when playback has finished.

        Raises:
            RuntimeError: If no player is available or playback fails
        """
        with tempfile.NamedTemporaryFile(suffix=".wav", delete=False) as tmp_file:
            wav_path = tmp_file.name
            tmp_file.write(audio)

        try:
            for command in self.commands:
                try:
                    self._process = await asyncio.create_subprocess_exec(
                        *command, wav_path,
                        stdout=asyncio.subprocess.DEVNULL,
                        stderr=asyncio.subprocess.PIPE,
                    )
                except FileNotFoundError:
                    continue

                try:
                    _, stderr = await self._process.communicate()
                except asyncio.CancelledError:
                    self.stop()
                    raise
                # Negative return codes come from stop() killing the player
                if self._process.returncode and self._process.returncode > 0:
                    raise RuntimeError(
                        f"{command[0]} exited with {self._process.returncode}: "
                        f"{stderr.decode(errors='replace').strip()}"
                    )
                return
            raise RuntimeError("No audio player found (tried: "
                               + ", ".join(c[0] for c in self.commands) + ")")
        finally:
            self._process = None
            try:
                os.unlink(wav_path)
            except OSError:
                pass

    def stop(self) -> None:
        if self.is_playing:
            try:
                self._process.kill()
            except ProcessLookupError:
                pass
            logger.debug("Playback stopped")
