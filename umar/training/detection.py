"""
Speech activity and endpoint detection.

Two strategies share one contract: start(on_utterance_ready), stop(), pause()
and resume(). The ready callback receives WAV bytes from the energy detector
and committed text from the streaming detector, at most once per utterance.
"""
import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Callable, List, Optional, Union

from .schemas import SessionState, VoiceStatus
from ..config import (
    DEFAULT_VAD_THRESHOLD, DEFAULT_VAD_SILENCE_DURATION, DEFAULT_ENDPOINT_SILENCE_DURATION,
    DEFAULT_STREAM_RESTART_BACKOFF, DEFAULT_MAX_STREAM_RESTARTS, DEFAULT_TARGET_RMS
)
from ..infrastructure.audio.processing import AudioSource, frame_rms, prepare_utterance

logger = logging.getLogger("detection")

UtterancePayload = Union[str, bytes]
ReadyCallback = Callable[[UtterancePayload], None]
StatusCallback = Callable[[VoiceStatus], None]
PartialCallback = Callable[[str, str], None]
ErrorCallback = Callable[[Exception, str], None]


class Detector(ABC):
    """Turns a stream of microphone frames into finished utterances."""

    def __init__(self,
                 source: AudioSource,
                 state: SessionState,
                 on_status: Optional[StatusCallback] = None,
                 on_error: Optional[ErrorCallback] = None):
        self.source = source
        self.state = state
        self._on_status = on_status or state.set_status
        self._on_error = on_error
        self._on_ready: Optional[ReadyCallback] = None
        self._task: Optional[asyncio.Task] = None
        self._paused = False

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def is_paused(self) -> bool:
        return self._paused

    def start(self, on_utterance_ready: ReadyCallback) -> None:
        """Begin consuming frames. Must be called from inside the running loop."""
        if self.is_running:
            return
        self._on_ready = on_utterance_ready
        self._paused = False
        self._task = asyncio.get_running_loop().create_task(self._run())
        self._on_status(VoiceStatus.LISTENING)
        logger.info(f"{type(self).__name__} started")

    def stop(self) -> None:
        self.pause()
        if self._task is not None:
            self._task.cancel()
            self._task = None
        logger.info(f"{type(self).__name__} stopped")

    @abstractmethod
    def pause(self) -> None:
        """Stop producing utterances and drop any partial one."""

    @abstractmethod
    def resume(self) -> None:
        """Start listening for the next utterance."""

    async def _run(self) -> None:
        async for frame in self.source.frames():
            self.process_frame(frame)
        logger.debug("Audio source exhausted")

    @abstractmethod
    def process_frame(self, frame: bytes) -> None:
        """Handle one captured frame; one detector tick."""

    def _gated(self) -> bool:
        return self._paused or not self.state.accepting_input

    def _emit(self, payload: UtterancePayload) -> None:
        if self._on_ready is not None:
            self._on_ready(payload)

    def _report_error(self, error: Exception, component: str) -> None:
        if self._on_error is not None:
            self._on_error(error, component)


class EnergyVADDetector(Detector):
    """
    Local energy-based voice activity detection.

    A frame carries voice when its normalized RMS is strictly above the
    threshold. Voice starts buffering; silence while buffering arms a single
    timer that voice cancels. When the timer fires the buffered audio is
    cleaned up, encoded as WAV and handed to the ready callback.
    """

    def __init__(self,
                 source: AudioSource,
                 state: SessionState,
                 threshold: float = DEFAULT_VAD_THRESHOLD,
                 silence_duration: float = DEFAULT_VAD_SILENCE_DURATION,
                 target_rms: float = DEFAULT_TARGET_RMS,
                 on_status: Optional[StatusCallback] = None,
                 on_error: Optional[ErrorCallback] = None):
        super().__init__(source, state, on_status, on_error)
        self.threshold = threshold
        self.silence_duration = silence_duration
        self.target_rms = target_rms
        self._chunks: List[bytes] = []
        self._recording = False
        self._silence_timer: Optional[asyncio.TimerHandle] = None

    @property
    def is_recording(self) -> bool:
        return self._recording

    def process_frame(self, frame: bytes) -> None:
        if self._gated():
            return

        volume = frame_rms(frame, self.source.sample_width)
        voice = volume > self.threshold

        if voice:
            if not self._recording:
                logger.debug(f"Voice started (rms={volume:.4f})")
                self._recording = True
                self._chunks = []
                self._on_status(VoiceStatus.SPEAKING)
            self._chunks.append(frame)
            self._cancel_timer()
        elif self._recording:
            self._chunks.append(frame)
            if self._silence_timer is None:
                self._silence_timer = asyncio.get_running_loop().call_later(
                    self.silence_duration, self._finalize
                )

    def _finalize(self) -> None:
        self._silence_timer = None
        chunks, self._chunks = self._chunks, []
        self._recording = False
        if not chunks or self._gated():
            return

        wav = prepare_utterance(chunks, self.source.sample_rate, self.target_rms)
        logger.info(f"Utterance finalized: {len(chunks)} frames, {len(wav)} bytes")
        self._emit(wav)

    def _cancel_timer(self) -> None:
        if self._silence_timer is not None:
            self._silence_timer.cancel()
            self._silence_timer = None

    def pause(self) -> None:
        self._paused = True
        self._cancel_timer()
        self._chunks = []
        self._recording = False

    def resume(self) -> None:
        self._paused = False
        # Frames queued during playback would feed the reply back in
        self.source.flush()
        if self.is_running:
            self._on_status(VoiceStatus.LISTENING)


class StreamingEndpointDetector(Detector):
    """
    Endpointing on top of a streaming transcription session.

    Final tokens accumulate in committed text; the latest batch's non-final
    tokens replace the preview. Each batch with final tokens re-arms the
    endpoint timer. When it fires with committed text and no turn running,
    the stream is cancelled and the text is emitted.
    """

    def __init__(self,
                 source: AudioSource,
                 state: SessionState,
                 transcriber,
                 endpoint_silence: float = DEFAULT_ENDPOINT_SILENCE_DURATION,
                 restart_backoff: float = DEFAULT_STREAM_RESTART_BACKOFF,
                 max_restarts: int = DEFAULT_MAX_STREAM_RESTARTS,
                 on_partial: Optional[PartialCallback] = None,
                 on_status: Optional[StatusCallback] = None,
                 on_error: Optional[ErrorCallback] = None):
        super().__init__(source, state, on_status, on_error)
        self.transcriber = transcriber
        self.endpoint_silence = endpoint_silence
        self.restart_backoff = restart_backoff
        self.max_restarts = max_restarts
        self._on_partial = on_partial

        self.committed = ""
        self.preview = ""
        self._audio_queue: Optional[asyncio.Queue] = None
        self._stream_task: Optional[asyncio.Task] = None
        self._endpoint_timer: Optional[asyncio.TimerHandle] = None
        self._restart_handle: Optional[asyncio.TimerHandle] = None
        self._failures = 0

    @property
    def partial_transcript(self) -> str:
        return self.committed + self.preview

    @property
    def stream_open(self) -> bool:
        return self._stream_task is not None and not self._stream_task.done()

    @property
    def failures(self) -> int:
        return self._failures

    def start(self, on_utterance_ready: ReadyCallback) -> None:
        super().start(on_utterance_ready)
        self._failures = 0
        self._open_stream()

    def process_frame(self, frame: bytes) -> None:
        if self._audio_queue is None or self._gated():
            return
        self._audio_queue.put_nowait(frame)

    def _open_stream(self) -> None:
        if self.stream_open:
            return
        self._audio_queue = asyncio.Queue()
        self._stream_task = asyncio.get_running_loop().create_task(
            self._consume(self._audio_queue)
        )
        logger.debug("Streaming session opened")

    async def _consume(self, queue: asyncio.Queue) -> None:
        async def audio():
            while True:
                chunk = await queue.get()
                if chunk is None:
                    return
                yield chunk

        received = False
        try:
            async for batch in self.transcriber.open_stream(audio()):
                if queue is not self._audio_queue:
                    return
                received = True
                self._failures = 0
                self.handle_tokens(batch)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Streaming transcription failed: {e}")
            if queue is self._audio_queue:
                self._on_stream_failure(e)
            return

        if queue is self._audio_queue and not self._paused:
            if received:
                logger.info("Streaming session closed by provider, reopening")
                self._stream_task = None
                self._open_stream()
            else:
                self._on_stream_failure(RuntimeError("Streaming session closed without results"))

    def handle_tokens(self, batch) -> None:
        """Fold one batch of tokens into the accumulators."""
        if self._paused:
            return
        finals = "".join(t.text for t in batch if t.is_final)
        self.preview = "".join(t.text for t in batch if not t.is_final)
        if finals:
            if self.committed and not self.committed[-1].isspace() and not finals[0].isspace():
                self.committed += " "
            self.committed += finals
            self._arm_endpoint_timer()

        if self._on_partial is not None:
            self._on_partial(self.committed, self.preview)
        if self.partial_transcript.strip():
            self._on_status(VoiceStatus.SPEAKING)

    def _arm_endpoint_timer(self) -> None:
        self._cancel_endpoint_timer()
        self._endpoint_timer = asyncio.get_running_loop().call_later(
            self.endpoint_silence, self._on_endpoint
        )

    def _on_endpoint(self) -> None:
        self._endpoint_timer = None
        text = self.committed.strip()
        if not text:
            return
        if self.state.turn_in_progress:
            logger.info(f"Dropping speech heard during a turn: {text}")
            self.committed = ""
            self.preview = ""
            if self._on_partial is not None:
                self._on_partial("", "")
            return

        logger.info(f"Endpoint detected: {text}")
        self._close_stream()
        self.committed = ""
        self.preview = ""
        self._emit(text)

    def _on_stream_failure(self, error: Exception) -> None:
        self._stream_task = None
        self._audio_queue = None
        self._report_error(error, "streaming_transcription")

        if self._failures >= self.max_restarts:
            logger.error(f"Giving up after {self._failures} consecutive stream failures")
            self._on_status(VoiceStatus.IDLE)
            self._report_error(RuntimeError("Not listening: transcription stream unavailable"),
                               "detection")
            return

        if self.state.microphone_active and not self.state.turn_in_progress and not self._paused:
            self._failures += 1
            logger.info(f"Restarting stream in {self.restart_backoff}s "
                        f"(attempt {self._failures}/{self.max_restarts})")
            self._restart_handle = asyncio.get_running_loop().call_later(
                self.restart_backoff, self._restart
            )

    def _restart(self) -> None:
        self._restart_handle = None
        if self.state.microphone_active and not self.state.turn_in_progress and not self._paused:
            self._open_stream()

    def _cancel_endpoint_timer(self) -> None:
        if self._endpoint_timer is not None:
            self._endpoint_timer.cancel()
            self._endpoint_timer = None

    def _close_stream(self) -> None:
        self._cancel_endpoint_timer()
        if self._restart_handle is not None:
            self._restart_handle.cancel()
            self._restart_handle = None
        if self._audio_queue is not None:
            self._audio_queue.put_nowait(None)
            self._audio_queue = None
        if self._stream_task is not None:
            self._stream_task.cancel()
            self._stream_task = None

    def pause(self) -> None:
        self._paused = True
        self._close_stream()
        self.committed = ""
        self.preview = ""

    def resume(self) -> None:
        self._paused = False
        if not self.is_running:
            return
        self.source.flush()
        self._open_stream()
        self._on_status(VoiceStatus.LISTENING)
