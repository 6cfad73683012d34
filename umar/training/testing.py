"""
Testing infrastructure with mock services for the training session.
"""
import asyncio
from typing import Any, Dict, List, Optional, Sequence, Union

import numpy as np

from .dialogue import DialogueEngine, Romanizer
from .orchestrator import TrainingOrchestrator
from ..infrastructure.audio.processing import AudioSource, float_to_pcm16
from ..infrastructure.audio.speech.stt import TranscriptToken
from ..infrastructure.data import Scenario, SessionHandoff, SessionRecorder, get_scenario_by_id
from ..config import SAMPLE_RATE_TARGET, FRAME_MS


def make_frame(amplitude: float, frame_ms: int = FRAME_MS, sr: int = SAMPLE_RATE_TARGET) -> bytes:
    """A constant-amplitude PCM16 frame; its normalized RMS equals |amplitude|."""
    n = int(sr * frame_ms / 1000)
    return float_to_pcm16(np.full(n, amplitude, dtype=np.float32))


class ScriptedAudioSource(AudioSource):
    """Audio source fed by the test instead of a microphone."""

    def __init__(self, frames: Sequence[bytes] = (), sample_rate: int = SAMPLE_RATE_TARGET):
        self.sample_rate = sample_rate
        self._pending = list(frames)
        self._queue: Optional[asyncio.Queue] = None
        self.opened = False
        self.closed = False
        self.flush_count = 0

    def open(self) -> None:
        self.opened = True

    def _ensure_queue(self) -> asyncio.Queue:
        if self._queue is None:
            self._queue = asyncio.Queue()
            for frame in self._pending:
                self._queue.put_nowait(frame)
            self._pending = []
        return self._queue

    def push(self, frame: bytes) -> None:
        self._ensure_queue().put_nowait(frame)

    async def frames(self):
        queue = self._ensure_queue()
        while not self.closed:
            frame = await queue.get()
            if frame is None:
                break
            yield frame

    def flush(self) -> None:
        self.flush_count += 1
        queue = self._ensure_queue()
        while not queue.empty():
            queue.get_nowait()

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self._ensure_queue().put_nowait(None)


class FailingAudioSource(ScriptedAudioSource):
    """A microphone the user refused to share."""

    def open(self) -> None:
        raise RuntimeError("Could not access microphone: permission denied")


class MockTranscriber:
    """Batch transcriber returning scripted texts; Exception entries are raised."""

    def __init__(self, responses: List[Union[str, Exception]]):
        self.responses = list(responses)
        self.requests: List[bytes] = []

    async def transcribe(self, wav_bytes: bytes) -> str:
        self.requests.append(wav_bytes)
        response = self.responses.pop(0) if self.responses else ""
        if isinstance(response, Exception):
            raise response
        return response


class MockStreamingTranscriber:
    """
    Streaming transcriber driven by the test.

    Each open_stream() call takes the next script: a list of token batches to
    yield, optionally followed by an Exception to raise. Once the script is
    exhausted the stream stays open, consuming audio, until cancelled.
    """

    def __init__(self, scripts: Optional[List[List[Any]]] = None, batch_delay: float = 0.0):
        self.scripts = list(scripts or [])
        self.batch_delay = batch_delay
        self.opened = 0
        self.audio_received: List[bytes] = []

    async def open_stream(self, audio):
        self.opened += 1
        script = self.scripts.pop(0) if self.scripts else []

        async def drain():
            async for chunk in audio:
                self.audio_received.append(chunk)

        drainer = asyncio.get_running_loop().create_task(drain())
        try:
            for item in script:
                if self.batch_delay:
                    await asyncio.sleep(self.batch_delay)
                if isinstance(item, Exception):
                    raise item
                yield [TranscriptToken(text=t, is_final=f) for t, f in item]
            await drainer
        finally:
            drainer.cancel()


class MockLLMClient:
    """Mock LLM client for testing."""

    def __init__(self, mock_responses: List[Union[str, Exception]], roman_response: Union[str, Exception] = "roman"):
        self.mock_responses = list(mock_responses)
        self.roman_response = roman_response
        self.request_history: List[Dict[str, Any]] = []

    def generate_content(self, prompt: str, system_instruction: Optional[str] = None,
                         temperature: float = 0.0, **kwargs) -> str:
        self.request_history.append({
            "prompt": prompt,
            "system_instruction": system_instruction,
            "temperature": temperature,
            "kwargs": kwargs
        })
        if system_instruction and "Roman Urdu" in system_instruction:
            response = self.roman_response
        elif self.mock_responses:
            response = self.mock_responses.pop(0)
        else:
            response = "جی، ٹھیک ہے۔"
        if isinstance(response, Exception):
            raise response
        return response

    @property
    def dialogue_requests(self) -> List[Dict[str, Any]]:
        return [r for r in self.request_history
                if not (r["system_instruction"] and "Roman Urdu" in r["system_instruction"])]


class MockSynthesizer:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.texts: List[str] = []

    async def synthesize(self, text: str) -> bytes:
        self.texts.append(text)
        if self.fail:
            raise RuntimeError("Text-to-speech failed: mock")
        return b"RIFF" + text.encode("utf-8")


class MockAudioPlayer:
    """Records what was played; observes the gate state during playback."""

    def __init__(self, state_probe=None, delay: float = 0.0, echo_source: Optional[ScriptedAudioSource] = None):
        self.played: List[bytes] = []
        self.state_probe = state_probe
        self.delay = delay
        self.echo_source = echo_source
        self.observed: List[Dict[str, bool]] = []
        self.stopped = 0

    async def play(self, audio: bytes) -> None:
        self.played.append(audio)
        if self.state_probe is not None:
            self.observed.append(self.state_probe())
        if self.echo_source is not None:
            # Loudspeaker output leaking back into the microphone
            for _ in range(5):
                self.echo_source.push(make_frame(0.3))
        if self.delay:
            await asyncio.sleep(self.delay)

    def stop(self) -> None:
        self.stopped += 1


class MockRecorder(SessionRecorder):
    def __init__(self):
        self.saved: List[SessionHandoff] = []

    def save(self, handoff: SessionHandoff) -> Optional[str]:
        self.saved.append(handoff)
        return None


def create_mock_training_setup(llm_responses: List[Union[str, Exception]] = (),
                               transcripts: List[Union[str, Exception]] = (),
                               streaming_scripts: Optional[List[List[Any]]] = None,
                               scenario: Optional[Scenario] = None,
                               strategy: str = "vad",
                               use_tts: bool = True,
                               player: Optional[MockAudioPlayer] = None,
                               **kwargs) -> Dict[str, Any]:
    """
    Create an orchestrator wired entirely to mocks, with short timers.

    Returns a dict holding the orchestrator and every mock for inspection.
    """
    scenario = scenario or get_scenario_by_id("billing_complaint")
    source = ScriptedAudioSource()
    llm_client = MockLLMClient(list(llm_responses))
    romanizer = Romanizer(llm_client)
    transcriber = MockTranscriber(list(transcripts))
    streaming = MockStreamingTranscriber(streaming_scripts) if strategy == "streaming" else None
    synthesizer = MockSynthesizer()
    player = player or MockAudioPlayer()
    recorder = MockRecorder()

    options = dict(
        vad_threshold=0.01,
        vad_silence_duration=0.05,
        endpoint_silence_duration=0.05,
        stream_restart_backoff=0.01,
        end_call_grace_seconds=0.01,
    )
    options.update(kwargs)

    orchestrator = TrainingOrchestrator(
        scenario=scenario,
        source=source,
        dialogue_engine=DialogueEngine(llm_client, romanizer),
        romanizer=romanizer,
        transcriber=transcriber,
        streaming_transcriber=streaming,
        synthesizer=synthesizer,
        player=player,
        recorder=recorder,
        strategy=strategy,
        use_tts=use_tts,
        **options
    )
    state = orchestrator.state
    player.state_probe = lambda: {
        "microphone_muted": state.microphone_muted,
        "detector_paused": orchestrator.detector.is_paused,
    }

    return {
        "orchestrator": orchestrator,
        "source": source,
        "llm_client": llm_client,
        "transcriber": transcriber,
        "streaming_transcriber": streaming,
        "synthesizer": synthesizer,
        "player": player,
        "recorder": recorder,
        "scenario": scenario,
    }


async def wait_for(predicate, timeout: float = 2.0, interval: float = 0.005) -> bool:
    """Poll until predicate() is true or the timeout passes."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while loop.time() < deadline:
        if predicate():
            return True
        await asyncio.sleep(interval)
    return predicate()


async def wait_idle(orchestrator: TrainingOrchestrator, timeout: float = 2.0) -> bool:
    """Wait until no turn is running."""
    return await wait_for(lambda: not orchestrator.state.turn_in_progress, timeout)
