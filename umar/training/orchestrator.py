"""
Training session orchestrator: the turn-taking state machine.
"""
import asyncio
import logging
import time
from typing import Optional, Dict

from .schemas import (
    SessionState, ConversationStage, VoiceStatus,
    DialogueRequest, DialogueReply, is_affirmative
)
from .services import TranscriptionService, SpeechService, ConversationManager
from .dialogue import DialogueEngine, Romanizer
from .detection import Detector, EnergyVADDetector, StreamingEndpointDetector, UtterancePayload
from .prompts import TrainingPrompts, INTRO_GREETING, CLARIFICATION, FALLBACK_APOLOGY
from .events import (
    SessionEventBus, EventLogger, SessionMetrics,
    SessionStartedEvent, StageChangedEvent, StatusChangedEvent,
    UtteranceAddedEvent, PartialTranscriptEvent, TurnDiscardedEvent,
    ErrorOccurredEvent, SessionEndedEvent
)
from ..infrastructure.audio.processing import AudioSource
from ..infrastructure.data import (
    AGENT, SIMULATED_CUSTOMER, Scenario, SessionHandoff, SessionRecorder, JsonSessionRecorder,
    get_scenario_by_id, get_random_scenario
)
from ..infrastructure.llm import VertexRestClient
from ..utils import setup_logging
from ..config import (
    Config, DEFAULT_DETECTION_STRATEGY, DEFAULT_VAD_THRESHOLD, DEFAULT_VAD_SILENCE_DURATION,
    DEFAULT_ENDPOINT_SILENCE_DURATION, DEFAULT_STREAM_RESTART_BACKOFF, DEFAULT_MAX_STREAM_RESTARTS,
    DEFAULT_END_CALL_GRACE_SECONDS, DEFAULT_MAX_ROLEPLAY_EXCHANGES
)

logger = logging.getLogger("orchestrator")

STRATEGY_VAD = "vad"
STRATEGY_STREAMING = "streaming"


class TrainingOrchestrator:
    """
    Voice roleplay orchestrator using service-based architecture.

    Every detected utterance runs one turn: transcribe, record, dispatch on
    the conversation stage, speak the reply. Turns are strictly sequential;
    the detector is gated by SessionState while a turn runs and paused while
    the reply plays, so the simulated customer never hears itself.
    """

    def __init__(self,
                 scenario: Scenario,
                 source: AudioSource,
                 dialogue_engine: DialogueEngine,
                 romanizer: Optional[Romanizer] = None,
                 transcriber=None,
                 streaming_transcriber=None,
                 synthesizer=None,
                 player=None,
                 recorder: Optional[SessionRecorder] = None,
                 strategy: str = DEFAULT_DETECTION_STRATEGY,
                 vad_threshold: float = DEFAULT_VAD_THRESHOLD,
                 vad_silence_duration: float = DEFAULT_VAD_SILENCE_DURATION,
                 endpoint_silence_duration: float = DEFAULT_ENDPOINT_SILENCE_DURATION,
                 stream_restart_backoff: float = DEFAULT_STREAM_RESTART_BACKOFF,
                 max_stream_restarts: int = DEFAULT_MAX_STREAM_RESTARTS,
                 end_call_grace_seconds: float = DEFAULT_END_CALL_GRACE_SECONDS,
                 max_roleplay_exchanges: int = DEFAULT_MAX_ROLEPLAY_EXCHANGES,
                 use_tts: bool = True,
                 event_bus: Optional[SessionEventBus] = None):

        if strategy not in (STRATEGY_VAD, STRATEGY_STREAMING):
            raise ValueError(f"Unknown detection strategy: {strategy}")
        if strategy == STRATEGY_STREAMING and streaming_transcriber is None:
            raise ValueError("Streaming detection requires a streaming transcriber")

        self.scenario = scenario
        self.source = source
        self.strategy = strategy
        self.end_call_grace_seconds = end_call_grace_seconds
        self.max_roleplay_exchanges = max_roleplay_exchanges

        # Initialize event system
        self.event_bus = event_bus or SessionEventBus()
        self.event_logger = EventLogger()
        self.metrics = SessionMetrics()
        self.event_bus.subscribe_all(self.event_logger.handle_event)
        self.event_bus.subscribe_all(self.metrics.handle_event)

        # Services
        self.state = SessionState()
        self.conversation = ConversationManager(scenario, recorder)
        self.transcription = TranscriptionService(transcriber)
        self.speech = SpeechService(synthesizer, player, use_tts=use_tts)
        self.dialogue = dialogue_engine
        self.romanizer = romanizer

        if strategy == STRATEGY_STREAMING:
            self.detector: Detector = StreamingEndpointDetector(
                source, self.state, streaming_transcriber,
                endpoint_silence=endpoint_silence_duration,
                restart_backoff=stream_restart_backoff,
                max_restarts=max_stream_restarts,
                on_partial=self._on_partial,
                on_status=self._set_status,
                on_error=self._report_error,
            )
        else:
            self.detector = EnergyVADDetector(
                source, self.state,
                threshold=vad_threshold,
                silence_duration=vad_silence_duration,
                on_status=self._set_status,
                on_error=self._report_error,
            )

        self._turn_task: Optional[asyncio.Task] = None
        self._roleplay_exchanges = 0
        self._started = False
        self._ending = False
        self._ended: Optional[asyncio.Event] = None
        self.handoff: Optional[SessionHandoff] = None
        self.handoff_path: Optional[str] = None

    @classmethod
    def from_config(cls,
                    config: Config,
                    scenario: Optional[Scenario] = None,
                    use_tts: Optional[bool] = None,
                    event_bus: Optional[SessionEventBus] = None) -> 'TrainingOrchestrator':
        """
        Build an orchestrator wired to the microphone and Google services.

        Raises:
            ValueError: If the configured scenario id is unknown
        """
        setup_logging(config.log_file, config.log_level)

        if scenario is None:
            if config.scenario_id:
                scenario = get_scenario_by_id(config.scenario_id)
                if scenario is None:
                    raise ValueError(f"Unknown scenario: {config.scenario_id}")
            else:
                scenario = get_random_scenario()

        # Provider modules pull in the Google SDKs; import only when wiring real services
        from ..infrastructure.audio.processing import MicrophoneSource
        from ..infrastructure.audio.speech import (
            GoogleTranscriber, GoogleStreamingTranscriber, GoogleSynthesizer, AudioPlayer
        )

        if use_tts is None:
            use_tts = config.enable_tts

        llm_client = VertexRestClient(
            project=config.google_cloud_project,
            location=config.vertex_location,
            model=config.model_name,
            credentials_json=config.google_application_credentials,
        )
        romanizer = Romanizer(llm_client)

        transcriber = None
        streaming_transcriber = None
        if config.detection_strategy == STRATEGY_STREAMING:
            streaming_transcriber = GoogleStreamingTranscriber(language_code=config.language_code)
        else:
            transcriber = GoogleTranscriber(language_code=config.language_code)

        synthesizer = None
        player = None
        if use_tts:
            synthesizer = GoogleSynthesizer(
                voice=config.tts_voice,
                language_code=config.tts_language_code,
                speaking_rate=config.tts_speaking_rate,
            )
            player = AudioPlayer()

        return cls(
            scenario=scenario,
            source=MicrophoneSource(),
            dialogue_engine=DialogueEngine(llm_client, romanizer),
            romanizer=romanizer,
            transcriber=transcriber,
            streaming_transcriber=streaming_transcriber,
            synthesizer=synthesizer,
            player=player,
            recorder=JsonSessionRecorder(config.workdir),
            strategy=config.detection_strategy,
            vad_threshold=config.vad_threshold,
            vad_silence_duration=config.vad_silence_duration,
            endpoint_silence_duration=config.endpoint_silence_duration,
            end_call_grace_seconds=config.end_call_grace_seconds,
            max_roleplay_exchanges=config.max_roleplay_exchanges,
            use_tts=use_tts,
            event_bus=event_bus,
        )

    @property
    def session_id(self) -> str:
        return self.conversation.session_id

    @property
    def transcript(self):
        return self.conversation.transcript

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    async def start_session(self) -> None:
        """
        Open the microphone, start detection and speak the greeting.

        Raises:
            RuntimeError: If the microphone cannot be opened
        """
        if self._started:
            return
        self._started = True
        self._ended = asyncio.Event()

        self.source.open()
        self.state.activate_microphone()
        self.conversation.start()

        self.event_bus.emit(SessionStartedEvent(
            self.session_id, time.time(), self.scenario.id, self.strategy
        ))
        logger.info(f"Session {self.session_id} started: scenario={self.scenario.id} "
                    f"strategy={self.strategy}")

        self.detector.start(self.on_utterance_ready)

        # The greeting holds the turn slot so nothing is detected over it
        self.state.begin_turn()
        self._turn_task = asyncio.get_running_loop().create_task(self._greet())

    async def run(self) -> SessionHandoff:
        """Run the whole session and return its handoff."""
        await self.start_session()
        await self._ended.wait()
        return self.handoff

    def end_session(self, ended_naturally: bool = False, reason: str = "user_ended") -> Optional[SessionHandoff]:
        """
        Stop everything and hand the session off. Safe to call more than once;
        only the first call produces a handoff.
        """
        if self._ending:
            return self.handoff
        self._ending = True

        self.state.mark_ended()
        self.detector.stop()
        self.speech.stop()
        current = asyncio.current_task() if self._loop_running() else None
        if self._turn_task is not None and self._turn_task is not current:
            self._turn_task.cancel()
        self.source.close()

        handoff = self.conversation.build_handoff(ended_naturally, reason)
        self.handoff_path = self.conversation.save(handoff)
        self.handoff = handoff

        self.event_bus.emit(StatusChangedEvent(self.session_id, time.time(), VoiceStatus.IDLE.value))
        self.event_bus.emit(SessionEndedEvent(
            self.session_id, time.time(), ended_naturally, reason,
            handoff.duration_seconds, len(handoff.transcript)
        ))
        logger.info(f"Session {self.session_id} ended: reason={reason} "
                    f"naturally={ended_naturally} utterances={len(handoff.transcript)}")

        if self._ended is not None:
            self._ended.set()
        return handoff

    def toggle_mute(self) -> bool:
        """Flip the user mute; returns the new muted state."""
        muted = not self.state.user_muted
        self.state.set_user_muted(muted)
        if muted:
            self.detector.pause()
            self._set_status(VoiceStatus.IDLE)
            logger.info("Microphone muted by user")
        else:
            logger.info("Microphone unmuted by user")
            if not self.state.turn_in_progress and not self.state.session_ended:
                self.detector.resume()
        return muted

    @staticmethod
    def _loop_running() -> bool:
        try:
            asyncio.get_running_loop()
            return True
        except RuntimeError:
            return False

    # ------------------------------------------------------------------
    # Turn cycle
    # ------------------------------------------------------------------

    def on_utterance_ready(self, payload: UtterancePayload) -> None:
        """Detector callback; claims the turn slot before anything can yield."""
        if self.state.session_ended:
            return
        if not self.state.begin_turn():
            logger.warning("Utterance dropped: a turn is already in progress")
            self.event_bus.emit(TurnDiscardedEvent(self.session_id, time.time(), "turn_in_progress"))
            return
        self._turn_task = asyncio.get_running_loop().create_task(self._handle_turn(payload))

    async def _greet(self) -> None:
        try:
            await self._say(*INTRO_GREETING)
        finally:
            self._finish_turn()

    async def _handle_turn(self, payload: UtterancePayload) -> None:
        try:
            self._set_status(VoiceStatus.PROCESSING)

            try:
                text = await self.transcription.to_text(payload)
            except Exception as e:
                logger.error(f"Transcription failed, abandoning turn: {e}")
                self._report_error(e, "transcription")
                return

            if not text:
                logger.info("Empty utterance, resuming listening")
                self.event_bus.emit(TurnDiscardedEvent(self.session_id, time.time(), "empty_utterance"))
                return

            roman = None
            if self.romanizer is not None and self.transcription.needs_transcription(payload):
                roman = await self.romanizer.romanize(text) or None

            self._add_utterance(AGENT, text, roman)
            await self._dispatch(text)
        finally:
            self._finish_turn()

    def _finish_turn(self) -> None:
        self.state.end_turn()
        if self._turn_task is asyncio.current_task():
            self._turn_task = None
        if self.state.session_ended:
            return
        if self.state.user_muted:
            self._set_status(VoiceStatus.IDLE)
        else:
            self.detector.resume()

    async def _dispatch(self, text: str) -> None:
        stage = self.state.stage
        if stage == ConversationStage.INTRODUCTION:
            await self._handle_introduction(text)
        elif stage == ConversationStage.SCENARIO_ANNOUNCEMENT:
            await self._start_roleplay()
        else:
            await self._handle_roleplay(text)

    async def _handle_introduction(self, text: str) -> None:
        if is_affirmative(text):
            self._advance(ConversationStage.SCENARIO_ANNOUNCEMENT)
            await self._say(*TrainingPrompts.scenario_announcement(self.scenario))
        else:
            await self._say(*CLARIFICATION)

    async def _start_roleplay(self) -> None:
        self._advance(ConversationStage.ROLEPLAY)
        self._set_status(VoiceStatus.AI_RESPONDING)
        reply = await self._generate(DialogueRequest(
            is_opening_turn=True,
            agent_text="",
            scenario=self.scenario,
            transcript=self.transcript.utterances,
        ))
        await self._say(reply.text, reply.roman)

    async def _handle_roleplay(self, text: str) -> None:
        self._roleplay_exchanges += 1
        self._set_status(VoiceStatus.AI_RESPONDING)
        reply = await self._generate(DialogueRequest(
            is_opening_turn=False,
            agent_text=text,
            scenario=self.scenario,
            transcript=self.transcript.utterances,
        ))
        await self._say(reply.text, reply.roman)

        if reply.end_of_call:
            logger.info(f"Customer ended the call, handing off in {self.end_call_grace_seconds}s")
            await asyncio.sleep(self.end_call_grace_seconds)
            self.end_session(ended_naturally=True, reason="call_completed")
        elif self._roleplay_exchanges >= self.max_roleplay_exchanges:
            logger.info(f"Exchange limit of {self.max_roleplay_exchanges} reached")
            self.end_session(ended_naturally=False, reason="exchange_limit")

    async def _generate(self, request: DialogueRequest) -> DialogueReply:
        try:
            return await self.dialogue.generate(request)
        except Exception as e:
            logger.error(f"Dialogue generation failed, using fallback: {e}")
            self._report_error(e, "dialogue")
            return DialogueReply(text=FALLBACK_APOLOGY[0], roman=FALLBACK_APOLOGY[1])

    async def _say(self, text: str, roman: Optional[str] = None) -> None:
        """Record a customer line and speak it. A bare hang-up has no line."""
        if not text:
            return
        self._add_utterance(SIMULATED_CUSTOMER, text, roman)
        await self._speak(text)

    async def _speak(self, text: str) -> None:
        if self.state.user_muted:
            logger.info("User muted, skipping spoken output")
            return
        if not self.speech.use_tts:
            return

        self.detector.pause()
        self.state.begin_playback()
        self._set_status(VoiceStatus.AI_RESPONDING)
        try:
            await self.speech.speak(text)
        except Exception as e:
            logger.error(f"Speech output failed, skipping playback: {e}")
            self._report_error(e, "speech")
        finally:
            self.state.end_playback()

    # ------------------------------------------------------------------
    # State changes and events
    # ------------------------------------------------------------------

    def _advance(self, stage: ConversationStage) -> None:
        previous = self.state.stage
        self.state.advance_to(stage)
        self.event_bus.emit(StageChangedEvent(self.session_id, time.time(), previous.value, stage.value))

    def _set_status(self, status: VoiceStatus) -> None:
        if self.state.session_ended:
            return
        if self.state.set_status(status):
            self.event_bus.emit(StatusChangedEvent(self.session_id, time.time(), status.value))

    def _add_utterance(self, speaker: str, text: str, roman: Optional[str]) -> None:
        utterance = (self.conversation.add_agent(text, roman) if speaker == AGENT
                     else self.conversation.add_customer(text, roman))
        self.event_bus.emit(UtteranceAddedEvent(
            self.session_id, utterance.timestamp, speaker, utterance.text,
            utterance.roman, len(self.transcript) - 1
        ))

    def _on_partial(self, committed: str, preview: str) -> None:
        self.event_bus.emit(PartialTranscriptEvent(self.session_id, time.time(), committed, preview))

    def _report_error(self, error: Exception, component: str) -> None:
        self.event_bus.emit(ErrorOccurredEvent(
            self.session_id, time.time(), type(error).__name__, str(error), component
        ))

    def get_metrics(self) -> Dict[str, int]:
        """Get current session metrics."""
        return self.metrics.get_metrics()
