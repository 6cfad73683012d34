"""Energy VAD and streaming endpoint detection."""
import asyncio

from umar.infrastructure.audio.processing import frame_rms
from umar.infrastructure.audio.speech.stt import TranscriptToken
from umar.training.detection import EnergyVADDetector, StreamingEndpointDetector
from umar.training.schemas import SessionState, VoiceStatus
from umar.training.testing import (
    ScriptedAudioSource, MockStreamingTranscriber, make_frame, wait_for
)

LOUD = make_frame(0.2)
QUIET = make_frame(0.0)


def make_vad(threshold=0.01, silence=0.05):
    state = SessionState()
    state.activate_microphone()
    source = ScriptedAudioSource()
    detector = EnergyVADDetector(source, state, threshold=threshold, silence_duration=silence)
    return detector, state, source


def make_streaming(scripts, max_restarts=5, batch_delay=0.0):
    state = SessionState()
    state.activate_microphone()
    source = ScriptedAudioSource()
    transcriber = MockStreamingTranscriber(scripts, batch_delay=batch_delay)
    record = {"partials": [], "errors": [], "statuses": []}
    detector = StreamingEndpointDetector(
        source, state, transcriber,
        endpoint_silence=0.05,
        restart_backoff=0.01,
        max_restarts=max_restarts,
        on_partial=lambda committed, preview: record["partials"].append(committed + preview),
        on_status=record["statuses"].append,
        on_error=lambda error, component: record["errors"].append(component),
    )
    return detector, state, transcriber, record


# ---------------------------------------------------------------------------
# Energy VAD
# ---------------------------------------------------------------------------

def test_threshold_is_strict():
    async def scenario():
        detector, state, source = make_vad()
        at_threshold = make_frame(0.02)
        detector.threshold = frame_rms(at_threshold)
        ready = []
        detector.start(ready.append)

        for _ in range(10):
            detector.process_frame(QUIET)
        detector.process_frame(at_threshold)
        assert not detector.is_recording

        louder = make_frame(0.021)
        assert frame_rms(louder) > detector.threshold
        detector.process_frame(louder)
        assert detector.is_recording
        detector.stop()

    asyncio.run(scenario())


def test_silence_timer_emits_wav():
    async def scenario():
        detector, state, source = make_vad(silence=0.05)
        ready = []
        detector.start(ready.append)
        detector.process_frame(LOUD)
        detector.process_frame(LOUD)
        detector.process_frame(QUIET)
        await asyncio.sleep(0.15)
        assert len(ready) == 1
        assert isinstance(ready[0], bytes)
        assert ready[0][:4] == b"RIFF"
        assert not detector.is_recording
        detector.stop()

    asyncio.run(scenario())


def test_voice_cancels_pending_silence_timer():
    async def scenario():
        detector, state, source = make_vad(silence=0.2)
        ready = []
        detector.start(ready.append)
        detector.process_frame(LOUD)
        detector.process_frame(QUIET)
        await asyncio.sleep(0.1)
        detector.process_frame(LOUD)
        await asyncio.sleep(0.15)
        # The first silence would have ended the utterance by now
        assert ready == []
        assert detector.is_recording

        detector.process_frame(QUIET)
        await asyncio.sleep(0.35)
        assert len(ready) == 1
        detector.stop()

    asyncio.run(scenario())


def test_continued_silence_does_not_rearm_timer():
    async def scenario():
        detector, state, source = make_vad(silence=0.2)
        ready = []
        detector.start(ready.append)
        detector.process_frame(LOUD)
        detector.process_frame(QUIET)
        await asyncio.sleep(0.1)
        detector.process_frame(QUIET)
        await asyncio.sleep(0.15)
        assert len(ready) == 1
        detector.stop()

    asyncio.run(scenario())


def test_frames_skipped_while_gated():
    async def scenario():
        detector, state, source = make_vad()
        ready = []
        detector.start(ready.append)

        state.begin_turn()
        detector.process_frame(LOUD)
        assert not detector.is_recording
        state.end_turn()

        state.begin_playback()
        detector.process_frame(LOUD)
        assert not detector.is_recording
        state.end_playback()

        state.set_user_muted(True)
        detector.process_frame(LOUD)
        assert not detector.is_recording
        state.set_user_muted(False)

        detector.process_frame(LOUD)
        assert detector.is_recording
        detector.stop()

    asyncio.run(scenario())


def test_frames_skipped_without_live_microphone_or_after_end():
    async def scenario():
        detector, state, source = make_vad()
        state.microphone_active = False
        detector.start(lambda payload: None)

        detector.process_frame(LOUD)
        assert not detector.is_recording

        state.activate_microphone()
        state.session_ended = True
        detector.process_frame(LOUD)
        assert not detector.is_recording
        detector.stop()

    asyncio.run(scenario())


def test_pause_drops_partial_recording():
    async def scenario():
        detector, state, source = make_vad(silence=0.05)
        ready = []
        detector.start(ready.append)
        detector.process_frame(LOUD)
        detector.process_frame(QUIET)
        detector.pause()
        await asyncio.sleep(0.1)
        assert ready == []
        assert not detector.is_recording

        flushes = source.flush_count
        detector.resume()
        assert source.flush_count == flushes + 1
        assert not detector.is_paused
        detector.stop()

    asyncio.run(scenario())


def test_frames_from_source_drive_detection():
    async def scenario():
        detector, state, source = make_vad(silence=0.05)
        ready = []
        detector.start(ready.append)
        for frame in (LOUD, LOUD, QUIET, QUIET):
            source.push(frame)
        assert await wait_for(lambda: len(ready) == 1)
        detector.stop()

    asyncio.run(scenario())


# ---------------------------------------------------------------------------
# Streaming endpoint detection
# ---------------------------------------------------------------------------

def test_final_tokens_commit_and_preview_is_replaced():
    async def scenario():
        detector, state, transcriber, record = make_streaming([])
        detector.handle_tokens([TranscriptToken("میرا", True), TranscriptToken(" bil", False)])
        assert detector.committed == "میرا"
        assert detector.preview == " bil"

        detector.handle_tokens([TranscriptToken(" bill", False)])
        assert detector.committed == "میرا"
        assert detector.preview == " bill"
        assert detector.partial_transcript == "میرا bill"
        assert record["partials"] == ["میرا bil", "میرا bill"]
        detector.stop()

    asyncio.run(scenario())


def test_endpoint_emits_committed_text_and_clears():
    async def scenario():
        detector, state, transcriber, record = make_streaming([
            [[("mera bill", True)], [(" zyada", False)]],
        ])
        ready = []
        detector.start(ready.append)
        assert await wait_for(lambda: ready == ["mera bill"])
        assert detector.committed == ""
        assert detector.preview == ""
        assert not detector.stream_open
        detector.stop()

    asyncio.run(scenario())


def test_new_final_tokens_rearm_endpoint_timer():
    async def scenario():
        detector, state, transcriber, record = make_streaming([
            [[("mera", True)], [("bill", True)], [("zyada aaya", True)]],
        ], batch_delay=0.02)
        ready = []
        detector.start(ready.append)
        assert await wait_for(lambda: len(ready) == 1)
        assert ready == ["mera bill zyada aaya"]
        detector.stop()

    asyncio.run(scenario())


def test_no_emit_while_turn_in_progress():
    async def scenario():
        detector, state, transcriber, record = make_streaming([[[("hello", True)]]])
        ready = []
        detector.start(ready.append)
        state.begin_turn()
        await asyncio.sleep(0.15)
        assert ready == []
        detector.stop()

    asyncio.run(scenario())


def test_speech_heard_during_turn_is_dropped_not_held():
    async def scenario():
        detector, state, transcriber, record = make_streaming([[[("hello", True)]]])
        ready = []
        detector.start(ready.append)
        state.begin_turn()
        await asyncio.sleep(0.15)
        assert ready == []
        assert detector.committed == ""
        assert record["partials"][-1] == ""

        state.end_turn()
        detector.handle_tokens([TranscriptToken(text="naya sawal", is_final=True)])
        assert await wait_for(lambda: ready == ["naya sawal"])
        detector.stop()

    asyncio.run(scenario())


def test_frames_forwarded_to_open_stream():
    async def scenario():
        detector, state, transcriber, record = make_streaming([])
        detector.start(lambda payload: None)
        detector.source.push(LOUD)
        assert await wait_for(lambda: transcriber.audio_received == [LOUD])
        detector.stop()

    asyncio.run(scenario())


def test_restarts_are_bounded_then_idle():
    async def scenario():
        detector, state, transcriber, record = make_streaming(
            [[RuntimeError("socket closed")] for _ in range(10)], max_restarts=5
        )
        detector.start(lambda payload: None)
        assert await wait_for(lambda: "detection" in record["errors"])
        await asyncio.sleep(0.05)
        assert transcriber.opened == 6
        assert record["statuses"][-1] == VoiceStatus.IDLE
        assert record["errors"].count("streaming_transcription") == 6
        detector.stop()

    asyncio.run(scenario())


def test_no_restart_while_turn_in_progress():
    async def scenario():
        detector, state, transcriber, record = make_streaming([[RuntimeError("boom")]])
        detector.start(lambda payload: None)
        state.begin_turn()
        assert await wait_for(lambda: "streaming_transcription" in record["errors"])
        await asyncio.sleep(0.05)
        assert transcriber.opened == 1
        detector.stop()

    asyncio.run(scenario())


def test_pause_cancels_stream_and_resume_reopens():
    async def scenario():
        detector, state, transcriber, record = make_streaming([])
        detector.start(lambda payload: None)
        assert await wait_for(lambda: transcriber.opened == 1)
        assert detector.stream_open

        detector.pause()
        assert not detector.stream_open
        detector.resume()
        assert await wait_for(lambda: transcriber.opened == 2)
        assert detector.stream_open
        detector.stop()

    asyncio.run(scenario())
