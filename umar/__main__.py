#!/usr/bin/env python3
"""
Main entry point for the UMAR roleplay trainer.
Allows running the package with: python -m umar
"""
import asyncio
import dataclasses
import signal
import sys

from .config import get_config
from .infrastructure.data import SCENARIOS, get_scenario_by_id
from .training import TrainingOrchestrator, EventType, STRATEGY_VAD, STRATEGY_STREAMING

STATUS_LABELS = {
    "listening": "🎧 Listening...",
    "speaking": "🗣️  Hearing you...",
    "processing": "🔍 Processing speech...",
    "ai-responding": "🤖 Customer is responding...",
    "idle": "⏸️  Not listening",
}


def _parse_float(arg: str, name: str, usage: str) -> float:
    try:
        return float(arg.split("=", 1)[1])
    except (ValueError, IndexError):
        print(f"❌ Invalid {name} value. Use {usage}")
        sys.exit(1)


def _render_event(event) -> None:
    """Print the live transcript and status changes."""
    if event.event_type == EventType.UTTERANCE_ADDED:
        who = "👤 You" if event.data["speaker"] == "agent" else "📞 Customer"
        print(f"{who}: {event.data['text']}")
        if event.data.get("roman"):
            print(f"   ({event.data['roman']})")
    elif event.event_type == EventType.STATUS_CHANGED:
        label = STATUS_LABELS.get(event.data["status"])
        if label:
            print(label)
    elif event.event_type == EventType.STAGE_CHANGED:
        print(f"➡️  Stage: {event.data['stage']}")
    elif event.event_type == EventType.ERROR_OCCURRED:
        print(f"⚠️  {event.data['component']}: {event.data['error_message']}")


async def _run_session(orchestrator: TrainingOrchestrator):
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, orchestrator.end_session)
    except NotImplementedError:
        pass

    def on_stdin():
        command = sys.stdin.readline().strip().lower()
        if command in ("m", "mute"):
            muted = orchestrator.toggle_mute()
            print("🔇 Muted" if muted else "🔈 Unmuted")
        elif command in ("q", "quit", "end"):
            orchestrator.end_session()

    try:
        loop.add_reader(sys.stdin.fileno(), on_stdin)
    except (NotImplementedError, OSError, ValueError):
        pass

    try:
        return await orchestrator.run()
    finally:
        try:
            loop.remove_reader(sys.stdin.fileno())
        except (NotImplementedError, OSError, ValueError):
            pass


def main():
    """Command-line interface for the training session."""

    # Load configuration from environment
    try:
        config = get_config()
    except ValueError as e:
        print(f"❌ Configuration Error: {e}")
        sys.exit(1)

    if "--list-scenarios" in sys.argv:
        for s in SCENARIOS:
            print(f"  {s.id:<20} {s.difficulty:<7} {s.name} ({s.persona.name}, {s.persona.emotion})")
        return

    overrides = {}
    for arg in sys.argv[1:]:
        if arg.startswith("--strategy="):
            strategy = arg.split("=", 1)[1]
            if strategy not in (STRATEGY_VAD, STRATEGY_STREAMING):
                print("❌ Invalid strategy. Use --strategy=vad or --strategy=streaming")
                sys.exit(1)
            overrides["detection_strategy"] = strategy
        elif arg.startswith("--threshold="):
            threshold = _parse_float(arg, "threshold", "--threshold=0.0 to --threshold=1.0")
            overrides["vad_threshold"] = max(0.0, min(1.0, threshold))
        elif arg.startswith("--silence="):
            silence = _parse_float(arg, "silence", "--silence=<seconds>, e.g. --silence=1.5")
            overrides["vad_silence_duration"] = max(0.1, silence)
            overrides["endpoint_silence_duration"] = max(0.1, silence)
        elif arg.startswith("--scenario="):
            scenario_id = arg.split("=", 1)[1]
            if get_scenario_by_id(scenario_id) is None:
                print(f"❌ Unknown scenario '{scenario_id}'. Use --list-scenarios to see them")
                sys.exit(1)
            overrides["scenario_id"] = scenario_id
    config = dataclasses.replace(config, **overrides)

    # TTS configuration with explicit flags taking precedence
    if "--text" in sys.argv or "--no-tts" in sys.argv:
        use_tts = False
    elif "--tts" in sys.argv or "--speech" in sys.argv:
        use_tts = True
    else:
        use_tts = config.enable_tts

    try:
        orchestrator = TrainingOrchestrator.from_config(config, use_tts=use_tts)
    except ValueError as e:
        print(f"❌ Configuration Error: {e}")
        sys.exit(1)
    orchestrator.event_bus.subscribe_all(_render_event)

    scenario = orchestrator.scenario
    if use_tts:
        print("🔊 TTS Mode: the customer speaks aloud (use --text or --no-tts to disable)")
    else:
        print("📝 Text Mode: replies are displayed as text only")
    if config.detection_strategy == STRATEGY_VAD:
        print(f"🎚️  Detection: energy VAD (threshold {config.vad_threshold}, "
              f"silence {config.vad_silence_duration}s)")
    else:
        print(f"🎚️  Detection: streaming endpointing (silence {config.endpoint_silence_duration}s)")
    print(f"🎭 Scenario: {scenario.name} - {scenario.persona.name} ({scenario.difficulty})")
    print("   Type 'm' + Enter to mute/unmute, 'q' + Enter or Ctrl-C to end the call")
    print(f"📝 Detailed logs: {config.log_file}")
    print("=" * 50)

    try:
        handoff = asyncio.run(_run_session(orchestrator))
    except RuntimeError as e:
        print(f"❌ {e}")
        sys.exit(1)

    print("\n" + "=" * 50)
    if handoff.ended_naturally:
        print("🎯 CALL COMPLETE")
    else:
        print(f"🛑 CALL ENDED ({handoff.end_reason})")
    print("=" * 50)
    print(f"⏱️  Duration: {handoff.duration_seconds}s, {len(handoff.transcript)} utterances")
    if orchestrator.handoff_path:
        print(f"📁 Session saved to: {orchestrator.handoff_path}")
    print(f"📈 Session metrics: {orchestrator.get_metrics()}")


if __name__ == "__main__":
    main()
