"""
Data management infrastructure for transcripts, scenarios and session handoff.
"""

from .conversations import AGENT, SIMULATED_CUSTOMER, Utterance, Transcript, SessionHandoff
from .recorder import SessionRecorder, JsonSessionRecorder
from .scenarios import (
    CustomerPersona, Scenario, SCENARIOS,
    get_scenario_by_id, get_random_scenario, get_scenarios_by_difficulty
)

__all__ = [
    'AGENT',
    'SIMULATED_CUSTOMER',
    'Utterance',
    'Transcript',
    'SessionHandoff',
    'SessionRecorder',
    'JsonSessionRecorder',
    'CustomerPersona',
    'Scenario',
    'SCENARIOS',
    'get_scenario_by_id',
    'get_random_scenario',
    'get_scenarios_by_difficulty',
]
