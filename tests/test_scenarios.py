"""Scenario catalogue."""
import random

import pytest

from umar.infrastructure.data import (
    SCENARIOS, get_scenario_by_id, get_random_scenario, get_scenarios_by_difficulty
)


def test_catalogue_ids_are_unique():
    ids = [s.id for s in SCENARIOS]
    assert len(ids) == len(set(ids)) == 3


@pytest.mark.parametrize("scenario", SCENARIOS, ids=lambda s: s.id)
def test_scenarios_are_complete(scenario):
    assert scenario.difficulty in ("easy", "medium", "hard")
    assert scenario.name_urdu and scenario.description_urdu
    assert scenario.persona.name in scenario.system_prompt
    assert scenario.end_conditions
    data = scenario.to_dict()
    assert isinstance(data["end_conditions"], list)
    assert data["persona"]["emotion"] == scenario.persona.emotion


def test_lookup():
    assert get_scenario_by_id("technical_support").difficulty == "hard"
    assert get_scenario_by_id("does_not_exist") is None
    assert [s.id for s in get_scenarios_by_difficulty("easy")] == ["network_issue"]


def test_random_scenario_is_reproducible_with_seed():
    first = get_random_scenario(random.Random(7))
    second = get_random_scenario(random.Random(7))
    assert first is second
    assert first in SCENARIOS
