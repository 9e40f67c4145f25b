import copy
from datetime import datetime, timezone

import pytest

from observer_app.observation.migrations import LEGACY_EPOCH, record_version, upgrade
from observer_app.observation.models import SCHEMA_VERSION, Observation, Status

LEGACY = {
    "id": "1700000000000",
    "timestamp": "2023-11-14T22:13:20.000Z",
    "observer": "Ms. K",
    "student": "AB",
    "status": "off-task",
    "duration": 90,
    "episodes": [{"status": "on-task", "startTime": "2023-11-14T22:13:30.000Z", "duration": 30}],
    "context": {"who": "Peer", "what": "Math", "when": "AM", "where": "Classroom", "why": "Unclear", "behavior": "Calling out"},
}


def test_legacy_who_string_becomes_list():
    assert record_version(LEGACY) == 0
    upgraded = upgrade(LEGACY)
    assert upgraded["context"]["who"] == ["Peer"]
    assert upgraded["schema_version"] == SCHEMA_VERSION


def test_missing_fields_filled_and_behavior_lifted():
    upgraded = upgrade(LEGACY)
    assert upgraded["behavior"] == "Calling out"
    assert "behavior" not in upgraded["context"]
    assert upgraded["context"]["notes"] == ""
    assert upgraded["context"]["prompts"] == []
    assert upgraded["episodes"][0]["id"]
    assert upgrade(LEGACY)["episodes"][0]["id"] == upgraded["episodes"][0]["id"]


def test_upgrade_does_not_mutate_input():
    original = copy.deepcopy(LEGACY)
    upgrade(LEGACY)
    assert LEGACY == original


def test_v1_record_without_episodes():
    record = {"id": "x", "status": "on-task", "duration": 10, "context": {"who": ["Teacher"]}}
    upgraded = upgrade(record)
    assert upgraded["episodes"] == []
    assert upgraded["behavior"] == ""
    assert upgraded["context"]["who"] == ["Teacher"]


def test_episode_without_start_time_uses_record_timestamp():
    record = copy.deepcopy(LEGACY)
    del record["episodes"][0]["startTime"]
    upgraded = upgrade(record)
    assert upgraded["episodes"][0]["startTime"] == LEGACY["timestamp"]


def test_current_record_unchanged():
    current = upgrade(LEGACY)
    assert upgrade(current) == current


def test_future_version_rejected():
    with pytest.raises(ValueError):
        upgrade({"id": "x", "schema_version": SCHEMA_VERSION + 1})


def test_upgraded_payload_loads_as_observation():
    obs = Observation.from_dict(upgrade(LEGACY))
    assert obs.status == Status.OFF_TASK
    assert obs.context.who == ["Peer"]
    assert obs.episodes[0].status == Status.ON_TASK
    assert obs.episodes[0].start_time.tzinfo is not None
    assert obs.behavior == "Calling out"


def test_episode_without_any_start_gets_fixed_instant():
    record = copy.deepcopy(LEGACY)
    del record["timestamp"]
    del record["episodes"][0]["startTime"]
    upgraded = upgrade(record)
    assert upgraded["episodes"][0]["startTime"] == LEGACY_EPOCH

    episode = Observation.from_dict(upgraded).episodes[0]
    assert episode.start_time == datetime(1970, 1, 1, tzinfo=timezone.utc)
    assert episode.duration == 30
