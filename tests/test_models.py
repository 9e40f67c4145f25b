from datetime import timedelta

import pytest

from conftest import T0
from observer_app.observation.models import (
    Episode,
    FinalizedRecord,
    Observation,
    ObservationContext,
    Prompt,
    PromptEffectiveness,
    Status,
)


def test_status_parse():
    assert Status.parse("off-task") is Status.OFF_TASK
    assert Status.parse(Status.ON_TASK) is Status.ON_TASK
    assert Status.TRANSITIONING.label == "Transitioning"
    with pytest.raises(ValueError):
        Status.parse("asleep")
    with pytest.raises(ValueError):
        Status.parse(None)


def test_episode_between_rounds_to_whole_seconds():
    episode = Episode.between(Status.OFF_TASK, T0, T0 + timedelta(seconds=12.5))
    assert episode.duration == 12
    assert episode.end_time - episode.start_time == timedelta(seconds=12.5)
    assert len(episode.id) == 32


def test_episode_from_dict_handles_js_timestamps():
    episode = Episode.from_dict({"id": "e1", "status": "on-task", "startTime": "2024-03-04T09:00:00.000Z", "duration": 40})
    assert episode.start_time == T0
    assert episode.end_time is None
    assert episode.duration == 40


def test_finalized_record_status_is_primary():
    record = FinalizedRecord(duration=10, episodes=(Episode(Status.ON_TASK, T0, 10),), primary_status=Status.ON_TASK)
    assert record.status == Status.ON_TASK
    assert record.episode_time == 10


def test_context_from_dict_accepts_legacy_who_and_prompts():
    context = ObservationContext.from_dict(
        {
            "who": "Peer",
            "what": "Math",
            "prompts": [{"type": "Verbal", "timestamp": "2024-03-04T09:01:00+00:00", "effectiveness": "effective"}],
        }
    )
    assert context.who == ["Peer"]
    assert context.notes == ""
    assert context.prompts == [
        Prompt(type="Verbal", timestamp=T0 + timedelta(minutes=1), effectiveness=PromptEffectiveness.EFFECTIVE)
    ]


def test_observation_from_record():
    record = FinalizedRecord(
        duration=30,
        episodes=(Episode(Status.OFF_TASK, T0, 30),),
        primary_status=Status.ON_TASK,
        context={"who": ["Adult"], "where": "Library"},
    )
    obs = Observation.from_record(record, observer=" Ms. K ", student="AB", timestamp=T0)
    assert obs.observer == "Ms. K"
    assert obs.status == Status.ON_TASK
    assert obs.duration == 30
    assert obs.context.where == "Library"
    assert Observation.from_dict(obs.to_dict()) == obs


def test_episode_from_dict_requires_start_time():
    with pytest.raises(ValueError):
        Episode.from_dict({"id": "e1", "status": "off-task", "duration": 5})
