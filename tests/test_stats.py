import logging
from datetime import timedelta

from conftest import T0
from observer_app.observation.models import Episode, FinalizedRecord, Observation, Status
from observer_app.observation.stats import average_on_task, calculate_stats, percent


def episode(status, duration, offset=0):
    return Episode(status=status, start_time=T0 + timedelta(seconds=offset), duration=duration)


def observation(status=Status.ON_TASK, duration=0, episodes=()):
    return Observation(
        id="obs-1",
        timestamp=T0,
        observer="Ms. K",
        student="AB",
        status=status,
        duration=duration,
        episodes=list(episodes),
    )


def test_percentages_from_episodes():
    record = FinalizedRecord(
        duration=300,
        episodes=(episode(Status.ON_TASK, 220), episode(Status.OFF_TASK, 50), episode(Status.TRANSITIONING, 30)),
        primary_status=Status.ON_TASK,
    )
    stats = calculate_stats(record)
    assert (stats.on_task_percent, stats.off_task_percent, stats.transition_percent) == (73, 17, 10)
    assert stats.total_time == 300
    assert stats.has_episodes is True
    assert stats.percent_for(Status.OFF_TASK) == 17


def test_independent_rounding_may_not_sum_to_100():
    stats = calculate_stats(
        observation(duration=3, episodes=[episode(s, 1) for s in (Status.ON_TASK, Status.OFF_TASK, Status.TRANSITIONING)])
    )
    assert (stats.on_task_percent, stats.off_task_percent, stats.transition_percent) == (33, 33, 33)


def test_half_percent_rounds_up():
    assert percent(1, 8) == 13
    assert percent(3, 8) == 38
    assert percent(0, 0) == 0


def test_no_episodes_counts_whole_record_as_primary():
    stats = calculate_stats(observation(status=Status.TRANSITIONING, duration=120))
    assert (stats.on_task_percent, stats.off_task_percent, stats.transition_percent) == (0, 0, 100)
    assert stats.total_time == 120
    assert stats.has_episodes is False


def test_duration_mismatch_is_logged_but_not_corrected(caplog):
    record = observation(duration=100, episodes=[episode(Status.ON_TASK, 50), episode(Status.OFF_TASK, 40)])
    with caplog.at_level(logging.WARNING, logger="observer_app.observation.stats"):
        stats = calculate_stats(record)
    assert "Episode duration mismatch for observation obs-1" in caplog.text
    assert (stats.on_task_percent, stats.off_task_percent) == (56, 44)
    assert stats.total_time == 90


def test_mismatch_within_tolerance_is_silent(caplog):
    record = observation(duration=100, episodes=[episode(Status.ON_TASK, 98)])
    with caplog.at_level(logging.WARNING, logger="observer_app.observation.stats"):
        calculate_stats(record)
    assert caplog.text == ""


def test_average_on_task():
    records = [
        observation(status=Status.ON_TASK, duration=60),
        observation(status=Status.OFF_TASK, duration=60),
        observation(duration=4, episodes=[episode(Status.ON_TASK, 1), episode(Status.OFF_TASK, 3)]),
    ]
    # (100 + 0 + 25) / 3 = 41.67
    assert average_on_task(records) == 42
    assert average_on_task([]) == 0
