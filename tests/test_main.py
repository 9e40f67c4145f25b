from conftest import build_controller as build, run_for
from observer_app import main as app_main
from observer_app.observation.models import Status


def test_parser_requires_command():
    parser = app_main.build_parser()
    args = parser.parse_args(["stats", "abc"])
    assert args.observation_id == "abc"
    assert args.handler is app_main._stats


def test_list_and_stats_commands(tmp_path, clock, capsys):
    controller = build(tmp_path, clock)
    assert app_main._list(controller, None) == 0
    assert "No observations yet" in capsys.readouterr().out

    controller.start_observation("Ms. K", "AB", Status.OFF_TASK)
    run_for(controller.session, clock, 90)
    saved = controller.end_observation()

    app_main._list(controller, None)
    listing = capsys.readouterr().out
    assert saved.id in listing
    assert "1m 30s" in listing

    args = app_main.build_parser().parse_args(["stats", saved.id])
    assert app_main._stats(controller, args) == 0
    report = capsys.readouterr().out
    assert "Off task: 100%" in report
    assert "On task: 0%" in report

    missing = app_main.build_parser().parse_args(["stats", "nope"])
    assert app_main._stats(controller, missing) == 1
    controller.close()
