"""Command-line entry point for Behavior Observer."""
from __future__ import annotations

import argparse
import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import List, Optional

from observer_app.observation import __version__
from observer_app.observation.controllers import CONFIG_DIR, ConfigManager, ObservationController
from observer_app.observation.session import ObservationSession
from observer_app.observation.storage import ObservationStorage
from observer_app.reports.csv_export import CsvExporter, format_duration

LOG_DIR = CONFIG_DIR / "logs"
LOG_FILE = LOG_DIR / "app.log"


def configure_logging(verbose: bool = False) -> None:
    LOG_DIR.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(LOG_FILE, maxBytes=1024 * 1024, backupCount=3)
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=[handler, logging.StreamHandler()],
    )
    logging.info("Behavior Observer v%s starting", __version__)


def build_controller(config_manager: ConfigManager) -> ObservationController:
    cfg = config_manager.config
    storage = ObservationStorage(Path(cfg.db_path).expanduser())
    exporter = CsvExporter(Path(cfg.export_path).expanduser())
    session = ObservationSession(tick_interval=cfg.tick_interval)
    return ObservationController(storage, session, exporter, config_manager)


def _list(controller: ObservationController, _args: argparse.Namespace) -> int:
    observations = controller.list_observations()
    if not observations:
        print("No observations yet. Start your first observation!")
        return 0
    for obs in observations:
        stats = controller.get_stats(obs)
        print(
            f"{obs.id}  {obs.timestamp:%Y-%m-%d %H:%M}  {obs.student:<8} {obs.status.label:<14}"
            f" {format_duration(obs.duration):>8}  on-task {stats.on_task_percent}%"
        )
    return 0


def _stats(controller: ObservationController, args: argparse.Namespace) -> int:
    obs = controller.get_observation(args.observation_id)
    if obs is None:
        print(f"Observation {args.observation_id} not found", file=sys.stderr)
        return 1
    stats = controller.get_stats(obs)
    print(f"Observer: {obs.observer} | Student: {obs.student}")
    print(f"Duration: {format_duration(obs.duration)} ({'episodes' if stats.has_episodes else 'primary status only'})")
    print(f"On task: {stats.on_task_percent}%")
    print(f"Off task: {stats.off_task_percent}%")
    print(f"Transitioning: {stats.transition_percent}%")
    for ep in obs.episodes:
        print(f"  {ep.start_time:%H:%M:%S}  {ep.status.label:<14} {format_duration(ep.duration)}")
    return 0


def _export(controller: ObservationController, _args: argparse.Namespace) -> int:
    path = controller.export_csv()
    print(f"Exported observations to {path}")
    return 0


def _students(controller: ObservationController, _args: argparse.Namespace) -> int:
    for student in controller.recent_students():
        print(student)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="behavior-observer", description="Classroom behavior observations")
    parser.add_argument("--verbose", action="store_true", help="log debug output")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("list", help="list stored observations").set_defaults(handler=_list)
    stats = sub.add_parser("stats", help="show time-on-task for one observation")
    stats.add_argument("observation_id")
    stats.set_defaults(handler=_stats)
    sub.add_parser("export", help="export observations to CSV").set_defaults(handler=_export)
    sub.add_parser("students", help="show recently observed students").set_defaults(handler=_students)
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.verbose)
    controller = build_controller(ConfigManager())
    try:
        return args.handler(controller, args)
    finally:
        controller.close()


if __name__ == "__main__":
    sys.exit(main())
