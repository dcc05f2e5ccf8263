from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path


logger = logging.getLogger("autobank")


def _ensure_backend_on_path() -> None:
    backend_dir = Path(__file__).resolve().parents[1]
    if str(backend_dir) not in sys.path:
        sys.path.insert(0, str(backend_dir))


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Poll bank transactions, run transfer rules and serve the operator API."
    )
    parser.add_argument(
        "--bank",
        choices=("demo", "live"),
        default=None,
        help="Bank data source (defaults to AUTOBANK_BANK, then 'demo').",
    )
    parser.add_argument(
        "--demo",
        action="store_const",
        const="demo",
        dest="bank",
        help="Shorthand for --bank demo.",
    )
    parser.add_argument(
        "--database-url",
        default=None,
        help="SQLAlchemy database URL (defaults to AUTOBANK_DATABASE_URL).",
    )
    parser.add_argument(
        "--poll-interval",
        type=float,
        default=None,
        help="Seconds between scheduled polls (defaults to AUTOBANK_POLL_INTERVAL_SECONDS).",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run a single poll cycle, print its report as JSON and exit.",
    )
    parser.add_argument(
        "--no-seed",
        action="store_false",
        dest="seed_demo_rules",
        help="Do not add the sample rules to an empty database in demo mode.",
    )
    parser.add_argument("--host", default=None, help="HTTP bind host (defaults to AUTOBANK_HOST).")
    parser.add_argument("--port", type=int, default=None, help="HTTP port (defaults to AUTOBANK_PORT).")
    return parser


def main() -> int:
    _ensure_backend_on_path()

    from common.rules_engine.config import SchedulerConfig
    from pipelines.data_source import get_bank_client
    from pipelines.demo_bank import sample_rules
    from pipelines.engine import RuleEngine
    from pipelines.scheduler import Scheduler
    from pipelines.settings import get_app_settings
    from pipelines.sql_repository import SqlRepository

    args = _build_parser().parse_args()
    settings = get_app_settings()

    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    bank_name = args.bank or settings.bank
    database_url = args.database_url or settings.database_url
    scheduler_config = settings.scheduler_config()
    if args.poll_interval is not None:
        if args.poll_interval <= 0:
            raise SystemExit("--poll-interval must be > 0.")
        scheduler_config = SchedulerConfig(
            poll_interval_seconds=args.poll_interval,
            enabled=scheduler_config.enabled,
        )

    repository = SqlRepository(database_url)
    repository.create_tables()

    if bank_name == "demo" and args.seed_demo_rules and not repository.list_rules():
        for rule in sample_rules():
            repository.create_rule(rule)
        logger.info("Seeded %d demo rule(s)", len(sample_rules()))

    bank = get_bank_client(bank_name)
    engine = RuleEngine(bank, repository, config=settings.engine_config())
    scheduler = Scheduler(engine, scheduler_config)
    logger.info("Using %s bank, database %s", bank_name, database_url)

    if args.once:
        report = scheduler.trigger_poll()
        print(json.dumps(report.model_dump(mode="json") if report else None, indent=2))
        return 0

    import uvicorn

    from api.app import create_app

    app = create_app(scheduler, repository, bank=bank, manage_scheduler=True)
    uvicorn.run(app, host=args.host or settings.host, port=args.port or settings.port)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
