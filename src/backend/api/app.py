from __future__ import annotations

from typing import Optional

from fastapi import FastAPI

from pipelines.data_source import BankDataSource
from pipelines.repository import Repository
from pipelines.scheduler import Scheduler

from . import accounts, demo, executions, system


API_PREFIX = "/api"


def create_app(
    scheduler: Scheduler,
    repository: Repository,
    *,
    bank: Optional[BankDataSource] = None,
    title: str = "Autobank",
    manage_scheduler: bool = False,
) -> FastAPI:
    """
    Build the operator-facing HTTP app.

    `bank` backs the account listing and, when it is a DemoBankClient, the demo routes.
    With `manage_scheduler`, the scheduler thread is started and stopped with the app.
    """
    app = FastAPI(title=title)
    app.state.scheduler = scheduler
    app.state.repository = repository
    app.state.bank = bank

    if manage_scheduler:

        @app.on_event("startup")
        def start_scheduler() -> None:
            scheduler.start()

        @app.on_event("shutdown")
        def stop_scheduler() -> None:
            scheduler.stop(timeout=30)

    app.include_router(system.router, prefix=API_PREFIX)
    app.include_router(executions.router, prefix=API_PREFIX)
    app.include_router(accounts.router, prefix=API_PREFIX)
    app.include_router(demo.router, prefix=API_PREFIX)

    @app.get(f"{API_PREFIX}/health")
    def health():
        return {"status": "ok", "scheduler_running": scheduler.is_running}

    return app
