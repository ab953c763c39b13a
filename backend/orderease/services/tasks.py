# Overview: In-process background jobs (revoked-token purge, temp-token rotation).

from __future__ import annotations

import threading

from flask import Flask

from ..extensions import db
from . import maintenance_service


class PeriodicJob:
    """Runs func inside an app context every interval seconds on a daemon thread."""

    def __init__(self, app: Flask, name: str, func, interval: int):
        self.app = app
        self.name = name
        self.func = func
        self.interval = interval
        self._stop = threading.Event()
        self._thread = threading.Thread(target=self._loop, name=f"orderease-{name}", daemon=True)

    def start(self) -> None:
        self._thread.start()

    def stop(self, timeout: float | None = None) -> None:
        self._stop.set()
        self._thread.join(timeout)

    def run_once(self) -> None:
        with self.app.app_context():
            try:
                self.func()
            except Exception:
                db.session.rollback()
                self.app.logger.exception("Background job %s failed", self.name)
            finally:
                db.session.remove()

    def _loop(self) -> None:
        while not self._stop.wait(self.interval):
            self.run_once()


def start_background_jobs(app: Flask) -> list[PeriodicJob]:
    jobs = [
        PeriodicJob(
            app,
            "purge-revoked-tokens",
            maintenance_service.purge_revoked_tokens,
            app.config["REVOKED_TOKEN_PURGE_INTERVAL"],
        ),
        PeriodicJob(
            app,
            "rotate-temp-tokens",
            maintenance_service.rotate_temp_tokens,
            app.config["TEMP_TOKEN_ROTATE_INTERVAL"],
        ),
    ]
    for job in jobs:
        job.start()
    app.extensions["orderease_jobs"] = jobs
    app.logger.info("Started %d background jobs", len(jobs))
    return jobs
