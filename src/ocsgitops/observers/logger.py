# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/ocsgitops/observers/logger.py
from __future__ import annotations
import logging
from .events import BaseEvent


class LoggerObserver:
    """
    Mirrors events into the run log, tagged with the unit they concern.

    Failed cleanup steps are logged as warnings; everything else is trace.
    """

    def __init__(self, logger: logging.Logger):
        self.logger = logger

    def notify(self, event: BaseEvent) -> None:
        d = event.dict()
        d.pop("ts", None)
        d.pop("run_id", None)
        unit = d.pop("unit", None)

        tag = f"[{unit}] " if unit else ""
        body = " ".join(f"{k}={v}" for k, v in d.items() if v is not None)
        level = logging.WARNING if d.get("status") == "FAILED" else logging.DEBUG
        self.logger.log(level, "%s%s %s", tag, event.__class__.__name__, body)
