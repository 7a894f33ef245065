# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/ocsgitops/observers/console.py
import typer

from .events import BaseEvent

_COLORS = {
    "RunFailed": typer.colors.RED,
    "RunSummary": typer.colors.CYAN,
    "UnitConverged": typer.colors.GREEN,
}


class ConsoleObserver:
    def notify(self, event: BaseEvent) -> None:
        d = event.dict()
        k = event.__class__.__name__
        data = ", ".join(f"{x}={y}" for x, y in d.items() if x not in ("ts", "run_id"))
        typer.secho(f"[{d['ts']}] {k} {data}", fg=_COLORS.get(k))
