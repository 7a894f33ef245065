# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/ocsgitops/logging/log.py

from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Mapping, Optional
import uuid

LOGGER_NAME = "ocsgitops"


def init_logging(
    *,
    command: str,
    base_dir: Optional[Path] = None,
    verbose: bool = False,
    context: Optional[Mapping[str, object]] = None,
) -> tuple[logging.Logger, str, Path]:
    """
    Set up logging for one CLI command run.

    The file handler keeps the full DEBUG trace in
    ``<base_dir>/<command>-<timestamp>-<run_id>.log``; the console shows INFO
    (DEBUG with --verbose). *context* (units, repo, branch, ...) is written
    at the top of the file so a log can be read on its own.

    Returns (logger, run_id, log_path).
    """
    run_id = str(uuid.uuid4())

    base_dir = Path(base_dir).expanduser() if base_dir else Path.home() / ".ocsgitops" / "logs"
    base_dir.mkdir(parents=True, exist_ok=True)

    ts = datetime.now(timezone.utc).strftime("%Y%m%d-%H%M%S")
    log_path = base_dir / f"{command}-{ts}-{run_id}.log"

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(logging.DEBUG)
    # re-initialising within one process (tests, repeated commands) must not leak file handles
    for h in list(logger.handlers):
        h.close()
    logger.handlers.clear()
    logger.propagate = False

    formatter = logging.Formatter(
        "%(asctime)s | %(levelname)-7s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    fh = logging.FileHandler(log_path, encoding="utf-8")
    fh.setLevel(logging.DEBUG)
    fh.setFormatter(formatter)

    ch = logging.StreamHandler()
    ch.setLevel(logging.DEBUG if verbose else logging.INFO)
    ch.setFormatter(formatter)

    logger.addHandler(fh)
    logger.addHandler(ch)

    logger.info("=== ocsgitops %s (run_id=%s) ===", command, run_id)
    for key, value in (context or {}).items():
        logger.debug("%s=%s", key, value)
    logger.debug("log_file=%s", log_path)

    return logger, run_id, log_path
