# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

#src/stratum/logging/log.py

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from stratum.observers.events import new_run_id

DEFAULT_LOG_DIR = Path.home() / ".stratum" / "logs"


def init_logging(
    *,
    base_dir: Path | None = None,
    name: str = "stratum",
    verbose: bool = False,
    run_id: Optional[str] = None,
) -> tuple[logging.Logger, str, Path]:
    """
    Initializes:
      - a per-run log file with the full DEBUG trace
      - a console handler (INFO, or DEBUG when --debug is passed)
      - returns run_id so observers and the engine can reuse it
    """
    run_id = run_id or new_run_id()

    if base_dir is None:
        base_dir = DEFAULT_LOG_DIR
    base_dir.mkdir(parents=True, exist_ok=True)

    log_path = base_dir / f"{name}-{run_id}.log"

    logger = logging.getLogger(name)
    logger.setLevel(logging.DEBUG)
    for h in list(logger.handlers):
        h.close()
    logger.handlers.clear()
    logger.propagate = False

    formatter = logging.Formatter(
        "%(asctime)s | %(levelname)-7s | %(threadName)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    fh = logging.FileHandler(log_path)
    fh.setLevel(logging.DEBUG)
    fh.setFormatter(formatter)

    ch = logging.StreamHandler()
    ch.setLevel(logging.DEBUG if verbose else logging.INFO)
    ch.setFormatter(formatter)

    logger.addHandler(fh)
    logger.addHandler(ch)

    logger.info("=== stratum run started ===")
    logger.info("run_id=%s", run_id)
    logger.info("log_file=%s", log_path)

    return logger, run_id, log_path
