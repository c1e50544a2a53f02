"""
Deployment record and per-run logging.

Every stage appends ``StageEvent`` entries to the run's ``DeploymentRecord``.
Each event is also written through the ``baredeploy`` logger, which the CLI
points at ``logs/deploy_<run id>.log``, and handed to any registered listener
(the console printer).
"""

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, List, Optional

logger = logging.getLogger(__name__)

SUCCESS = 25
logging.addLevelName(SUCCESS, "SUCCESS")

LOG_FORMAT = "%(asctime)s %(levelname)s: %(message)s"
LOG_DATEFMT = "%Y-%m-%dT%H:%M:%SZ"


class Outcome:
    """Event outcomes."""
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


_LEVELS = {
    Outcome.INFO: logging.INFO,
    Outcome.SUCCESS: SUCCESS,
    Outcome.WARNING: logging.WARNING,
    Outcome.ERROR: logging.ERROR,
}


@dataclass
class StageEvent:
    stage: str
    outcome: str
    message: str
    ts: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


Listener = Callable[[StageEvent], None]


@dataclass
class DeploymentRecord:
    """Ordered list of stage events for one run."""
    run_id: str
    events: List[StageEvent] = field(default_factory=list)
    listeners: List[Listener] = field(default_factory=list, repr=False)

    def emit(self, stage: str, outcome: str, message: str) -> StageEvent:
        if outcome not in _LEVELS:
            raise ValueError(f"Unknown outcome: {outcome}")
        event = StageEvent(stage=stage, outcome=outcome, message=message)
        self.events.append(event)
        logger.log(_LEVELS[outcome], f"[{stage}] {message}")
        for listener in self.listeners:
            listener(event)
        return event

    def info(self, stage: str, message: str) -> StageEvent:
        return self.emit(stage, Outcome.INFO, message)

    def success(self, stage: str, message: str) -> StageEvent:
        return self.emit(stage, Outcome.SUCCESS, message)

    def warning(self, stage: str, message: str) -> StageEvent:
        return self.emit(stage, Outcome.WARNING, message)

    def error(self, stage: str, message: str) -> StageEvent:
        return self.emit(stage, Outcome.ERROR, message)

    @property
    def warnings(self) -> List[str]:
        return [e.message for e in self.events if e.outcome == Outcome.WARNING]

    def stages(self, outcome: Optional[str] = None) -> List[str]:
        """Stage names in event order, optionally filtered by outcome."""
        return [e.stage for e in self.events if outcome is None or e.outcome == outcome]


def open_run_log(log_path: Path, level: int = logging.DEBUG) -> logging.Handler:
    """
    Attach a file handler for a run's log to the ``baredeploy`` logger.

    Lines look like ``2024-05-01T10:00:00Z INFO: [SyncLocalRepo] ...``.
    The caller detaches it with ``close_run_log``.
    """
    log_path.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(log_path, mode="a", encoding="utf-8")
    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATEFMT)
    formatter.converter = time.gmtime
    handler.setFormatter(formatter)
    handler.setLevel(level)

    package_logger = logging.getLogger("baredeploy")
    package_logger.setLevel(logging.DEBUG)
    package_logger.addHandler(handler)
    return handler


def close_run_log(handler: logging.Handler) -> None:
    logging.getLogger("baredeploy").removeHandler(handler)
    handler.close()
