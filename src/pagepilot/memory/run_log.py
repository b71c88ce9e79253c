"""Persist agent events to a lightweight JSON-lines audit trail."""

import json
import logging
from pathlib import Path
from typing import (
    Any,
    Callable,
    Dict,
    Iterator,
    List,
)

from pagepilot.config import settings
from pagepilot.core.schema import AgentEvent

logger = logging.getLogger(__name__)

_LOG_NAME = "pagepilot_runs.jsonl"


def log_path(data_dir: str | None = None) -> Path:
    """Location of the audit trail inside *data_dir* (default ``settings.DATA_DIR``)."""
    return Path(data_dir or settings.DATA_DIR) / _LOG_NAME


def init_run_log(path: Path | None = None) -> Path:
    """
    Ensure the log file exists.
    This is called at application startup to prepare the environment.
    """
    path = path or log_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    if not path.exists():
        path.touch()  # Create an empty file if it doesn't exist
    return path


def save_event(run_id: str, event: AgentEvent, path: Path | None = None) -> None:
    """Append one event of *run_id* to the audit trail."""
    path = path or log_path()
    record = {"run_id": run_id, "type": event.type.value, "data": event.data}
    with path.open("a", encoding="utf-8") as f:
        f.write(json.dumps(record, ensure_ascii=False, default=str) + "\n")


def event_logger(
    run_id: str, path: Path | None = None, forward: Callable[[AgentEvent], None] | None = None
) -> Callable[[AgentEvent], None]:
    """
    Build an event sink that records every event of *run_id* and then calls *forward*.

    Write failures are logged and do not interrupt the run.
    """
    path = init_run_log(path)

    def _sink(event: AgentEvent) -> None:
        try:
            save_event(run_id, event, path)
        except OSError as exc:
            logger.warning("Could not write run log %s: %s", path, exc)
        if forward is not None:
            forward(event)

    return _sink


def read_run(run_id: str, path: Path | None = None) -> List[Dict[str, Any]]:
    """Return the recorded events of *run_id*, oldest first."""
    return [record for record in _records(path or log_path()) if record.get("run_id") == run_id]


def _records(path: Path) -> Iterator[Dict[str, Any]]:
    if not path.exists():
        return
    with path.open(encoding="utf-8") as f:
        for line in f:
            line = line.strip()
            if not line:
                continue
            try:
                yield json.loads(line)
            except ValueError:
                logger.warning("Skipping malformed run log line in %s", path)
