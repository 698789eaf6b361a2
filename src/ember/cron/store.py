"""JSON file store for cron jobs.

The whole collection is one document (``{"version": 1, "jobs": [...]}``)
rewritten on every save. Atomic writes use tempfile + fsync + os.replace().
"""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any

from ember.cron.types import Job

logger = logging.getLogger(__name__)

STORE_VERSION = 1


class JobStore:
    """Loads and persists the full job collection.

    Neither operation raises: an absent or corrupt file loads as empty, and a
    failed save is logged while the caller's in-memory state stays
    authoritative.
    """

    def __init__(self, path: Path) -> None:
        self._path = path

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> list[Job]:
        if not self._path.exists():
            return []

        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            logger.warning(
                "cron_store_load_failed",
                extra={"file.path": str(self._path), "error.message": str(e)},
            )
            return []

        records = data.get("jobs") if isinstance(data, dict) else None
        if not isinstance(records, list):
            return []

        jobs: list[Job] = []
        for index, record in enumerate(records):
            job = _parse_record(record)
            if job is None:
                logger.warning(
                    "cron_store_record_skipped",
                    extra={"file.path": str(self._path), "cron.record_index": index},
                )
                continue
            jobs.append(job)
        return jobs

    def save(self, jobs: list[Job]) -> bool:
        """Persist ``jobs``, returning whether the write succeeded."""
        document = {
            "version": STORE_VERSION,
            "jobs": [job.to_dict() for job in jobs],
        }
        try:
            _write_json_atomic(self._path, document)
        except Exception:
            logger.exception(
                "cron_store_save_failed", extra={"file.path": str(self._path)}
            )
            return False
        return True


def _parse_record(record: Any) -> Job | None:
    if not isinstance(record, dict):
        return None
    try:
        return Job.from_dict(record)
    except (TypeError, ValueError, AttributeError, OverflowError):
        return None


def _write_json_atomic(path: Path, data: dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(dir=path.parent, prefix=".jobs_", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(json.dumps(data, indent=2))
            f.write("\n")
            f.flush()
            os.fsync(f.fileno())
        Path(tmp).replace(path)
    except BaseException:
        try:
            Path(tmp).unlink()
        except OSError:
            pass
        raise
