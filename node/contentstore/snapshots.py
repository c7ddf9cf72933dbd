# one JSON file per collection, written atomically
import json
import logging
import os
import tempfile
import time
from pathlib import Path
from typing import Any, Dict, List

from pydantic import TypeAdapter

from .errors import PersistenceFailure

log = logging.getLogger(__name__)


class SnapshotBackend:
    """
    Reads and writes whole-collection snapshots under a data directory.
    Knows nothing about the records inside them.
    """

    def __init__(self, data_dir: str) -> None:
        self.data_dir = Path(data_dir)

    def path_for(self, name: str) -> Path:
        return self.data_dir / f"{name}.json"

    def load(self, name: str, adapter: TypeAdapter, default: Any) -> Any:
        """
        Return the validated snapshot, or default when there is none.
        An unreadable snapshot is moved aside so the next write cannot
        silently replace the only copy of it.
        """
        path = self.path_for(name)
        if not path.exists():
            return default

        try:
            return adapter.validate_json(path.read_bytes())
        except (OSError, ValueError):
            log.exception("Error loading snapshot %s", path)

        quarantine = path.with_name(f"{path.name}.corrupt-{int(time.time())}")
        try:
            os.replace(path, quarantine)
            log.warning("Moved unreadable snapshot to %s", quarantine)
        except OSError:
            log.exception("Could not move unreadable snapshot %s aside", path)
        return default

    def write(self, name: str, data: Any) -> bool:
        """
        Atomically replace the snapshot of one collection.
        Returns False (and logs) instead of raising on I/O errors.
        """
        path = self.path_for(name)
        try:
            self._write_atomic(path, data)
            return True
        except (OSError, TypeError, ValueError):
            log.exception("Error saving snapshot %s", path)
            return False

    def write_backup(self, payload: Dict[str, Any]) -> Path:
        path = self.data_dir / f"backup_{int(time.time() * 1000)}.json"
        try:
            self._write_atomic(path, payload)
        except (OSError, TypeError, ValueError) as e:
            log.exception("Error writing backup %s", path)
            raise PersistenceFailure(f"Failed to write backup: {e}") from e
        return path

    def describe(self, names) -> List[Dict[str, Any]]:
        files = []
        for name in names:
            path = self.path_for(name)
            exists = path.exists()
            files.append(
                {
                    "name": path.name,
                    "exists": exists,
                    "size": path.stat().st_size if exists else 0,
                }
            )
        return files

    def _write_atomic(self, path: Path, data: Any) -> None:
        self.data_dir.mkdir(parents=True, exist_ok=True)
        body = json.dumps(data, indent=2)
        fd, tmp = tempfile.mkstemp(dir=str(self.data_dir), prefix=f".{path.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(body)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp, path)
        except BaseException:
            try:
                os.unlink(tmp)
            except OSError:
                pass
            raise
