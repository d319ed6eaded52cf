import copy
import json
import logging
import os
import re
import tempfile
from datetime import date, datetime
from decimal import Decimal
from pathlib import Path
from typing import Any, Optional

from .errors import StorageError, ValidationError

log = logging.getLogger("rider.storage")

RIDER_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]{1,64}$")


def document_key(rider_id: str, kind: str) -> str:
    """Storage key for one of a rider's documents, e.g. ``rider_001.orders.json``."""
    if not isinstance(rider_id, str) or not RIDER_ID_PATTERN.match(rider_id):
        raise ValidationError(f"Invalid rider id: {rider_id!r}")
    return f"{rider_id}.{kind}.json"


def _encode(value: Any):
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


class DocumentCache:
    """Whole-document cache keyed by storage key.

    Documents are copied on the way in and out so that callers mutating what
    they read can never change what the next reader sees.
    """

    def __init__(self):
        self._documents: dict[str, Any] = {}

    def get(self, key: str) -> Optional[Any]:
        if key not in self._documents:
            return None
        return copy.deepcopy(self._documents[key])

    def put(self, key: str, document: Any) -> None:
        self._documents[key] = copy.deepcopy(document)

    def invalidate(self, key: Optional[str] = None) -> None:
        if key is None:
            self._documents.clear()
        else:
            self._documents.pop(key, None)

    def __contains__(self, key: str) -> bool:
        return key in self._documents


class JsonDocumentStore:
    def __init__(self, data_dir, cache: Optional[DocumentCache] = None):
        self.data_dir = Path(data_dir)
        self.cache = cache
        self._ensure_data_dir()

    def _ensure_data_dir(self) -> None:
        if not self.data_dir.exists():
            self.data_dir.mkdir(parents=True, exist_ok=True)
            log.info("Created data directory: %s", self.data_dir)

    def path_for(self, key: str) -> Path:
        return self.data_dir / key

    def read(self, key: str, default: Any = None) -> Any:
        if self.cache is not None and key in self.cache:
            log.debug("Cache hit for: %s", key)
            return self.cache.get(key)

        path = self.path_for(key)
        if not path.exists():
            log.debug("File not found: %s, using default value", key)
            return copy.deepcopy(default)

        try:
            with path.open("r", encoding="utf-8") as f:
                document = json.load(f, parse_float=Decimal)
        except (OSError, json.JSONDecodeError) as e:
            log.error("Error reading file %s: %s", key, e)
            raise StorageError(f"Could not read document {key}: {e}") from e

        if self.cache is not None:
            self.cache.put(key, document)
        log.debug("Read from file: %s", key)
        return document

    def write(self, key: str, document: Any) -> None:
        path = self.path_for(key)
        try:
            content = json.dumps(document, indent=2, ensure_ascii=False, default=_encode)
            fd, tmp_name = tempfile.mkstemp(dir=self.data_dir, prefix=f".{key}.", suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    f.write(content)
                os.replace(tmp_name, path)
            except BaseException:
                if os.path.exists(tmp_name):
                    os.unlink(tmp_name)
                raise
        except (OSError, TypeError, ValueError) as e:
            log.error("Error writing file %s: %s", key, e)
            if self.cache is not None:
                self.cache.invalidate(key)
            raise StorageError(f"Could not write document {key}: {e}") from e

        if self.cache is not None:
            self.cache.put(key, document)
        log.debug("Written to file: %s", key)

    def exists(self, key: str) -> bool:
        return self.path_for(key).exists()

    def delete(self, key: str) -> bool:
        path = self.path_for(key)
        if self.cache is not None:
            self.cache.invalidate(key)
        if not path.exists():
            return False
        try:
            path.unlink()
        except OSError as e:
            log.error("Error deleting file %s: %s", key, e)
            raise StorageError(f"Could not delete document {key}: {e}") from e
        log.info("Deleted file: %s", key)
        return True

    def clear_cache(self, key: Optional[str] = None) -> None:
        if self.cache is not None:
            self.cache.invalidate(key)
