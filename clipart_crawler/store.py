"""Single-slot hand-off of detection results between sniffing and resolution."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Optional, Protocol

from .config import default_store_path
from .models import DetectionResult

logger = logging.getLogger("clipart_crawler")


class DetectionStore(Protocol):
    """Last-write-wins slot; staleness is judged by the reader."""

    def put(self, result: DetectionResult) -> None: ...

    def get(self) -> Optional[DetectionResult]: ...


class MemoryDetectionStore:
    """In-process slot shared by a sniffer and an orchestrator."""

    def __init__(self, initial: Optional[DetectionResult] = None) -> None:
        self._result = initial

    def put(self, result: DetectionResult) -> None:
        self._result = result

    def get(self) -> Optional[DetectionResult]:
        return self._result


class JsonFileDetectionStore:
    """Slot persisted as one JSON document so separate runs can share it."""

    def __init__(self, path: Optional[Path] = None) -> None:
        self.path = path or default_store_path()

    def put(self, result: DetectionResult) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp_path.write_text(json.dumps(result.to_dict(), indent=2), encoding="utf-8")
        tmp_path.replace(self.path)
        logger.debug("Stored detection for %s in %s", result.source_origin, self.path)

    def get(self) -> Optional[DetectionResult]:
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as exc:
            logger.warning("Could not read detection store %s: %s", self.path, exc)
            return None
        try:
            data = json.loads(raw)
            if not isinstance(data, dict):
                raise ValueError("expected a JSON object")
            return DetectionResult.from_dict(data)
        except ValueError as exc:
            logger.warning("Ignoring corrupt detection store %s: %s", self.path, exc)
            return None
