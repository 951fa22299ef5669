"""Persistence collaborators for saved recordings.

Export layout:
  {base_dir}/{activity}/{activity}_{epoch_millis}.json

Structure:
{
  "activity": "walking",
  "saved_at": 1700000000000,
  "sample_count": 5,
  "metadata": {...},
  "samples": [{"acceleration": {...}, "gyroscope": {...}, "timestamp": ...}]
}
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import re
import time
from typing import Any, Dict, Mapping, Optional, Protocol, Sequence

from ..models.sensor_data import SensorSample

_LOGGER = logging.getLogger(__name__)

EXPORT_BASE_DIR = os.path.join(".storage", "motionsense_recordings")

_UNSAFE_CHARS = re.compile(r"[^a-z0-9_-]+")


class SampleSink(Protocol):
    """Receives a finished recording."""

    async def save(
        self,
        activity: str,
        samples: Sequence[SensorSample],
        metadata: Mapping[str, Any],
    ) -> Any:
        ...


def _slug(activity: str) -> str:
    return _UNSAFE_CHARS.sub("_", activity.strip().lower()).strip("_") or "activity"


def build_document(
    activity: str, samples: Sequence[SensorSample], metadata: Mapping[str, Any]
) -> Dict[str, Any]:
    return {
        "activity": activity,
        "saved_at": int(time.time() * 1000),
        "sample_count": len(samples),
        "metadata": dict(metadata),
        "samples": [sample.as_dict() for sample in samples],
    }


class JsonFileSink:
    """Writes each saved recording to its own JSON file."""

    def __init__(self, base_dir: Optional[str] = None) -> None:
        self.base_dir = base_dir or EXPORT_BASE_DIR

    def recording_path(self, activity: str, saved_at: int) -> str:
        slug = _slug(activity)
        return os.path.join(self.base_dir, slug, f"{slug}_{saved_at}.json")

    def write(self, activity: str, samples: Sequence[SensorSample], metadata: Mapping[str, Any]) -> str:
        """Blocking write; returns the file path."""
        document = build_document(activity, samples, metadata)
        path = self.recording_path(activity, document["saved_at"])
        os.makedirs(os.path.dirname(path), exist_ok=True)
        tmp_path = f"{path}.tmp"
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(document, f, ensure_ascii=False, indent=2)
        os.replace(tmp_path, path)
        _LOGGER.info(f"Saved {len(samples)} samples for '{activity}' to {path}")
        return path

    async def save(
        self,
        activity: str,
        samples: Sequence[SensorSample],
        metadata: Mapping[str, Any],
    ) -> str:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self.write, activity, list(samples), dict(metadata))
