"""Recording workflow on top of the telemetry client."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Tuple

from ..const import DEFAULT_ACTIVITIES, WINDOW_SIZE
from ..core.exceptions import (
    BusyError,
    DuplicateActivityError,
    NoDataError,
    SaveError,
    ValidationError,
)
from ..core.telemetry_client import ConnectionState, FallbackReason, TelemetryClient
from ..models.broker_config import BrokerConfig
from ..models.sensor_data import SensorSample
from .chart import format_chart_data
from .sample_window import SampleWindow
from .storage import SampleSink

_LOGGER = logging.getLogger(__name__)


class RecordingState(str, Enum):
    IDLE = "idle"
    RECORDING = "recording"


@dataclass(frozen=True)
class SaveResult:
    activity: str
    count: int
    samples: Tuple[SensorSample, ...]
    location: Any = None


@dataclass(frozen=True)
class RecordingStatus:
    """Snapshot handed to the display layer."""

    state: RecordingState
    activity: Optional[str]
    selected_activity: Optional[str]
    connection_state: ConnectionState
    simulated: bool
    fallback_reason: Optional[FallbackReason]
    total_collected: int
    pending_samples: int
    window: Tuple[SensorSample, ...]


def normalize_activity(name: Any) -> str:
    if not isinstance(name, str):
        return ""
    return name.strip().lower()


class RecordingController:
    """Idle/Recording state machine owning the sample window and log.

    ``start``, ``stop``, ``save`` and sample arrival are serialized by one
    asyncio lock, so the window and the log have a single writer at a time.
    """

    def __init__(
        self,
        client: Optional[TelemetryClient] = None,
        *,
        config: Optional[BrokerConfig] = None,
        sink: Optional[SampleSink] = None,
        activities: Iterable[str] = DEFAULT_ACTIVITIES,
        window_size: int = WINDOW_SIZE,
    ) -> None:
        """Initialize the controller.

        Args:
            client: Telemetry client to drive; a new one is built if omitted
            config: Broker settings, None to record simulated data
            sink: Persistence collaborator used by ``save``
            activities: Initial known activities
            window_size: Number of samples kept for live display
        """
        self._client = client or TelemetryClient()
        self._config = config
        self._sink = sink
        self._window_size = window_size
        self._activities: List[str] = []
        for name in activities:
            normalized = normalize_activity(name)
            if normalized and normalized not in self._activities:
                self._activities.append(normalized)
        self._selected: Optional[str] = None
        self._state = RecordingState.IDLE
        self._activity: Optional[str] = None
        self._window = SampleWindow(window_size)
        self._window.freeze()
        self._log: List[SensorSample] = []
        self._total_collected = 0
        self._simulated = False
        self._fallback_reason: Optional[FallbackReason] = None
        self._started_at: Optional[int] = None
        self._lock = asyncio.Lock()

    @property
    def client(self) -> TelemetryClient:
        return self._client

    @property
    def state(self) -> RecordingState:
        return self._state

    @property
    def is_recording(self) -> bool:
        return self._state is RecordingState.RECORDING

    @property
    def activities(self) -> Tuple[str, ...]:
        return tuple(self._activities)

    @property
    def selected_activity(self) -> Optional[str]:
        return self._selected

    @property
    def activity(self) -> Optional[str]:
        """Label of the current or most recent recording."""
        return self._activity

    @property
    def window(self) -> Tuple[SensorSample, ...]:
        return self._window.snapshot()

    @property
    def collected(self) -> Tuple[SensorSample, ...]:
        """Accumulated samples not yet saved."""
        return tuple(self._log)

    @property
    def total_collected(self) -> int:
        return self._total_collected

    def configure(self, config: Optional[BrokerConfig]) -> None:
        """Set broker settings for the next recording."""
        if self.is_recording:
            raise BusyError("Cannot change broker configuration while recording")
        self._config = config

    def add_activity(self, name: str) -> str:
        """Add an activity and select it.

        Raises:
            ValidationError: If the name is blank or a recording is running
            DuplicateActivityError: If the name is already known
        """
        normalized = normalize_activity(name)
        if not normalized:
            raise ValidationError("Please enter a valid activity name")
        if self.is_recording:
            raise ValidationError("Cannot add activities while recording")
        if normalized in self._activities:
            raise DuplicateActivityError(f"Activity '{normalized}' already exists")
        self._activities.append(normalized)
        self._selected = normalized
        _LOGGER.info(f"Activity '{normalized}' added")
        return normalized

    def select_activity(self, name: str) -> str:
        normalized = normalize_activity(name)
        if self.is_recording:
            raise ValidationError("Cannot change activity while recording")
        if normalized not in self._activities:
            raise ValidationError(f"Unknown activity '{name}'")
        self._selected = normalized
        return normalized

    async def start(self, activity_label: Optional[str] = None):
        """Start streaming for ``activity_label`` with an empty window and log.

        Falls back to the selected activity when no label is given.

        Returns:
            The telemetry client's ConnectResult

        Raises:
            ValidationError: If no activity label is available
            BusyError: If already recording
            ConnectError, SubscribeError: If the telemetry client fails to
                start; the controller stays Idle and keeps the previous
                recording
        """
        async with self._lock:
            if self.is_recording:
                raise BusyError(f"Already recording '{self._activity}'")
            label = normalize_activity(
                activity_label if activity_label is not None else self._selected
            )
            if not label:
                raise ValidationError("Please select an activity first")

            try:
                result = await self._client.connect(self._config, self._on_sample)
            except Exception as exc:
                # the previous recording stays available for save
                _LOGGER.error(f"Failed to start recording for '{label}': {exc}")
                raise

            # samples wait on the lock, so none land before this point
            self._window = SampleWindow(self._window_size)
            self._log = []
            self._total_collected = 0
            self._activity = label
            self._state = RecordingState.RECORDING
            self._simulated = result.simulated
            self._fallback_reason = result.fallback_reason
            self._started_at = int(time.time() * 1000)
            _LOGGER.info(
                f"Recording started for '{label}'"
                + (" (simulated data)" if result.simulated else "")
            )
            return result

    async def _on_sample(self, sample: SensorSample) -> None:
        async with self._lock:
            if self._state is not RecordingState.RECORDING:
                return
            self._log.append(sample)
            self._window.append(sample)
            self._total_collected += 1

    async def stop(self) -> int:
        """Stop streaming and freeze the window.

        Returns:
            Number of samples collected in this recording
        """
        async with self._lock:
            if not self.is_recording:
                if _LOGGER.isEnabledFor(logging.DEBUG):
                    _LOGGER.debug("Stop requested while idle")
                return self._total_collected
            await self._client.disconnect()
            self._state = RecordingState.IDLE
            self._window.freeze()
            _LOGGER.info(
                f"Recording stopped: {self._total_collected} samples collected "
                f"for '{self._activity}'"
            )
            return self._total_collected

    async def save(self) -> SaveResult:
        """Hand the accumulated log to the persistence collaborator.

        The log is cleared only after the collaborator succeeds.

        Raises:
            ValidationError: If a recording is running
            NoDataError: If nothing has been collected
            SaveError: If no collaborator is configured or it fails
        """
        async with self._lock:
            if self.is_recording:
                raise ValidationError("Stop recording before saving")
            if not self._log:
                raise NoDataError("No data has been collected to save")
            if self._sink is None:
                raise SaveError("No persistence collaborator configured")

            samples = tuple(self._log)
            activity = self._activity
            try:
                location = await self._sink.save(activity, samples, self._metadata())
            except Exception as exc:
                _LOGGER.error(f"Saving {len(samples)} samples for '{activity}' failed: {exc}")
                raise SaveError(str(exc)) from exc

            self._log = []
            _LOGGER.info(f"Data saved: {len(samples)} data points for '{activity}'")
            return SaveResult(activity=activity, count=len(samples), samples=samples, location=location)

    def _metadata(self) -> Dict[str, Any]:
        config = self._client.config or self._config
        return {
            "simulated": self._simulated,
            "fallback_reason": self._fallback_reason.value if self._fallback_reason else None,
            "started_at": self._started_at,
            "topic": config.topic if config else None,
            "client_id": config.client_id if config else None,
        }

    async def reset(self) -> None:
        """Stop any recording and discard the window and log."""
        async with self._lock:
            if self.is_recording:
                await self._client.disconnect()
                self._state = RecordingState.IDLE
            self._window = SampleWindow(self._window_size)
            self._window.freeze()
            self._log = []
            self._total_collected = 0
            self._activity = None
            self._simulated = False
            self._fallback_reason = None
            self._started_at = None

    def chart_data(self) -> List[Dict[str, Any]]:
        return format_chart_data(self._window.snapshot())

    def status(self) -> RecordingStatus:
        return RecordingStatus(
            state=self._state,
            activity=self._activity,
            selected_activity=self._selected,
            connection_state=self._client.state,
            simulated=self._simulated,
            fallback_reason=self._fallback_reason,
            total_collected=self._total_collected,
            pending_samples=len(self._log),
            window=self._window.snapshot(),
        )
