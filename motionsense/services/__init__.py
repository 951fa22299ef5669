"""Application services for MotionSense.

This package contains the recording workflow built on top of the
telemetry client:
- Sliding sample window for live display
- Recording controller (start/stop/save, activity registry)
- Persistence collaborators
- Chart formatting
"""

from .chart import format_chart_data
from .recording import RecordingController, RecordingState, RecordingStatus, SaveResult
from .sample_window import SampleWindow
from .storage import JsonFileSink, SampleSink

__all__ = [
    "RecordingController",
    "RecordingState",
    "RecordingStatus",
    "SaveResult",
    "SampleWindow",
    "SampleSink",
    "JsonFileSink",
    "format_chart_data",
]
