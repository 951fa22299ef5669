"""Chart row formatting for the live display."""

from typing import Any, Dict, Iterable, List

from ..models.sensor_data import SensorSample


def format_chart_data(samples: Iterable[SensorSample]) -> List[Dict[str, Any]]:
    """Flatten samples into one row per point, indexed by position."""
    return [
        {
            "name": index,
            "accX": sample.acceleration.x,
            "accY": sample.acceleration.y,
            "accZ": sample.acceleration.z,
            "gyroX": sample.gyroscope.x,
            "gyroY": sample.gyroscope.y,
            "gyroZ": sample.gyroscope.z,
        }
        for index, sample in enumerate(samples)
    ]
