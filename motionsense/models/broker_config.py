"""Broker configuration model for MotionSense."""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class BrokerConfig:
    """Connection settings for one session.

    Validation lives in ``motionsense.config``; instances are expected to be
    built through ``BrokerConfig.from_dict`` or ``load_broker_config``.
    """

    broker_url: str
    client_id: str
    topic: str
    username: Optional[str] = None
    password: Optional[str] = field(default=None, repr=False)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BrokerConfig":
        from ..config import validate_broker_config

        return cls(**validate_broker_config(data))

    def as_dict(self) -> Dict[str, Any]:
        return {
            "broker_url": self.broker_url,
            "client_id": self.client_id,
            "topic": self.topic,
            "username": self.username,
            "password": self.password,
        }
