"""Configuration objects for broker-reconciler."""

from dataclasses import dataclass, field
from pathlib import Path

from mashumaro import DataClassDictMixin
from mashumaro.codecs.yaml import yaml_decode
from mashumaro.config import BaseConfig

from .dispatcher.workqueue import WorkQueueConfig
from .exceptions import InputException

__all__ = ["ControllerConfig"]

DEFAULT_REDIS_IMAGE = "redis/redis-stack-server:7.2.0-v2"
DEFAULT_BROKER_IMAGE = "gcr.io/triggermesh/core/redis-broker:latest"


@dataclass
class ControllerConfig(DataClassDictMixin):
    """Configuration for the BrokerController."""

    workers: int = 2
    """Number of workers reconciling brokers concurrently."""

    cluster_domain: str = "cluster.local"
    """DNS suffix used when building broker addresses."""

    redis_image: str = DEFAULT_REDIS_IMAGE
    """Image of the Redis workload deployed for a broker."""

    redis_port: int = 6379
    """Port the Redis workload and service listen on."""

    broker_image: str = DEFAULT_BROKER_IMAGE
    """Broker workload image when the broker spec does not name one."""

    queue: WorkQueueConfig = field(default_factory=WorkQueueConfig)
    """Backoff settings of the reconcile work queue."""

    class Config(BaseConfig):
        forbid_extra_keys = True

    def __post_init__(self) -> None:
        if self.workers < 1:
            raise InputException(
                f"Invalid controller configuration: workers must be at least 1, got {self.workers}"
            )

    @classmethod
    def parse_yaml(cls, content: str) -> "ControllerConfig":
        """Parse a serialized configuration."""
        try:
            config = yaml_decode(content or "{}", cls)
        except InputException:
            raise
        except Exception as err:
            raise InputException(f"Invalid controller configuration: {err}") from err
        return config

    @classmethod
    def from_file(cls, path: Path) -> "ControllerConfig":
        """Read the configuration from a YAML file."""
        try:
            content = path.read_text(encoding="utf-8")
        except OSError as err:
            raise InputException(f"Failed to read config file {path}: {err}") from err
        return cls.parse_yaml(content)
