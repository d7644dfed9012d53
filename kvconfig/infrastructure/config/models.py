"""
Configuration models and data structures.

Backend connection settings are read from already-loaded local configuration
(see :class:`~kvconfig.infrastructure.config.accessor.ConfigurationUtil`)
into typed dataclasses, one per backend.
"""

from dataclasses import dataclass, field
from typing import List, Optional

from ...core.domain.namespace import (
    CONFIG_PREFIX, get_max_retry_delay_ms, get_start_retry_delay_ms
)
from ...core.interfaces.sources import IConfigAccessor

DEFAULT_CONSUL_AGENT = "http://localhost:8500"


def split_hosts(hosts: Optional[str]) -> List[str]:
    """Split a comma separated host list, dropping blanks."""
    if not hosts:
        return []
    return [host.strip() for host in hosts.split(",") if host.strip()]


@dataclass
class LoggingConfig:
    """Logging configuration."""
    level: str = "INFO"
    log_directory: str = "logs"
    max_file_size: str = "10MB"
    backup_count: int = 5
    console_enabled: bool = True
    file_enabled: bool = False

    @classmethod
    def from_accessor(cls, accessor: IConfigAccessor) -> 'LoggingConfig':
        """Read ``kvconfig.logging.*`` keys, keeping defaults for absent ones."""
        config = cls()
        config.level = (accessor.get("kvconfig.logging.level") or config.level).upper()
        config.log_directory = accessor.get("kvconfig.logging.directory") or config.log_directory
        console = accessor.get_boolean("kvconfig.logging.console")
        if console is not None:
            config.console_enabled = console
        file_enabled = accessor.get_boolean("kvconfig.logging.file")
        if file_enabled is not None:
            config.file_enabled = file_enabled
        return config


@dataclass
class SourceSettings:
    """Backend-independent settings of a configuration source."""
    start_retry_delay_ms: int = 500
    max_retry_delay_ms: int = 900000
    fail_on_init_error: bool = False

    def __post_init__(self) -> None:
        """Validate settings after initialization."""
        if self.start_retry_delay_ms < 0:
            raise ValueError(
                f"Start retry delay must not be negative, got {self.start_retry_delay_ms}")
        if self.max_retry_delay_ms < self.start_retry_delay_ms:
            raise ValueError(
                f"Max retry delay {self.max_retry_delay_ms} is lower than "
                f"start retry delay {self.start_retry_delay_ms}")

    @classmethod
    def from_accessor(cls, accessor: IConfigAccessor, backend: str) -> 'SourceSettings':
        return cls(
            start_retry_delay_ms=get_start_retry_delay_ms(accessor, backend),
            max_retry_delay_ms=get_max_retry_delay_ms(accessor, backend),
            fail_on_init_error=bool(accessor.get_boolean(f"{CONFIG_PREFIX}.fail-on-init-error"))
        )


@dataclass
class ConsulSettings:
    """Consul agent connection settings."""
    agent: str = DEFAULT_CONSUL_AGENT
    token: Optional[str] = None
    ca: Optional[str] = None
    wait_seconds: int = 120

    @classmethod
    def from_accessor(cls, accessor: IConfigAccessor) -> 'ConsulSettings':
        prefix = f"{CONFIG_PREFIX}.consul"
        wait_seconds = accessor.get_integer(f"{prefix}.wait-seconds")
        return cls(
            agent=accessor.get(f"{prefix}.agent") or DEFAULT_CONSUL_AGENT,
            token=accessor.get(f"{prefix}.token"),
            ca=accessor.get(f"{prefix}.ca"),
            wait_seconds=wait_seconds if wait_seconds is not None else 120
        )


@dataclass
class EtcdSettings:
    """etcd cluster connection settings."""
    hosts: List[str] = field(default_factory=list)
    username: Optional[str] = None
    password: Optional[str] = None
    ca: Optional[str] = None
    timeout: float = 10.0
    wait_seconds: int = 120

    @property
    def has_credentials(self) -> bool:
        return bool(self.username) and bool(self.password)

    @classmethod
    def from_accessor(cls, accessor: IConfigAccessor) -> 'EtcdSettings':
        prefix = f"{CONFIG_PREFIX}.etcd"
        wait_seconds = accessor.get_integer(f"{prefix}.wait-seconds")
        return cls(
            hosts=split_hosts(accessor.get(f"{prefix}.hosts")),
            username=accessor.get(f"{prefix}.username"),
            password=accessor.get(f"{prefix}.password"),
            ca=accessor.get(f"{prefix}.ca"),
            wait_seconds=wait_seconds if wait_seconds is not None else 120
        )


@dataclass
class ZookeeperSettings:
    """ZooKeeper ensemble connection settings."""
    hosts: List[str] = field(default_factory=list)
    username: Optional[str] = None
    password: Optional[str] = None
    ca: Optional[str] = None
    session_timeout: float = 10.0
    connect_timeout: float = 15.0
    wait_seconds: int = 120

    @property
    def has_credentials(self) -> bool:
        return bool(self.username) and bool(self.password)

    @classmethod
    def from_accessor(cls, accessor: IConfigAccessor) -> 'ZookeeperSettings':
        prefix = f"{CONFIG_PREFIX}.zookeeper"
        wait_seconds = accessor.get_integer(f"{prefix}.wait-seconds")
        return cls(
            hosts=split_hosts(accessor.get(f"{prefix}.hosts")),
            username=accessor.get(f"{prefix}.username"),
            password=accessor.get(f"{prefix}.password"),
            ca=accessor.get(f"{prefix}.ca"),
            wait_seconds=wait_seconds if wait_seconds is not None else 120
        )
