"""
Local configuration infrastructure.

Loading of files and environment variables, the ordered source accessor,
typed backend settings and CA certificate handling.
"""

from .accessor import ConfigurationUtil, LocalConfigurationSource
from .crypto import CertificateBundle, load_ca_certificate, prepare_ca_bundle
from .loader import ConfigLoader, flatten
from .models import (
    ConsulSettings, EtcdSettings, LoggingConfig, SourceSettings, ZookeeperSettings
)

__all__ = [
    "ConfigurationUtil",
    "LocalConfigurationSource",
    "CertificateBundle",
    "load_ca_certificate",
    "prepare_ca_bundle",
    "ConfigLoader",
    "flatten",
    "ConsulSettings",
    "EtcdSettings",
    "LoggingConfig",
    "SourceSettings",
    "ZookeeperSettings",
]
