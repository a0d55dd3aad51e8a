"""
Connection options, from code or from a YAML file.

config.yaml:

    wcferry:
      host: 127.0.0.1
      port: 10086
      recv_pyq: false
      print_traffic: false
      cache_dir: /tmp/wcferry
      socket_options:
        send_timeout: 5000
        recv_timeout: 5000
"""

import ipaddress
import logging
import re
from dataclasses import dataclass, field, fields
from typing import Any, Optional, Self

import yaml

from .exceptions import WcfConfigurationError
from .io import ClientConst
from .utils import default_cache_dir, ensure_dir

logger = logging.getLogger(__name__)


@dataclass
class WcfOptions:
    host: str = ClientConst.DEFAULT_HOST
    port: int = ClientConst.DEFAULT_PORT
    socket_options: dict = field(default_factory=dict)
    cache_dir: str = field(default_factory=default_cache_dir)
    recv_pyq: bool = False
    print_traffic: bool = False

    def __post_init__(self):
        if not isinstance(self.host, str) or not self.host:
            raise WcfConfigurationError(f"Invalid host: {self.host!r}")
        try:
            ipaddress.ip_address(self.host)
        except ValueError:
            if not re.match(r"^[A-Za-z0-9]([A-Za-z0-9.-]*[A-Za-z0-9])?$", self.host):
                raise WcfConfigurationError(f"Invalid host: {self.host!r}")
        # The event channel sits on port + 1
        if isinstance(self.port, bool) or not isinstance(self.port, int) or not 1 <= self.port < 65535:
            raise WcfConfigurationError(f"Invalid port number: {self.port!r}")
        if not isinstance(self.socket_options, dict):
            raise WcfConfigurationError("socket_options must be a mapping")
        for name in ("recv_pyq", "print_traffic"):
            if not isinstance(getattr(self, name), bool):
                raise WcfConfigurationError(f"{name} must be true or false")
        try:
            ensure_dir(self.cache_dir)
        except (OSError, TypeError) as e:
            raise WcfConfigurationError(f"Cannot use cache_dir {self.cache_dir!r}: {e}") from e

    @classmethod
    def from_dict(cls, data: Optional[dict[str, Any]]) -> Self:
        data = data or {}
        if not isinstance(data, dict):
            raise WcfConfigurationError("wcferry config must be a mapping")
        known = {f.name for f in fields(cls)}
        unknown = [k for k in data if k not in known]
        if unknown:
            raise WcfConfigurationError(f"Unknown wcferry config fields: {', '.join(unknown)}")
        return cls(**data)

    @classmethod
    def from_yaml(cls, path: str) -> Self:
        """Load options from the `wcferry:` section of a YAML file"""
        try:
            with open(path) as f:
                config = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            logger.error(f"Failed to load config file: {e}")
            raise WcfConfigurationError(f"Failed to load config file {path}: {e}") from e
        if not isinstance(config, dict) or "wcferry" not in config:
            raise WcfConfigurationError(f"Missing required config section: wcferry ({path})")
        return cls.from_dict(config["wcferry"])
