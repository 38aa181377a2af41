"""
=============================================================================
SERVER CONFIGURATION
=============================================================================

Centralized configuration for an Ember server.

=============================================================================
VALIDATE ON ASSIGNMENT
=============================================================================

Values are checked the moment they are assigned, not when the server
first uses them. A bad value raises ValidationError from the assignment
itself and the previous value stays in place:

    config = ServerConfig()
    config.port = 8080          # fine
    config.port = "8080"        # ValidationError, port is still 8080
    config.trigger_dir = "/nope"  # ValidationError, trigger_dir unchanged

Because the dataclass __init__ goes through the same __setattr__, a
config can never be constructed in an invalid state either.

=============================================================================
CONFIGURATION SOURCES
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    CONFIGURATION HIERARCHY                          │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   Priority (highest to lowest):                                     │
    │                                                                      │
    │   1. Command-line arguments                                         │
    │      └── python -m ember --port 3000                               │
    │                                                                      │
    │   2. Environment variables                                          │
    │      └── EMBER_PORT=3000 python -m ember                           │
    │                                                                      │
    │   3. Attribute assignment in code                                   │
    │      └── app.port = 3000                                           │
    │                                                                      │
    │   4. Default values (in this dataclass)                            │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
"""

import logging
import numbers
import os
from dataclasses import dataclass, fields
from typing import Any, Callable, Dict, Optional

from .errors import ValidationError


LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
LOG_FORMATS = ("text", "json")


# ─────────────────────────────────────────────────────────────────────────
# FIELD VALIDATORS
# ─────────────────────────────────────────────────────────────────────────
# Each validator receives the candidate value and returns the value to
# store (possibly normalized), or raises ValidationError.

def _check_host(value: Any) -> str:
    if not isinstance(value, str):
        raise ValidationError("host", value, "must be a single string")
    return value


def _check_port(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError("port", value, "must be a single integer")
    if value < 0:
        raise ValidationError("port", value, "must be non-negative")
    return value


def _check_refresh_rate(value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, numbers.Real):
        raise ValidationError("refresh_rate", value, "must be a single number")
    if not value > 0:
        raise ValidationError("refresh_rate", value, "must be positive")
    return value


def _check_trigger_dir(value: Any) -> Optional[str]:
    if value is None:
        return None
    try:
        path = os.fspath(value)
    except TypeError:
        raise ValidationError("trigger_dir", value, "must be a path or None")
    if not os.path.isdir(path):
        raise ValidationError("trigger_dir", value, "directory does not exist")
    return path


def _check_positive_int(name: str) -> Callable[[Any], int]:
    def check(value: Any) -> int:
        if isinstance(value, bool) or not isinstance(value, int) or value < 1:
            raise ValidationError(name, value, "must be a positive integer")
        return value
    return check


def _check_optional_timeout(value: Any) -> Optional[float]:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, numbers.Real) or value <= 0:
        raise ValidationError("timeout", value, "must be a positive number or None")
    return value


def _check_poll_interval(value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, numbers.Real) or value <= 0:
        raise ValidationError("daemon_poll_interval", value, "must be positive")
    return value


def _check_log_level(value: Any) -> str:
    if not isinstance(value, str) or value.upper() not in LOG_LEVELS:
        raise ValidationError("log_level", value, f"must be one of {LOG_LEVELS}")
    return value.upper()


def _check_log_format(value: Any) -> str:
    if value not in LOG_FORMATS:
        raise ValidationError("log_format", value, f"must be one of {LOG_FORMATS}")
    return value


def _check_server_name(value: Any) -> str:
    if not isinstance(value, str) or not value:
        raise ValidationError("server_name", value, "must be a non-empty string")
    return value


_VALIDATORS: Dict[str, Callable[[Any], Any]] = {
    "host": _check_host,
    "port": _check_port,
    "refresh_rate": _check_refresh_rate,
    "trigger_dir": _check_trigger_dir,
    "backlog": _check_positive_int("backlog"),
    "buffer_size": _check_positive_int("buffer_size"),
    "timeout": _check_optional_timeout,
    "max_request_size": _check_positive_int("max_request_size"),
    "daemon_poll_interval": _check_poll_interval,
    "log_level": _check_log_level,
    "log_format": _check_log_format,
    "server_name": _check_server_name,
}


@dataclass
class ServerConfig:
    """
    Configuration for an Ember server.

    =========================================================================
    CONFIGURATION GROUPS
    =========================================================================

    RUN LOOP
    - host, port, refresh_rate, trigger_dir

    TRANSPORT
    - backlog, buffer_size, timeout, max_request_size, daemon_poll_interval

    LOGGING
    - log_level, log_format

    =========================================================================
    """

    # ─────────────────────────────────────────────────────────────────────
    # RUN LOOP
    # ─────────────────────────────────────────────────────────────────────

    host: str = "0.0.0.0"
    """Address to listen on. "0.0.0.0" listens on every interface."""

    port: int = 80
    """
    Port to listen on. 0 lets the OS pick a free port, which is what the
    tests use; read it back from the transport's bound address.
    """

    refresh_rate: float = 0.001
    """Seconds to sleep between cycles of a blocking server."""

    trigger_dir: Optional[str] = None
    """
    Directory polled for trigger files while a blocking server runs.
    None disables external triggers.
    """

    # ─────────────────────────────────────────────────────────────────────
    # TRANSPORT
    # ─────────────────────────────────────────────────────────────────────

    backlog: int = 128
    buffer_size: int = 8192
    timeout: Optional[float] = 30.0
    """Seconds an idle HTTP connection is kept open. None never reaps."""

    max_request_size: int = 10 * 1024 * 1024  # 10 MB

    daemon_poll_interval: float = 0.05
    """How long the daemon thread blocks in select() per pass."""

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING
    # ─────────────────────────────────────────────────────────────────────

    log_level: str = "INFO"
    log_format: str = "text"

    server_name: str = "Ember/1.0"

    def __setattr__(self, name: str, value: Any) -> None:
        validator = _VALIDATORS.get(name)
        if validator is not None:
            value = validator(value)
        super().__setattr__(name, value)

    @classmethod
    def from_env(cls) -> "ServerConfig":
        """
        Create configuration from environment variables.

        =====================================================================
        ENVIRONMENT VARIABLES
        =====================================================================

        EMBER_HOST          Server host (default: 0.0.0.0)
        EMBER_PORT          Server port (default: 80)
        EMBER_REFRESH_RATE  Blocking cycle sleep in seconds (default: 0.001)
        EMBER_TRIGGER_DIR   Trigger file directory (default: None)
        EMBER_LOG_LEVEL     Logging level (default: INFO)
        EMBER_LOG_FORMAT    text or json (default: text)

        =====================================================================
        """
        try:
            port = int(os.getenv("EMBER_PORT", "80"))
            refresh_rate = float(os.getenv("EMBER_REFRESH_RATE", "0.001"))
        except ValueError as e:
            raise ValidationError("environment", os.environ.get("EMBER_PORT"), str(e))
        return cls(
            host=os.getenv("EMBER_HOST", "0.0.0.0"),
            port=port,
            refresh_rate=refresh_rate,
            trigger_dir=os.getenv("EMBER_TRIGGER_DIR") or None,
            log_level=os.getenv("EMBER_LOG_LEVEL", "INFO"),
            log_format=os.getenv("EMBER_LOG_FORMAT", "text"),
        )

    def validate(self) -> None:
        """
        Check the rules that span more than one assignment.

        Single fields are already checked on assignment; this covers the
        limits the transport needs before it binds a socket.
        """
        if self.port > 65535:
            raise ValidationError("port", self.port, "must be <= 65535")
        if self.buffer_size < 1024:
            raise ValidationError("buffer_size", self.buffer_size, "must be >= 1024")
        if self.max_request_size < self.buffer_size:
            raise ValidationError(
                "max_request_size", self.max_request_size, "must be >= buffer_size"
            )

    @property
    def log_level_number(self) -> int:
        return getattr(logging, self.log_level, logging.INFO)

    def as_dict(self) -> Dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}
