"""
=============================================================================
CONNECTION CONFIGURATION
=============================================================================

All tunables of a Connection in one dataclass, with defaults that target
the production OpenML service.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                        Targets                                       │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   production   https://www.openml.org:443/api/v1/json                │
    │   test         https://test.openml.org:443/api/v1/json               │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Usage:

    # Defaults (production, no API key)
    config = ConnectionConfig()

    # From the environment
    config = ConnectionConfig.from_env()

    # Test server
    config = ConnectionConfig(api_key="...").for_test_server()

=============================================================================
"""

import dataclasses
import logging
import os
from dataclasses import dataclass
from typing import Optional


PRODUCTION_HOST = "www.openml.org"
PRODUCTION_PORT = 443
PRODUCTION_PREFIX = "/api/v1/json"

TEST_HOST = "test.openml.org"
TEST_PORT = 443
TEST_PREFIX = "/api/v1/json"


@dataclass
class ConnectionConfig:
    """
    Configuration for a Connection.

    =========================================================================
    CONFIGURATION GROUPS
    =========================================================================

    TARGET
    - host, port, prefix, api_key
    - test_host, test_port, test_prefix (used by enable_test_mode)

    TIMEOUTS
    - connect_timeout, read_timeout, response_timeout, keep_alive_timeout

    LIMITS
    - buffer_size, max_header_size, max_response_size

    TLS / IDENTITY / LOGGING
    - verify_tls, user_agent, log_level

    =========================================================================
    """

    # ─────────────────────────────────────────────────────────────────────
    # TARGET
    # ─────────────────────────────────────────────────────────────────────

    host: str = PRODUCTION_HOST
    port: int = PRODUCTION_PORT
    prefix: str = PRODUCTION_PREFIX

    api_key: str = ""
    """
    OpenML API key, sent as the "api_key" parameter of every request.
    Empty means unauthenticated (read-only endpoints only).
    """

    test_host: str = TEST_HOST
    test_port: int = TEST_PORT
    test_prefix: str = TEST_PREFIX

    # ─────────────────────────────────────────────────────────────────────
    # TIMEOUTS (seconds)
    # ─────────────────────────────────────────────────────────────────────

    connect_timeout: float = 30.0
    """TCP connect plus TLS handshake."""

    read_timeout: Optional[float] = 60.0
    """
    Socket timeout for every single read and write.
    None = block forever (only the response_timeout then bounds a read loop
    between reads, not a read that never returns).
    """

    response_timeout: float = 300.0
    """Upper bound on the whole receive loop of one exchange."""

    keep_alive_timeout: float = 15.0
    """
    An idle connection older than this is reopened before use instead of
    being reused; servers drop idle keep-alive connections silently.
    """

    # ─────────────────────────────────────────────────────────────────────
    # LIMITS
    # ─────────────────────────────────────────────────────────────────────

    buffer_size: int = 8192
    """Bytes requested from the socket per read."""

    max_header_size: int = 64 * 1024
    """Largest accepted status line plus header block."""

    max_response_size: int = 256 * 1024 * 1024  # 256 MB
    """Largest accepted response body. Dataset listings can be large."""

    # ─────────────────────────────────────────────────────────────────────
    # TLS / IDENTITY / LOGGING
    # ─────────────────────────────────────────────────────────────────────

    verify_tls: bool = True
    user_agent: str = "openmlhttp/1.0"
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "ConnectionConfig":
        """
        Create configuration from environment variables.

        =====================================================================
        ENVIRONMENT VARIABLES
        =====================================================================

        OPENML_HOST       Server host (default: www.openml.org)
        OPENML_PORT       Server port (default: 443)
        OPENML_PREFIX     REST prefix (default: /api/v1/json)
        OPENML_API_KEY    API key (default: none)
        OPENML_TIMEOUT    Read timeout in seconds (default: 60)
        OPENML_LOG_LEVEL  Logging level (default: INFO)

        =====================================================================
        """
        return cls(
            host=os.getenv("OPENML_HOST", PRODUCTION_HOST),
            port=int(os.getenv("OPENML_PORT", str(PRODUCTION_PORT))),
            prefix=os.getenv("OPENML_PREFIX", PRODUCTION_PREFIX),
            api_key=os.getenv("OPENML_API_KEY", ""),
            read_timeout=float(os.getenv("OPENML_TIMEOUT", "60")),
            log_level=os.getenv("OPENML_LOG_LEVEL", "INFO"),
        )

    def for_test_server(self) -> "ConnectionConfig":
        """Return a copy whose target is the test server."""
        return dataclasses.replace(
            self,
            host=self.test_host,
            port=self.test_port,
            prefix=self.test_prefix,
        )

    def validate(self) -> None:
        """
        Validate configuration values.

        Fail fast: a bad port or timeout is reported when the Connection is
        created, not on the first request.
        """
        for name, port in (("port", self.port), ("test_port", self.test_port)):
            if not 0 < port < 65536:
                raise ValueError(f"Invalid {name}: {port}. Must be 1-65535.")

        if not self.host:
            raise ValueError("host must not be empty")

        for name, prefix in (("prefix", self.prefix), ("test_prefix", self.test_prefix)):
            if prefix and not prefix.startswith("/"):
                raise ValueError(f"{name} must be empty or start with '/': {prefix!r}")

        if self.connect_timeout <= 0:
            raise ValueError("connect_timeout must be > 0")

        if self.read_timeout is not None and self.read_timeout <= 0:
            raise ValueError("read_timeout must be > 0")

        if self.response_timeout <= 0:
            raise ValueError("response_timeout must be > 0")

        if self.buffer_size < 1024:
            raise ValueError("buffer_size must be >= 1024")

        if self.max_header_size <= 0 or self.max_response_size <= 0:
            raise ValueError("max_header_size and max_response_size must be > 0")


def configure_logging(level: str = "INFO") -> None:
    """Configure root logging the way the command-line client wants it."""
    numeric = getattr(logging, level.upper(), logging.INFO)

    logging.basicConfig(
        level=numeric,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    logging.getLogger("openmlhttp").setLevel(numeric)
