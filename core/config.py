"""Application configuration for the presence bot farm.

Central configuration module powered by Pydantic v2.  Settings are loaded from
environment variables (with ``.env`` file support) and an optional
``config/bot_config.json`` file.

Key exports:
    BotSettings: Root settings model (instantiate once at startup).
    Identity: Immutable per-slot account identity.
    Endpoint: Immutable remote server address handed to connectors.
    RetryPolicy: Backoff parameters for automatic reconnection.
    BASE_DIR / CONFIG_DIR / LOGS_DIR: Canonical project paths.
"""

# pylint: disable=no-member

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# ---------------------------------------------------------------------------
# Base Paths
# ---------------------------------------------------------------------------
BASE_DIR: Path = Path(__file__).parent.parent
"""Project root directory (parent of ``core/``)."""

CONFIG_DIR: Path = BASE_DIR / "config"
"""Directory containing runtime configuration files."""

LOGS_DIR: Path = BASE_DIR / "logs"
"""Directory for log output files."""

DEFAULT_ROTATION_SEQUENCE: List[int] = [2, 0, 3, 1, 4]
"""Staggered visiting order used when the pool holds exactly five bots."""

logger: logging.Logger = logging.getLogger(__name__)


class Identity(BaseModel):
    """A single bot identity occupying one pool slot.

    Attributes:
        name: Display / login name (unique within the pool).
        credential_location: Folder holding the cached auth profile.
        enabled: Set to ``False`` to leave the identity out of the pool.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    name: str
    credential_location: str = Field(alias="profile_path")
    enabled: bool = True


class Endpoint(BaseModel):
    """Remote server address and connector options."""

    model_config = ConfigDict(frozen=True)

    host: str
    port: int
    connect_timeout: float = 45.0
    options: Dict[str, Any] = Field(default_factory=dict)


class RetryPolicy(BaseModel):
    """Exponential backoff parameters (seconds).

    delay = min(base_delay * growth_factor ** attempts, max_delay)
    plus uniform jitter in ``[0, jitter)``.
    """

    model_config = ConfigDict(frozen=True)

    base_delay: float = 10.0
    growth_factor: float = 1.5
    max_delay: float = 300.0
    jitter: float = 5.0


class BotSettings(BaseSettings):
    """Root configuration model for the presence bot farm.

    All fields can be set via environment variables or a ``.env`` file.
    Accounts are additionally merged from ``config/bot_config.json``
    during post-init.

    Section overview:
        * **Core** -- log level, connector name.
        * **Endpoint** -- remote host, port, connect timeout.
        * **Retry** -- backoff policy and the safety timeout.
        * **Rotation** -- grace period, interval, spacing, sequence.
        * **Bootstrap** -- startup stagger and status cadence.
        * **Errors** -- benign error patterns to suppress.
        * **Health** -- HTTP health endpoint binding.
    """

    # Core
    log_level: str = "INFO"
    # Registry key of the connector implementation
    connector: str = "tcp"

    # Endpoint
    server_host: str = "donutsmp.net"
    server_port: int = 19132
    connect_timeout: float = 45.0

    # Accounts (merged with config/bot_config.json)
    accounts: List[Identity] = Field(default_factory=list)
    config_file: Optional[str] = None

    # Retry / backoff
    retry_base_delay: float = 10.0
    retry_growth_factor: float = 1.5
    retry_max_delay: float = 300.0
    retry_jitter: float = 5.0
    # Seconds to wait for "established" before treating as a failure
    safety_timeout: float = 60.0

    # Rotation
    rotation_enabled: bool = True
    # First rotation starts after the initial connections settle
    rotation_grace_period: float = 120.0
    rotation_interval: float = 30 * 60.0
    rotation_per_bot_delay: float = 30.0
    rotation_reconnect_delay: float = 5.0
    rotation_completion_delay: float = 10.0
    rotation_sequence: Optional[List[int]] = None

    # Bootstrap / status
    startup_stagger: float = 8.0
    rotation_start_delay: float = 20.0
    initial_status_delay: float = 30.0
    status_interval: float = 300.0
    shutdown_grace: float = 2.0

    # Errors
    ignored_error_patterns: List[str] = Field(
        default_factory=lambda: [
            "Invalid tag", "Read error", "sendto", "SizeOf error",
            "Missing characters", "Unexpected field",
        ]
    )

    # Health endpoint
    health_enabled: bool = True
    health_host: str = "0.0.0.0"
    port: int = 3000

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    def model_post_init(self, __context: Any) -> None:
        """Merge accounts from the JSON config file, then apply defaults.

        When neither the environment nor the config file provides any
        account, five placeholder identities (``BOT1`` .. ``BOT5``) with
        ``./profiles/<name>`` credential folders are used.
        """
        self._load_bot_config_defaults()
        if not self.accounts:
            self.accounts = [
                Identity(name=f"BOT{i}", profile_path=f"./profiles/BOT{i}")
                for i in range(1, 6)
            ]

    def _load_bot_config_defaults(self) -> None:
        """Load accounts from ``config/bot_config.json``.

        Accounts already present (matched by name) are *not*
        overwritten.  Malformed entries are skipped with a warning.
        """
        config_path = Path(self.config_file) if self.config_file else CONFIG_DIR / "bot_config.json"
        if not config_path.exists():
            return

        try:
            data: Dict[str, Any] = json.loads(
                config_path.read_text(encoding="utf-8")
            )
        except Exception as exc:
            logger.warning(
                "Failed to load %s: %s", config_path.name, exc
            )
            return

        accounts_data = data.get("accounts", [])
        if not isinstance(accounts_data, list):
            logger.warning("Ignoring 'accounts' in %s: expected a list", config_path.name)
            return

        existing = {acc.name for acc in self.accounts}
        for info in accounts_data:
            if not isinstance(info, dict):
                continue
            name = info.get("name") or info.get("username")
            if not name or name in existing:
                continue
            profile_path = info.get("profile_path") or f"./profiles/{name}"
            self.accounts.append(
                Identity(
                    name=name,
                    profile_path=profile_path,
                    enabled=info.get("enabled", True),
                )
            )
            existing.add(name)

    def enabled_identities(self) -> List[Identity]:
        """Return the identities that should occupy pool slots."""
        return [acc for acc in self.accounts if acc.enabled]

    def endpoint(self) -> Endpoint:
        """Build the :class:`Endpoint` handed to the connector."""
        return Endpoint(
            host=self.server_host,
            port=self.server_port,
            connect_timeout=self.connect_timeout,
        )

    def retry_policy(self) -> RetryPolicy:
        """Build the :class:`RetryPolicy` from the retry fields."""
        return RetryPolicy(
            base_delay=self.retry_base_delay,
            growth_factor=self.retry_growth_factor,
            max_delay=self.retry_max_delay,
            jitter=self.retry_jitter,
        )

    def resolve_rotation_sequence(self, pool_size: int) -> List[int]:
        """Return the rotation order for a pool of *pool_size* bots.

        An explicitly configured sequence wins.  Otherwise the
        staggered ``[2, 0, 3, 1, 4]`` order is used for a five-bot pool
        and plain slot order for any other size.
        """
        if self.rotation_sequence is not None:
            return list(self.rotation_sequence)
        if pool_size == len(DEFAULT_ROTATION_SEQUENCE):
            return list(DEFAULT_ROTATION_SEQUENCE)
        return list(range(pool_size))
