"""
Configuration Management for the Browser Session Broker

Provides validated configuration with sensible defaults.
Supports environment variable overrides and CLI option merging.

Design:
- Immutable after construction (frozen dataclasses)
- Fail-fast on invalid configuration
- CLI options override env/defaults only where they are defined
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from typing import Any, Mapping, Optional

from browsermesh.core.types import Result, Ok, Err
from browsermesh.core.errors import ConfigurationError
from browsermesh.core import constants as C
from browsermesh.reliability.retry import RetryPolicy


_TRUE_VALUES = frozenset({"1", "true", "yes", "on"})
_FALSE_VALUES = frozenset({"0", "false", "no", "off", ""})
_LOG_LEVELS = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})


@dataclass(frozen=True)
class ServerConfig:
    """Transport binding. Carried for the façade; the core ignores it."""

    host: str = C.DEFAULT_SERVER_HOST
    port: Optional[int] = None


@dataclass(frozen=True)
class ProviderCredentials:
    """Automation provider and model credentials."""

    api_key: Optional[str] = None
    project_id: Optional[str] = None
    model_api_key: Optional[str] = None

    @property
    def complete(self) -> bool:
        """True when every credential the replay endpoint needs is present."""
        return bool(self.api_key and self.project_id and self.model_api_key)

    def masked(self) -> dict[str, Optional[str]]:
        def mask(value: Optional[str]) -> Optional[str]:
            if not value:
                return None
            return value[:4] + "****" if len(value) > 8 else "****"

        return {
            "api_key": mask(self.api_key),
            "project_id": self.project_id,
            "model_api_key": mask(self.model_api_key),
        }


@dataclass(frozen=True)
class ReliabilityConfig:
    """Retry settings for resource purges."""

    purge_max_attempts: int = C.PURGE_MAX_ATTEMPTS
    purge_base_delay_ms: int = C.PURGE_BASE_DELAY_MS
    purge_max_delay_ms: int = C.PURGE_MAX_DELAY_MS
    purge_backoff_multiplier: float = C.PURGE_BACKOFF_MULTIPLIER

    def purge_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_attempts=self.purge_max_attempts,
            base_delay_ms=self.purge_base_delay_ms,
            max_delay_ms=self.purge_max_delay_ms,
            backoff_multiplier=self.purge_backoff_multiplier,
        )


@dataclass(frozen=True)
class ReplayConfig:
    """Replay accounting endpoint settings."""

    enabled: bool = True
    base_url: str = C.REPLAY_BASE_URL
    timeout_s: float = C.REPLAY_TIMEOUT_S
    sdk_version: str = C.REPLAY_SDK_VERSION


@dataclass(frozen=True)
class TokenPricing:
    """USD price per million tokens, used to derive cost."""

    input_per_million: float = 0.0
    output_per_million: float = 0.0

    def cost(self, input_tokens: int, output_tokens: int) -> float:
        return (
            input_tokens * self.input_per_million
            + output_tokens * self.output_per_million
        ) / C.TOKENS_PER_MILLION


@dataclass(frozen=True)
class ObservabilityConfig:
    """Logging configuration."""

    log_level: str = "INFO"
    log_json: bool = True


@dataclass(frozen=True)
class BrokerConfig:
    """Root configuration for the broker."""

    proxies: bool = False
    context_id: Optional[str] = None
    server: ServerConfig = field(default_factory=ServerConfig)
    credentials: ProviderCredentials = field(default_factory=ProviderCredentials)
    reliability: ReliabilityConfig = field(default_factory=ReliabilityConfig)
    replay: ReplayConfig = field(default_factory=ReplayConfig)
    pricing: TokenPricing = field(default_factory=TokenPricing)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    @classmethod
    def from_env(
        cls,
        environ: Optional[Mapping[str, str]] = None,
    ) -> Result[BrokerConfig, ConfigurationError]:
        """
        Load configuration from environment variables.

        Broker settings are prefixed with BROWSERMESH_; provider
        credentials use the provider's own names.
        Example: BROWSERMESH_PROXIES=1, BROWSERBASE_API_KEY=...
        """
        env = os.environ if environ is None else environ
        try:
            credentials = ProviderCredentials(
                api_key=env.get("BROWSERBASE_API_KEY") or None,
                project_id=env.get("BROWSERBASE_PROJECT_ID") or None,
                model_api_key=(
                    env.get("MODEL_API_KEY")
                    or env.get("GEMINI_API_KEY")
                    or env.get("GOOGLE_API_KEY")
                    or None
                ),
            )

            port = env.get("BROWSERMESH_PORT")
            server = ServerConfig(
                host=env.get("BROWSERMESH_HOST", C.DEFAULT_SERVER_HOST),
                port=int(port) if port else None,
            )

            reliability = ReliabilityConfig(
                purge_max_attempts=int(env.get("BROWSERMESH_PURGE_MAX_ATTEMPTS", C.PURGE_MAX_ATTEMPTS)),
                purge_base_delay_ms=int(env.get("BROWSERMESH_PURGE_BASE_DELAY_MS", C.PURGE_BASE_DELAY_MS)),
                purge_max_delay_ms=int(env.get("BROWSERMESH_PURGE_MAX_DELAY_MS", C.PURGE_MAX_DELAY_MS)),
                purge_backoff_multiplier=float(
                    env.get("BROWSERMESH_PURGE_BACKOFF_MULTIPLIER", C.PURGE_BACKOFF_MULTIPLIER)
                ),
            )

            replay = ReplayConfig(
                enabled=_parse_bool(env.get("BROWSERMESH_REPLAY_ENABLED"), default=True),
                base_url=env.get("BROWSERMESH_REPLAY_BASE_URL", C.REPLAY_BASE_URL),
                timeout_s=float(env.get("BROWSERMESH_REPLAY_TIMEOUT_S", C.REPLAY_TIMEOUT_S)),
            )

            pricing = TokenPricing(
                input_per_million=float(env.get("BROWSERMESH_PRICE_INPUT_PER_MILLION", 0.0)),
                output_per_million=float(env.get("BROWSERMESH_PRICE_OUTPUT_PER_MILLION", 0.0)),
            )

            observability = ObservabilityConfig(
                log_level=env.get("BROWSERMESH_LOG_LEVEL", "INFO").upper(),
                log_json=_parse_bool(env.get("BROWSERMESH_LOG_JSON"), default=True),
            )

            return Ok(cls(
                proxies=_parse_bool(env.get("BROWSERMESH_PROXIES"), default=False),
                context_id=env.get("BROWSERMESH_CONTEXT_ID") or None,
                server=server,
                credentials=credentials,
                reliability=reliability,
                replay=replay,
                pricing=pricing,
                observability=observability,
            ))
        except (ValueError, TypeError) as e:
            return Err(ConfigurationError.invalid(str(e)))

    def with_cli_options(self, options: Mapping[str, Any]) -> BrokerConfig:
        """
        Overlay CLI options on this config.

        Options whose value is None are ignored so that an absent flag
        never clobbers an env or default value.
        """
        defined = {k: v for k, v in options.items() if v is not None}
        config = self

        if "proxies" in defined:
            config = replace(config, proxies=bool(defined["proxies"]))
        if "context" in defined:
            config = replace(config, context_id=str(defined["context"]))

        server_overrides: dict[str, Any] = {}
        if "host" in defined:
            server_overrides["host"] = str(defined["host"])
        if "port" in defined:
            server_overrides["port"] = int(defined["port"])
        if server_overrides:
            config = replace(config, server=replace(config.server, **server_overrides))

        obs_overrides: dict[str, Any] = {}
        if "log_level" in defined:
            obs_overrides["log_level"] = str(defined["log_level"]).upper()
        if "log_json" in defined:
            obs_overrides["log_json"] = bool(defined["log_json"])
        if obs_overrides:
            config = replace(
                config,
                observability=replace(config.observability, **obs_overrides),
            )

        return config

    def validate(self) -> Result[None, ConfigurationError]:
        """Validate configuration invariants."""
        rel = self.reliability
        if rel.purge_max_attempts < 1:
            return Err(ConfigurationError.invalid("purge_max_attempts must be >= 1"))
        if rel.purge_base_delay_ms < 0 or rel.purge_max_delay_ms < rel.purge_base_delay_ms:
            return Err(ConfigurationError.invalid(
                "purge delays must satisfy 0 <= base <= max",
                base=rel.purge_base_delay_ms,
                max=rel.purge_max_delay_ms,
            ))
        if rel.purge_backoff_multiplier < 1.0:
            return Err(ConfigurationError.invalid("purge_backoff_multiplier must be >= 1"))
        if self.server.port is not None and not 0 < self.server.port < 65536:
            return Err(ConfigurationError.invalid("port out of range", port=self.server.port))
        if self.replay.timeout_s <= 0:
            return Err(ConfigurationError.invalid("replay timeout must be positive"))
        if self.pricing.input_per_million < 0 or self.pricing.output_per_million < 0:
            return Err(ConfigurationError.invalid("token prices must be non-negative"))
        if self.observability.log_level not in _LOG_LEVELS:
            return Err(ConfigurationError.invalid(
                f"unknown log level '{self.observability.log_level}'",
            ))
        return Ok(None)

    def to_dict(self) -> dict[str, Any]:
        """Printable view with secrets masked."""
        return {
            "proxies": self.proxies,
            "context_id": self.context_id,
            "server": {"host": self.server.host, "port": self.server.port},
            "credentials": self.credentials.masked(),
            "reliability": {
                "purge_max_attempts": self.reliability.purge_max_attempts,
                "purge_base_delay_ms": self.reliability.purge_base_delay_ms,
                "purge_max_delay_ms": self.reliability.purge_max_delay_ms,
                "purge_backoff_multiplier": self.reliability.purge_backoff_multiplier,
            },
            "replay": {
                "enabled": self.replay.enabled,
                "base_url": self.replay.base_url,
                "timeout_s": self.replay.timeout_s,
            },
            "pricing": {
                "input_per_million": self.pricing.input_per_million,
                "output_per_million": self.pricing.output_per_million,
            },
            "observability": {
                "log_level": self.observability.log_level,
                "log_json": self.observability.log_json,
            },
        }


def resolve_config(
    cli_options: Mapping[str, Any],
    environ: Optional[Mapping[str, str]] = None,
) -> Result[BrokerConfig, ConfigurationError]:
    """Defaults, then environment, then defined CLI options; validated."""
    loaded = BrokerConfig.from_env(environ)
    if loaded.is_err():
        return loaded

    try:
        config = loaded.unwrap().with_cli_options(cli_options)
    except (ValueError, TypeError) as e:
        return Err(ConfigurationError.invalid(str(e)))

    validation = config.validate()
    if validation.is_err():
        return validation
    return Ok(config)


def _parse_bool(raw: Optional[str], default: bool) -> bool:
    if raw is None:
        return default
    value = raw.strip().lower()
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    raise ValueError(f"invalid boolean value: {raw!r}")
