"""
Pydantic Settings Configuration
=================================

Type-safe configuration for confirm-gate. Every option, its default and its
environment variable live here; the runtime receives one validated
``Settings`` object at startup instead of reading the environment itself.
"""

from importlib import metadata
from pathlib import Path
from typing import Any, List, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic_settings import BaseSettings


def _project_version() -> str:
    """Resolve the project version from package metadata."""
    try:
        return metadata.version("confirm-gate")
    except metadata.PackageNotFoundError:
        return "0.0.0-dev"


class ServerConfig(BaseModel):
    """HTTP listener configuration"""
    host: str = Field("0.0.0.0", description="Host to bind to")
    port: int = Field(3051, ge=1, le=65535, description="Port to bind to")
    base_url: Optional[str] = Field(
        None, description="Public base URL for confirmation links (default http://localhost:<port>)"
    )
    trust_forwarded_for: bool = Field(
        False,
        description="Use the first X-Forwarded-For hop as the client identifier (enable behind a proxy)",
    )

    @field_validator('base_url')
    @classmethod
    def validate_base_url(cls, v: Optional[str]) -> Optional[str]:
        if v is None or v == "":
            return None
        if not v.startswith(("http://", "https://")):
            raise ValueError("base_url must start with http:// or https://")
        return v.rstrip("/")

    model_config = ConfigDict(extra='forbid')


class StorageConfig(BaseModel):
    """Where the token map and account config are persisted"""
    data_dir: Path = Field(Path.home() / ".confirm-gate", description="Data directory")
    tokens_file: Optional[Path] = Field(None, description="Token store file (default <data_dir>/tokens.json)")
    config_file: Optional[Path] = Field(None, description="Account config file (default <data_dir>/config.json)")

    @property
    def tokens_path(self) -> Path:
        return self.tokens_file or self.data_dir / "tokens.json"

    @property
    def config_path(self) -> Path:
        return self.config_file or self.data_dir / "config.json"

    model_config = ConfigDict(extra='forbid')


class TokenConfig(BaseModel):
    """Confirmation and reset token lifetimes"""
    ttl_seconds: int = Field(300, ge=10, le=86400, description="Confirmation token TTL")
    prune_grace_seconds: int = Field(60, ge=0, description="Extra time an expired token is kept before pruning")
    prune_interval_seconds: int = Field(3600, ge=1, description="Interval between prune runs")
    reset_ttl_seconds: int = Field(900, ge=60, description="PIN reset token TTL")

    model_config = ConfigDict(extra='forbid')


class SecurityConfig(BaseModel):
    """PIN and rate limiting configuration"""
    pin: Optional[str] = Field(None, description="PIN applied at startup when the account is not set up yet")
    min_pin_length: int = Field(4, ge=1, le=64, description="Minimum PIN length")
    pbkdf2_iterations: int = Field(100_000, ge=100_000, description="PBKDF2-HMAC-SHA512 iterations")
    rate_limit_window_seconds: int = Field(60, ge=1, description="Sliding window length")
    confirm_max_attempts: int = Field(10, ge=1, description="Confirm attempts per client per window")
    verify_max_attempts: int = Field(10, ge=1, description="Verify attempts per client per window")
    forgot_pin_max_attempts: int = Field(3, ge=1, description="Forgot-PIN attempts per client per window")
    rate_limit_cleanup_interval_seconds: int = Field(300, ge=1, description="Interval between limiter sweeps")

    model_config = ConfigDict(extra='forbid')


class SmtpConfig(BaseModel):
    """Outbound mail for PIN recovery; disabled when host is unset"""
    host: Optional[str] = Field(None, description="SMTP relay host")
    port: int = Field(587, ge=1, le=65535, description="SMTP port (465 uses implicit TLS)")
    username: Optional[str] = Field(None, description="SMTP username")
    password: Optional[str] = Field(None, description="SMTP password")
    sender: Optional[str] = Field(None, description="From address")
    use_tls: bool = Field(True, description="Issue STARTTLS on plain connections")

    @property
    def enabled(self) -> bool:
        return bool(self.host)

    model_config = ConfigDict(extra='forbid')


class LoggingConfig(BaseModel):
    """Logging configuration"""
    level: str = Field("INFO", description="Log level (DEBUG, INFO, WARNING, ERROR)")
    format: str = Field("json", description="Log format (json, text)")

    @field_validator('level')
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level"""
        valid_levels = {'DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'}
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"Log level must be one of: {', '.join(sorted(valid_levels))}")
        return v_upper

    @field_validator('format')
    @classmethod
    def validate_format(cls, v: str) -> str:
        if v not in {"json", "text"}:
            raise ValueError("Log format must be 'json' or 'text'")
        return v

    model_config = ConfigDict(extra='forbid')


class Settings(BaseSettings):
    """
    Main application settings with type validation.

    Configuration is resolved in this order (first wins, nested keys merge):
    1. Explicit values (CLI flags, YAML config file)
    2. Environment variables with CONFIRM_GATE_ prefix
    3. Default values (fallback)

    Environment variable mapping uses double-underscore nesting:
      CONFIRM_GATE_SERVER__PORT
      CONFIRM_GATE_SECURITY__PIN
      CONFIRM_GATE_SMTP__HOST
    """

    server: ServerConfig = Field(default_factory=ServerConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    tokens: TokenConfig = Field(default_factory=TokenConfig)
    security: SecurityConfig = Field(default_factory=SecurityConfig)
    smtp: SmtpConfig = Field(default_factory=SmtpConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    project_name: str = Field("confirm-gate", description="Project name")
    version: str = Field(default_factory=_project_version, description="Project version")

    model_config = ConfigDict(
        env_prefix='CONFIRM_GATE_',
        env_nested_delimiter='__',
        extra='ignore',
        validate_assignment=True,
    )

    @property
    def public_base_url(self) -> str:
        return self.server.base_url or f"http://localhost:{self.server.port}"

    @classmethod
    def from_yaml(
        cls, config_path: str | Path, overrides: Optional[dict[str, Any]] = None
    ) -> "Settings":
        """
        Load settings from a YAML file, with nested overrides applied on top.

        Raises:
            FileNotFoundError: If config file doesn't exist
            ValueError: If configuration is invalid
        """
        config_path = Path(config_path)
        if not config_path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")

        with open(config_path) as f:
            config_data = yaml.safe_load(f) or {}

        return cls(**_deep_merge(config_data, overrides or {}))

    def ensure_directories(self) -> None:
        """Create the directories holding the persisted documents"""
        self.storage.tokens_path.parent.mkdir(parents=True, exist_ok=True)
        self.storage.config_path.parent.mkdir(parents=True, exist_ok=True)

    def validate_required_config(self) -> List[str]:
        """
        Cross-field checks that single-field validators cannot express.

        Returns:
            List of validation errors (empty if valid)
        """
        errors = []

        if self.security.pin is not None and len(self.security.pin) < self.security.min_pin_length:
            errors.append(
                f"security.pin must be at least {self.security.min_pin_length} characters"
            )

        if self.smtp.enabled and not (self.smtp.sender or self.smtp.username):
            errors.append("smtp.sender (or smtp.username) is required when smtp.host is set")

        return errors


def _deep_merge(base: dict[str, Any], overrides: dict[str, Any]) -> dict[str, Any]:
    merged = dict(base)
    for key, value in overrides.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_settings(
    config_path: Optional[str | Path] = None,
    overrides: Optional[dict[str, Any]] = None,
) -> Settings:
    """
    Load and validate application settings.

    Args:
        config_path: Optional path to YAML config file
        overrides: Nested values (e.g. from CLI flags) applied on top

    Raises:
        FileNotFoundError: If config_path doesn't exist
        ValueError: If configuration is invalid
    """
    if config_path:
        settings = Settings.from_yaml(config_path, overrides)
    else:
        settings = Settings(**(overrides or {}))

    errors = settings.validate_required_config()
    if errors:
        raise ValueError(
            "Configuration validation failed:\n" + "\n".join(f"  - {e}" for e in errors)
        )

    settings.ensure_directories()
    return settings


__all__ = [
    'Settings',
    'ServerConfig',
    'StorageConfig',
    'TokenConfig',
    'SecurityConfig',
    'SmtpConfig',
    'LoggingConfig',
    'load_settings',
]
