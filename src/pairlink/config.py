"""Configuration management for pairlink."""

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable

import yaml

from pairlink.errors import ConfigError
from pairlink.pairing.codes import CodeMode, code_entropy_bits
from pairlink.pairing.identity import GENERIC_IDENTITY_PATTERN


CODE_MODES = tuple(mode.value for mode in CodeMode)

# Code-only flow keeps codes longer than the full handshake flow
DEFAULT_SESSION_TTLS = {
    CodeMode.SELF.value: 300.0,
    CodeMode.PROTOCOL.value: 120.0,
}

MIN_CODE_ENTROPY_BITS = 32

DEFAULT_HANDSHAKE_PROVIDER = "pairlink.handshake.local:LocalHandshakeProvider"


@dataclass
class PairingConfig:
    """Pairing code issuance configuration."""

    code_mode: str = CodeMode.SELF.value
    session_ttl: float | None = None  # None: default for code_mode
    handshake_timeout: float = 30.0  # seconds
    identity_pattern: str = GENERIC_IDENTITY_PATTERN
    code_length: int = 9
    code_group_size: int = 3

    @property
    def effective_session_ttl(self) -> float:
        """Session TTL, falling back to the default for the code mode."""
        if self.session_ttl is not None:
            return self.session_ttl
        return DEFAULT_SESSION_TTLS[self.code_mode]


@dataclass
class ThrottleConfig:
    """Per-identity issuance throttle configuration."""

    window: float = 3600.0  # seconds
    max_attempts: int = 3


@dataclass
class ReaperConfig:
    """Session reaper configuration."""

    interval: float = 3600.0  # seconds
    staleness_cutoff: float = 86400.0  # orphaned artifact directories
    sweep_on_issue: bool = True


@dataclass
class Config:
    """Service configuration."""

    host: str = "0.0.0.0"
    port: int = 3000
    log_level: str = "INFO"
    log_file: str | None = None
    artifacts_dir: str | None = None
    handshake_provider: str = DEFAULT_HANDSHAKE_PROVIDER
    pairing: PairingConfig = field(default_factory=PairingConfig)
    throttle: ThrottleConfig = field(default_factory=ThrottleConfig)
    reaper: ReaperConfig = field(default_factory=ReaperConfig)

    @property
    def artifacts_path(self) -> Path:
        """Directory holding per-session artifact directories."""
        if self.artifacts_dir:
            return Path(self.artifacts_dir).expanduser()
        return Path.home() / ".local" / "state" / "pairlink" / "sessions"


def get_config_path(custom_path: Path | None = None) -> Path:
    """Get the configuration file path.

    Args:
        custom_path: Override path. If None, returns default.

    Returns:
        Path to config file.
    """
    if custom_path is not None:
        return custom_path
    return Path.home() / ".config" / "pairlink" / "config.yaml"


def _default_file_reader(path: Path) -> dict[str, Any] | None:
    """Default file reader that loads YAML from disk."""
    if not path.exists():
        return None
    try:
        content = path.read_text()
        if not content.strip():
            return None
        return yaml.safe_load(content)
    except yaml.YAMLError:
        return None


def validate_config(config: Config) -> None:
    """Reject configuration values the service cannot run with.

    Raises:
        ConfigError: If a value is out of range.
    """
    pairing = config.pairing
    if pairing.code_mode not in CODE_MODES:
        raise ConfigError(
            f"pairing.code_mode must be one of {', '.join(CODE_MODES)}, "
            f"got {pairing.code_mode!r}"
        )
    if pairing.effective_session_ttl <= 0:
        raise ConfigError("pairing.session_ttl must be positive")
    if pairing.handshake_timeout <= 0:
        raise ConfigError("pairing.handshake_timeout must be positive")
    if pairing.code_group_size <= 0:
        raise ConfigError("pairing.code_group_size must be positive")
    if code_entropy_bits(pairing.code_length) < MIN_CODE_ENTROPY_BITS:
        raise ConfigError(
            f"pairing.code_length must give at least {MIN_CODE_ENTROPY_BITS} bits of entropy"
        )
    if config.throttle.window <= 0 or config.throttle.max_attempts <= 0:
        raise ConfigError("throttle.window and throttle.max_attempts must be positive")
    if config.reaper.interval <= 0 or config.reaper.staleness_cutoff <= 0:
        raise ConfigError("reaper.interval and reaper.staleness_cutoff must be positive")
    try:
        re.compile(pairing.identity_pattern)
    except re.error as e:
        raise ConfigError(f"pairing.identity_pattern is not a valid regex: {e}") from e
    module, _, attr = config.handshake_provider.partition(":")
    if not module or not attr:
        raise ConfigError(
            f"handshake_provider must look like module:attribute, "
            f"got {config.handshake_provider!r}"
        )


def load_config(
    path: Path | None = None,
    file_reader: Callable[[Path], dict[str, Any] | None] | None = None,
) -> Config:
    """Load configuration from file.

    Args:
        path: Path to config file. If None, uses default path.
        file_reader: Injectable file reader for testing.

    Returns:
        Config object with values from file or defaults.

    Raises:
        ConfigError: If the file holds invalid values.
    """
    config_path = get_config_path(path)
    reader = file_reader or _default_file_reader

    data = reader(config_path)

    if data is None:
        return Config()

    # Parse pairing config section
    pairing_data = data.get("pairing", {})
    pairing_config = PairingConfig(
        code_mode=pairing_data.get("code_mode", PairingConfig.code_mode),
        session_ttl=pairing_data.get("session_ttl", PairingConfig.session_ttl),
        handshake_timeout=pairing_data.get(
            "handshake_timeout", PairingConfig.handshake_timeout
        ),
        identity_pattern=pairing_data.get(
            "identity_pattern", PairingConfig.identity_pattern
        ),
        code_length=pairing_data.get("code_length", PairingConfig.code_length),
        code_group_size=pairing_data.get(
            "code_group_size", PairingConfig.code_group_size
        ),
    )

    # Parse throttle config section
    throttle_data = data.get("throttle", {})
    throttle_config = ThrottleConfig(
        window=throttle_data.get("window", ThrottleConfig.window),
        max_attempts=throttle_data.get("max_attempts", ThrottleConfig.max_attempts),
    )

    # Parse reaper config section
    reaper_data = data.get("reaper", {})
    reaper_config = ReaperConfig(
        interval=reaper_data.get("interval", ReaperConfig.interval),
        staleness_cutoff=reaper_data.get(
            "staleness_cutoff", ReaperConfig.staleness_cutoff
        ),
        sweep_on_issue=reaper_data.get("sweep_on_issue", ReaperConfig.sweep_on_issue),
    )

    config = Config(
        host=data.get("host", Config.host),
        port=data.get("port", Config.port),
        log_level=data.get("log_level", Config.log_level),
        log_file=data.get("log_file", Config.log_file),
        artifacts_dir=data.get("artifacts_dir", Config.artifacts_dir),
        handshake_provider=data.get("handshake_provider", Config.handshake_provider),
        pairing=pairing_config,
        throttle=throttle_config,
        reaper=reaper_config,
    )
    validate_config(config)
    return config
