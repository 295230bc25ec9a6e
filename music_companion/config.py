"""Configuration loading for music_companion."""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional


ENV_PREFIX = "MUSIC_COMPANION_"
SOURCE_TIMEOUT_RATIO = 0.8


class ConfigError(ValueError):
    """Invalid configuration value."""
    pass


@dataclass(frozen=True)
class PollTiming:
    """Coupled timing constants shared by the poll loop and the classifier."""
    poll_interval_ms: int = 1000
    jitter_tolerance_ms: int = 500
    seek_threshold_ms: int = 2500

    @property
    def expected_advance_ms(self) -> int:
        """Progress expected to elapse between two polls while playing."""
        return self.poll_interval_ms + self.jitter_tolerance_ms

    @property
    def poll_interval(self) -> float:
        """Poll period in seconds."""
        return self.poll_interval_ms / 1000.0

    def validate(self) -> "PollTiming":
        """
        Check the timing constants against each other.

        Raises:
            ConfigError: If the poll interval is not positive, or the seek
                threshold does not exceed both the interval and the tolerance
        """
        if self.poll_interval_ms <= 0:
            raise ConfigError(
                f"poll_interval_ms must be > 0, got {self.poll_interval_ms}"
            )
        if self.jitter_tolerance_ms < 0:
            raise ConfigError(
                f"jitter_tolerance_ms must be >= 0, got {self.jitter_tolerance_ms}"
            )
        if self.seek_threshold_ms <= self.poll_interval_ms:
            raise ConfigError(
                f"seek_threshold_ms ({self.seek_threshold_ms}) must be greater "
                f"than poll_interval_ms ({self.poll_interval_ms})"
            )
        if self.seek_threshold_ms <= self.jitter_tolerance_ms:
            raise ConfigError(
                f"seek_threshold_ms ({self.seek_threshold_ms}) must be greater "
                f"than jitter_tolerance_ms ({self.jitter_tolerance_ms})"
            )
        return self


@dataclass
class Config:
    """music_companion configuration settings."""
    log_dir: str
    log_level: str
    poll_interval_ms: int
    jitter_tolerance_ms: int
    seek_threshold_ms: int
    poll_timeout: float
    send_timeout: float
    default_source: str
    # Gateway settings
    gateway_host: str
    gateway_port: int
    # Spotify settings
    spotify_client_id: str = ""
    spotify_client_secret: str = ""
    spotify_redirect_uri: str = "http://localhost:3000/api/spotify/callback"

    @classmethod
    def load(cls, config_file: Optional[str] = None) -> "Config":
        """
        Load configuration from environment variables and optional config file.

        Environment variables take precedence over config file.

        Args:
            config_file: Optional path to config file

        Returns:
            Config instance with loaded values

        Raises:
            ConfigError: If a numeric value cannot be parsed or the timing
                constants are inconsistent
        """
        # Defaults
        defaults = {
            "log_dir": "./logs",
            "log_level": "INFO",
            "poll_interval_ms": 1000,
            "jitter_tolerance_ms": 500,
            "seek_threshold_ms": 2500,
            "poll_timeout": 5.0,
            "send_timeout": 2.0,
            "default_source": "windows",
            "gateway_host": "127.0.0.1",
            "gateway_port": 3000,
            "spotify_client_id": "",
            "spotify_client_secret": "",
            "spotify_redirect_uri": "http://localhost:3000/api/spotify/callback",
        }

        # Load from config file if provided
        file_config = {}
        if config_file and Path(config_file).exists():
            file_config = cls._parse_config_file(config_file)

        def value(key: str, env_names: tuple = ()):
            # Environment variables override file config
            for name in (ENV_PREFIX + key.upper(),) + env_names:
                if name in os.environ:
                    return os.environ[name]
            return file_config.get(key, defaults[key])

        try:
            config = cls(
                log_dir=value("log_dir"),
                log_level=value("log_level"),
                poll_interval_ms=int(value("poll_interval_ms")),
                jitter_tolerance_ms=int(value("jitter_tolerance_ms")),
                seek_threshold_ms=int(value("seek_threshold_ms")),
                poll_timeout=float(value("poll_timeout")),
                send_timeout=float(value("send_timeout")),
                default_source=value("default_source", ("DEFAULT_PROVIDER",)),
                gateway_host=value("gateway_host"),
                gateway_port=int(value("gateway_port", ("PORT",))),
                spotify_client_id=value("spotify_client_id", ("SPOTIFY_CLIENT_ID",)),
                spotify_client_secret=value(
                    "spotify_client_secret", ("SPOTIFY_CLIENT_SECRET",)
                ),
                spotify_redirect_uri=value(
                    "spotify_redirect_uri", ("SPOTIFY_REDIRECT_URI",)
                ),
            )
        except (TypeError, ValueError) as e:
            raise ConfigError(f"Invalid configuration value: {e}") from e

        config.validate()
        return config

    @staticmethod
    def _parse_config_file(path: str) -> dict:
        """
        Parse a simple key=value config file.

        Args:
            path: Path to config file

        Returns:
            Dictionary of config values
        """
        config = {}
        with open(path, "r") as f:
            for line in f:
                line = line.strip()
                if not line or line.startswith("#"):
                    continue
                if "=" in line:
                    key, value = line.split("=", 1)
                    config[key.strip().lower()] = value.strip()
        return config

    def timing(self) -> PollTiming:
        """Get the poll/seek timing constants."""
        return PollTiming(
            poll_interval_ms=self.poll_interval_ms,
            jitter_tolerance_ms=self.jitter_tolerance_ms,
            seek_threshold_ms=self.seek_threshold_ms,
        )

    @property
    def source_timeout(self) -> float:
        """Seconds a source adapter may spend on one query.

        Kept below poll_timeout so the adapter reports its own timeout error
        before the poll loop gives up on it.
        """
        return self.poll_timeout * SOURCE_TIMEOUT_RATIO

    def validate(self) -> None:
        """Validate values that must hold before the service starts."""
        self.timing().validate()
        if self.poll_timeout <= 0:
            raise ConfigError(f"poll_timeout must be > 0, got {self.poll_timeout}")
        if self.send_timeout <= 0:
            raise ConfigError(f"send_timeout must be > 0, got {self.send_timeout}")

    def get_log_dir(self) -> Path:
        """Get absolute path to log directory."""
        path = Path(self.log_dir).resolve()
        path.mkdir(parents=True, exist_ok=True)
        return path
