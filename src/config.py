"""Configuration Management with Pydantic.

This module implements configuration models using Pydantic for parsing and
validation of YAML/JSON configuration files with environment variable overrides.
"""

import os
import threading
from pathlib import Path

import structlog
import yaml
from pydantic import BaseModel, Field, model_validator

# Initialize logger
logger = structlog.get_logger(__name__)

# Constants
DEFAULT_HISTORY_LIMIT = 100
LARGE_HISTORY_THRESHOLD = 1000
WIDE_CANVAS_THRESHOLD = 20000


class LayoutConfig(BaseModel):
    """Timeline geometry settings.

    Attributes:
        margin: Left margin reserved for lane labels, in pixels
        min_width: Minimum box width so zero-length modules stay visible
        gap: Minimum horizontal gap between a dependency and its dependent
        lane_height: Height of one thread lane
        min_scale: Lower bound for pixels per time unit
        max_scale: Upper bound for pixels per time unit
        target_width: Desired timeline width used to derive the scale
        min_total_time: Smallest makespan assumed when deriving the scale
        epsilon: Tolerance when comparing positions
        converge: Repeat resolution passes until no box moves
    """

    margin: float = Field(default=200, ge=0, description="Left margin in pixels")
    min_width: float = Field(default=40, gt=0, description="Minimum box width")
    gap: float = Field(default=40, ge=0, description="Dependency arrow gap")
    lane_height: float = Field(default=110, gt=0, description="Lane height")
    min_scale: float = Field(default=60, gt=0, description="Minimum pixels per time unit")
    max_scale: float = Field(default=320, gt=0, description="Maximum pixels per time unit")
    target_width: float = Field(default=2000, gt=0, description="Target timeline width")
    min_total_time: float = Field(default=100, gt=0, description="Minimum assumed makespan")
    epsilon: float = Field(default=0.5, ge=0, description="Position comparison tolerance")
    converge: bool = Field(default=True, description="Iterate layout passes to a fixpoint")

    @model_validator(mode="after")
    def validate_scale_bounds(self) -> "LayoutConfig":
        """Validate that the scale bounds are ordered.

        Raises:
            ValueError: If min_scale exceeds max_scale
        """
        if self.min_scale > self.max_scale:
            msg = "min_scale must not exceed max_scale"
            raise ValueError(msg)
        return self


class SessionConfig(BaseModel):
    """Editing session settings.

    Attributes:
        history_limit: Maximum number of undo (and redo) snapshots kept
    """

    history_limit: int = Field(
        default=DEFAULT_HISTORY_LIMIT,
        ge=1,
        description="Undo/redo capacity",
    )


class InputConfig(BaseModel):
    """Thread file discovery settings.

    Attributes:
        patterns: Glob patterns used when a directory is given as input
        encoding: Text encoding of thread files
    """

    patterns: list[str] = Field(
        default_factory=lambda: ["*.json", "*.yaml", "*.yml"],
        min_length=1,
        description="Glob patterns for thread files",
    )
    encoding: str = Field(default="utf-8", description="Thread file encoding")

    model_config = {"str_strip_whitespace": True}


class AppConfig(BaseModel):
    """Main configuration combining all settings.

    Attributes:
        layout: Timeline geometry configuration
        session: Editing session configuration
        input: Thread file discovery configuration
        logging_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """

    layout: LayoutConfig = Field(default_factory=LayoutConfig)
    session: SessionConfig = Field(default_factory=SessionConfig)
    input: InputConfig = Field(default_factory=InputConfig)
    logging_level: str = Field(
        default="INFO",
        description="Logging level",
        pattern=r"^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$",
    )

    @classmethod
    def from_yaml(cls, path: str | Path) -> "AppConfig":
        """Load configuration from a YAML file.

        Args:
            path: Path to the YAML configuration file

        Returns:
            Parsed and validated AppConfig instance

        Raises:
            FileNotFoundError: If configuration file doesn't exist
            ValueError: If configuration is invalid
        """
        config_path = Path(path)

        if not config_path.exists():
            msg = f"Configuration file not found: {config_path}"
            raise FileNotFoundError(msg)

        logger.info("loading_configuration", path=str(config_path))

        try:
            with config_path.open() as f:
                config_data = yaml.safe_load(f)

            if not config_data:
                msg = "Configuration file is empty"
                raise ValueError(msg)

            if not isinstance(config_data, dict):
                msg = "Configuration file must contain a mapping"
                raise ValueError(msg)

            # Apply environment variable overrides
            config_data = cls._apply_env_overrides(config_data)

            # Parse and validate configuration
            config = cls(**config_data)
        except yaml.YAMLError as e:
            logger.exception("yaml_parse_error", error=str(e), path=str(config_path))
            msg = f"Invalid YAML in configuration file: {e}"
            raise ValueError(msg) from e
        else:
            logger.info(
                "configuration_loaded",
                history_limit=config.session.history_limit,
                logging_level=config.logging_level,
            )

            return config

    @classmethod
    def from_env(cls) -> "AppConfig":
        """Build a configuration from defaults plus environment overrides."""
        return cls(**cls._apply_env_overrides({}))

    @classmethod
    def _apply_env_overrides(cls, config_data: dict) -> dict:
        """Apply environment variable overrides to configuration.

        Environment variables follow the pattern: THREADFLOW_<SECTION>_<KEY>
        Example: THREADFLOW_LAYOUT_GAP, THREADFLOW_SESSION_HISTORY_LIMIT

        Args:
            config_data: Base configuration dictionary from file

        Returns:
            Configuration dictionary with environment overrides applied
        """
        env_overrides = {
            # Layout configuration
            ("layout", "margin"): "THREADFLOW_LAYOUT_MARGIN",
            ("layout", "min_width"): "THREADFLOW_LAYOUT_MIN_WIDTH",
            ("layout", "gap"): "THREADFLOW_LAYOUT_GAP",
            ("layout", "lane_height"): "THREADFLOW_LAYOUT_LANE_HEIGHT",
            ("layout", "converge"): "THREADFLOW_LAYOUT_CONVERGE",
            # Session configuration
            ("session", "history_limit"): "THREADFLOW_SESSION_HISTORY_LIMIT",
            # Input configuration
            ("input", "encoding"): "THREADFLOW_INPUT_ENCODING",
            # Logging
            ("logging_level",): "THREADFLOW_LOGGING_LEVEL",
        }

        for path, env_var in env_overrides.items():
            value = os.environ.get(env_var)
            if value is not None:
                # Navigate to nested config section
                current = config_data
                for key in path[:-1]:
                    if key not in current or current[key] is None:
                        current[key] = {}
                    current = current[key]

                # Convert string values to appropriate types
                final_key = path[-1]
                if env_var.endswith("_LIMIT"):
                    value = int(value)
                elif env_var.endswith(("_MARGIN", "_WIDTH", "_GAP", "_HEIGHT")):
                    value = float(value)
                elif env_var.endswith("_CONVERGE"):
                    value = value.lower() in ("true", "1", "yes")

                current[final_key] = value
                logger.debug(
                    "env_override_applied",
                    env_var=env_var,
                    config_path=".".join(path),
                )

        return config_data

    def validate_config(self) -> list[str]:
        """Validate configuration and return list of warnings.

        Returns:
            List of validation warning messages (empty if no warnings)
        """
        warnings = []

        if not self.layout.converge:
            warnings.append(
                "Layout convergence is disabled - a single pass may leave "
                "dependency arrows pointing backwards",
            )

        if self.layout.gap == 0:
            warnings.append("Dependency gap is zero - arrows may be hidden between boxes")

        if self.session.history_limit > LARGE_HISTORY_THRESHOLD:
            warnings.append(
                f"History limit is high ({self.session.history_limit}) - "
                "every snapshot is a full copy of the graph",
            )

        if self.layout.min_scale * self.layout.min_total_time > WIDE_CANVAS_THRESHOLD:
            warnings.append("Minimum scale forces very wide timelines - consider lowering min_scale")

        return warnings


class ConfigManager:
    """Configuration manager using singleton pattern."""

    _instance: AppConfig | None = None
    _init_lock: threading.Lock = threading.Lock()

    @classmethod
    def load_config(cls, config_path: str | Path | None = None) -> AppConfig:
        """Load configuration from file.

        Args:
            config_path: Path to configuration file. If None, looks for
                threadflow.yaml or threadflow.yml in the current directory and
                falls back to defaults plus environment overrides.

        Returns:
            Loaded AppConfig instance

        Raises:
            FileNotFoundError: If an explicit config file is not found
            ValueError: If config file is invalid
        """
        if config_path is None:
            # Look for default config files
            for default_name in ["threadflow.yaml", "threadflow.yml"]:
                default_path = Path(default_name)
                if default_path.exists():
                    config_path = default_path
                    break
            else:
                logger.debug("no_configuration_file_using_defaults")
                return AppConfig.from_env()

        config_path = Path(config_path)
        if not config_path.exists():
            msg = f"Configuration file not found: {config_path}"
            raise FileNotFoundError(msg)

        return AppConfig.from_yaml(config_path)

    @classmethod
    def get_config(
        cls,
        config_path: str | Path | None = None,
        reload: bool = False,
    ) -> AppConfig:
        """Get configuration instance (singleton pattern).

        Uses double-checked locking so concurrent callers load the file once.

        Args:
            config_path: Path to configuration file. Only used on first call or when reload=True.
            reload: If True, force reload configuration from file.

        Returns:
            AppConfig instance
        """
        if cls._instance is not None and not reload:
            return cls._instance

        with cls._init_lock:
            if cls._instance is None or reload:
                cls._instance = cls.load_config(config_path)

            return cls._instance

    @classmethod
    def reset_config(cls) -> None:
        """Reset the configuration instance."""
        cls._instance = None


def load_config(config_path: str | Path | None = None) -> AppConfig:
    """Load configuration from file."""
    return ConfigManager.load_config(config_path)


def get_config(config_path: str | Path | None = None, reload: bool = False) -> AppConfig:
    """Get configuration instance (singleton pattern)."""
    return ConfigManager.get_config(config_path, reload)


def reset_config() -> None:
    """Reset the configuration instance."""
    ConfigManager.reset_config()


__all__ = [
    "AppConfig",
    "InputConfig",
    "LayoutConfig",
    "SessionConfig",
    "get_config",
    "load_config",
    "reset_config",
]
