"""Settings for the kiln CLI.

``KilnConfig`` is a pydantic-settings model merged from, highest priority
first, ``KILN_*`` environment variables (``__`` separates nested fields),
the project file ``./kiln.yaml`` (or the ``--config`` path) and the user
file ``~/.config/kiln/config.yaml``. ``load_config`` turns validation and
YAML errors into ``ConfigError``.
"""

from __future__ import annotations

from contextvars import ContextVar
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator
from pydantic.fields import FieldInfo
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

from kiln.constants import DEFAULT_MAX_WORKERS
from kiln.exceptions import ConfigError
from kiln.logging import get_logger
from kiln.platform import Platform, PlatformTriple

__all__ = [
    "KilnConfig",
    "PlatformConfig",
    "RenderConfig",
    "load_config",
    "get_project_config_path",
    "get_user_config_path",
]

logger = get_logger(__name__)

PROJECT_CONFIG_FILENAME = "kiln.yaml"

# Project file used by the settings sources; set by load_config()
_project_config_path: ContextVar[Path | None] = ContextVar(
    "kiln_project_config_path", default=None
)


class PlatformConfig(BaseModel):
    """Platforms to render for, as subdirs (``linux-64``, ``osx-arm64``...).

    Unset roles fall back as in ``PlatformTriple.from_subdirs``: build to
    the running platform, host to build and target to host.
    """

    build: str | None = None
    host: str | None = None
    target: str | None = None

    @field_validator("build", "host", "target")
    @classmethod
    def check_subdir(cls, v: str | None) -> str | None:
        if v is None:
            return None
        return Platform.parse(v).subdir

    def triple(self) -> PlatformTriple:
        return PlatformTriple.from_subdirs(
            build=self.build, host=self.host, target=self.target
        )


class RenderConfig(BaseModel):
    """Settings for the rendering pipeline."""

    max_workers: int = Field(default=DEFAULT_MAX_WORKERS, gt=0, le=64)


class YamlConfigSource(PydanticBaseSettingsSource):
    """Custom settings source that loads from a YAML file."""

    def __init__(
        self,
        settings_cls: type[BaseSettings],
        yaml_file: Path | None = None,
    ):
        super().__init__(settings_cls)
        self.yaml_file = yaml_file
        self._config_data: dict[str, Any] = {}
        if yaml_file and yaml_file.exists():
            try:
                with open(yaml_file) as f:
                    loaded = yaml.safe_load(f)
            except yaml.YAMLError as e:
                raise ConfigError(
                    message=f"Invalid YAML in {yaml_file}: {e}",
                    field=None,
                    value=None,
                ) from e
            if loaded is None:
                logger.warning("config_file_empty", path=str(yaml_file))
            elif not isinstance(loaded, dict):
                raise ConfigError(
                    message=f"Config file {yaml_file} must contain a mapping",
                    field=None,
                    value=loaded,
                )
            else:
                self._config_data = loaded

    def get_field_value(
        self, field: FieldInfo, field_name: str
    ) -> tuple[Any, str, bool]:
        """Get value for a specific field from the YAML config."""
        if field_name in self._config_data:
            return self._config_data[field_name], field_name, False
        return None, field_name, False

    def __call__(self) -> dict[str, Any]:
        """Return the complete config data."""
        return self._config_data


class KilnConfig(BaseSettings):
    """Root configuration object containing all kiln settings."""

    model_config = SettingsConfigDict(
        env_prefix="KILN_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    platform: PlatformConfig = Field(default_factory=PlatformConfig)
    render: RenderConfig = Field(default_factory=RenderConfig)
    variant_config_files: list[Path] = Field(default_factory=list)
    verbosity: Literal["error", "warning", "info", "debug"] = "warning"

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Customize the order of settings sources.

        Priority (highest to lowest):
        1. Init arguments
        2. Environment variables (KILN_*)
        3. Project YAML config (./kiln.yaml)
        4. User YAML config (~/.config/kiln/config.yaml)
        """
        return (
            init_settings,
            env_settings,
            YamlConfigSource(settings_cls, get_project_config_path()),
            YamlConfigSource(settings_cls, get_user_config_path()),
        )


def get_project_config_path() -> Path:
    """Get the path to the project configuration file.

    Returns:
        The path given to ``load_config``, else ./kiln.yaml
    """
    return _project_config_path.get() or Path.cwd() / PROJECT_CONFIG_FILENAME


def get_user_config_path() -> Path:
    """Get the path to the user configuration file.

    Returns:
        Path to ~/.config/kiln/config.yaml
    """
    return Path.home() / ".config" / "kiln" / "config.yaml"


def load_config(config_path: Path | None = None) -> KilnConfig:
    """Load configuration with hierarchy: defaults -> user -> project -> env.

    Args:
        config_path: Optional path to the project config file. Defaults to
            ./kiln.yaml

    Returns:
        KilnConfig instance with merged configuration

    Raises:
        ConfigError: If configuration is invalid
    """
    if config_path is not None and not config_path.exists():
        raise ConfigError(
            message=f"Config file not found: {config_path}",
            field=None,
            value=str(config_path),
        )

    token = _project_config_path.set(config_path)
    try:
        if not get_project_config_path().exists():
            logger.debug("project_config_missing", path=str(get_project_config_path()))
        return KilnConfig()
    except ValidationError as e:
        first_error = e.errors()[0]
        field = ".".join(str(loc) for loc in first_error["loc"])
        raise ConfigError(
            message=f"Invalid configuration: {first_error['msg']}",
            field=field,
            value=first_error.get("input"),
        ) from e
    finally:
        _project_config_path.reset(token)
