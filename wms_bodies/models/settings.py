"""Plugin settings file: bodies, their background textures and WMS data sets."""

import logging
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from wms_bodies.core.config import DEFAULT_CACHE_DIR
from wms_bodies.models.render_state import RenderProperties
from wms_bodies.models.wms_config import WMSConfig

logger = logging.getLogger(__name__)


class WMSSettings(BaseModel):
    """One WMS data set entry of a body."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    name: str = Field(min_length=1)
    copyright: str = ""
    url: str = Field(min_length=1)
    width: int = Field(gt=0)
    height: int = Field(gt=0)
    time: Optional[str] = None
    prefetch: Optional[int] = Field(default=None, ge=0, alias="preFetch")
    layers: str = Field(min_length=1)

    @field_validator("time", mode="before")
    @classmethod
    def _time_as_string(cls, value):
        # YAML turns unquoted single dates into date/datetime objects
        if isinstance(value, datetime):
            if value.tzinfo is not None:
                value = value.astimezone(timezone.utc)
            return value.strftime("%Y-%m-%dT%H:%M:%SZ")
        if isinstance(value, date):
            return value.isoformat()
        return value

    def to_wms_config(self) -> WMSConfig:
        """Convert to the immutable runtime configuration."""
        return WMSConfig(
            name=self.name,
            copyright=self.copyright,
            url=self.url,
            width=self.width,
            height=self.height,
            layers=self.layers,
            time=self.time,
            prefetch_count=self.prefetch,
        )


class BodySettings(BaseModel):
    """Background texture and WMS data sets of one body."""

    model_config = ConfigDict(extra="forbid")

    texture: Path
    wms: List[WMSSettings] = Field(min_length=1)

    @field_validator("wms")
    @classmethod
    def _unique_names(cls, value: List[WMSSettings]) -> List[WMSSettings]:
        names = [entry.name for entry in value]
        duplicates = sorted({name for name in names if names.count(name) > 1})
        if duplicates:
            raise ValueError(f"Duplicate WMS data set names: {', '.join(duplicates)}")
        return value

    def wms_configs(self) -> List[WMSConfig]:
        """Runtime configurations in declaration order."""
        return [entry.to_wms_config() for entry in self.wms]


class PluginSettings(BaseModel):
    """Top-level settings file."""

    model_config = ConfigDict(extra="forbid")

    cache_dir: Path = DEFAULT_CACHE_DIR
    enable_interpolation: bool = True
    enable_time_span: bool = False
    bodies: Dict[str, BodySettings] = Field(min_length=1)

    def render_properties(self) -> RenderProperties:
        """Initial render switches from the settings file."""
        return RenderProperties(
            enable_interpolation=self.enable_interpolation,
            enable_time_span=self.enable_time_span,
        )

    def body(self, name: str) -> BodySettings:
        """
        Get the settings of a body.

        Raises:
            ValueError: If the body is not configured
        """
        if name not in self.bodies:
            raise ValueError(f"Unknown body: {name}. Valid bodies: {', '.join(self.bodies)}")
        return self.bodies[name]


def load_settings(settings_path: str | Path) -> PluginSettings:
    """
    Load and validate a YAML settings file.

    Relative texture and cache paths are resolved against the directory of
    the settings file.

    Args:
        settings_path: Path to the YAML settings file

    Returns:
        Validated settings

    Raises:
        FileNotFoundError: If the settings file doesn't exist
        ValueError: If the file is not valid YAML or fails validation
    """
    settings_file = Path(settings_path)
    if not settings_file.exists():
        raise FileNotFoundError(f"Settings file not found: {settings_path}")

    try:
        with open(settings_file) as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML in {settings_path}: {e}") from e

    if not isinstance(data, dict):
        raise ValueError(f"Settings file {settings_path} must contain a mapping")

    try:
        settings = PluginSettings.model_validate(data)
    except ValidationError as e:
        raise ValueError(f"Settings validation failed:\n{e}") from e

    settings_dir = settings_file.parent.resolve()

    def resolve(path: Path) -> Path:
        return path if path.is_absolute() else settings_dir / path

    bodies = {
        name: body.model_copy(update={"texture": resolve(body.texture)})
        for name, body in settings.bodies.items()
    }
    settings = settings.model_copy(update={"cache_dir": resolve(settings.cache_dir), "bodies": bodies})

    logger.debug(f"Loaded settings for {len(bodies)} body/bodies from {settings_file}")
    return settings
