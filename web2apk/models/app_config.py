"""
App Config Model
================
Configuration handed to the packaging project, persisted as apk-config.json.

The JSON file uses camelCase keys (appName, appId) because the packaging
project's own scripts read it; Python code uses snake_case attributes.

Legacy files may carry the splash settings under `splashScreen`; they are
accepted on load and written back as `splash`.
"""
import re

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

_APP_ID_RE = re.compile(r"^[A-Za-z][A-Za-z0-9_]*(\.[A-Za-z][A-Za-z0-9_]*)+$")
_VERSION_RE = re.compile(r"^\d+\.\d+\.\d+$")
_COLOR_RE = re.compile(r"^#(?:[0-9a-fA-F]{3}|[0-9a-fA-F]{6}|[0-9a-fA-F]{8})$")


class IconConfig(BaseModel):
    enabled: bool = False
    path: str = "www/icon.png"


class SplashConfig(BaseModel):
    enabled: bool = False
    path: str = "www/splash.png"
    color: str = "#ffffff"

    @field_validator("color")
    @classmethod
    def _check_color(cls, value: str) -> str:
        if not _COLOR_RE.match(value):
            raise ValueError(f"splash color must be a hex colour like #ffffff, got {value!r}")
        return value


class AppConfig(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    app_name: str = Field("My Web App", alias="appName")
    app_id: str = Field("com.example.myapp", alias="appId")
    version: str = "1.0.0"
    description: str = "My converted web app"
    icon: IconConfig = IconConfig()
    splash: SplashConfig = SplashConfig()

    @model_validator(mode="before")
    @classmethod
    def _accept_legacy_splash(cls, data):
        if isinstance(data, dict) and "splash" not in data and "splashScreen" in data:
            data = dict(data)
            data["splash"] = data.pop("splashScreen")
        return data

    @field_validator("app_id")
    @classmethod
    def _check_app_id(cls, value: str) -> str:
        if not _APP_ID_RE.match(value):
            raise ValueError(f"app id must look like com.example.myapp, got {value!r}")
        return value

    @field_validator("version")
    @classmethod
    def _check_version(cls, value: str) -> str:
        if not _VERSION_RE.match(value):
            raise ValueError(f"version must be MAJOR.MINOR.PATCH, got {value!r}")
        return value

    @property
    def package_name(self) -> str:
        """npm package name derived from the app id."""
        return self.app_id.replace(".", "-")
