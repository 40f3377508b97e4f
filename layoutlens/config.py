# layoutlens/config.py
"""Capture parameters (JSON file) and runtime settings (.env)."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Literal, Optional
from urllib.parse import urlsplit

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

DEFAULT_PORT = 7777
DEFAULT_MAX_CONCURRENT_PAGES = 4


class ConfigError(ValueError):
    """Raised when a capture config or job request cannot be loaded."""


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class CookieSpec(_CamelModel):
    name: str
    domain: Optional[str] = None
    path: Optional[str] = None
    same_site: Literal["Lax", "Strict", "None"] = Field(default="Lax", alias="sameSite")
    secure: bool = False
    http_only: bool = Field(default=False, alias="httpOnly")


class Behavior(_CamelModel):
    send_accept_language: bool = Field(default=False, alias="sendAcceptLanguage")
    url_template: Optional[str] = Field(default=None, alias="urlTemplate")
    use_url_template: bool = Field(default=False, alias="useUrlTemplate")


class CaptureConfig(_CamelModel):
    url: str
    breakpoints: list[int]
    locales: list[str]
    cookie: CookieSpec
    behavior: Behavior = Field(default_factory=Behavior)
    out_dir: str = Field(alias="outDir")
    engine: Literal["chromium", "webkit", "firefox"] = "chromium"
    profile_dir: Optional[str] = Field(default=None, alias="profileDir")
    max_concurrent_pages: int = Field(default=DEFAULT_MAX_CONCURRENT_PAGES, alias="maxConcurrentPages")

    @field_validator("url")
    @classmethod
    def _absolute_url(cls, value: str) -> str:
        value = value.strip()
        parts = urlsplit(value)
        if parts.scheme not in ("http", "https") or not parts.netloc:
            raise ValueError(f"url must be an absolute http(s) URL, got {value!r}")
        return value

    @field_validator("breakpoints")
    @classmethod
    def _unique_positive_widths(cls, value: list[int]) -> list[int]:
        if any(bp <= 0 for bp in value):
            raise ValueError("breakpoints must be positive widths")
        return list(dict.fromkeys(value))

    @field_validator("locales")
    @classmethod
    def _unique_locales(cls, value: list[str]) -> list[str]:
        # each locale names a directory directly under outDir
        for locale in value:
            if locale in ("", ".", "..") or any(ch in locale for ch in ("/", "\\", "\0")):
                raise ValueError(f"locale {locale!r} cannot be used as a directory name")
        return list(dict.fromkeys(value))

    @property
    def concurrency(self) -> int:
        return max(1, min(self.max_concurrent_pages, len(self.breakpoints)))

    @classmethod
    def from_file(cls, path: str | Path) -> "CaptureConfig":
        try:
            raw = json.loads(Path(path).read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            raise ConfigError(f"cannot read config {path}: {exc}") from exc
        return cls.from_mapping(raw)

    @classmethod
    def from_mapping(cls, raw: object) -> "CaptureConfig":
        try:
            return cls.model_validate(raw)
        except ValidationError as exc:
            raise ConfigError(str(exc)) from exc

    def to_json_dict(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)


def _getenv_int(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    try:
        return int(raw) if raw else default
    except ValueError:
        return default


@dataclass(frozen=True)
class Settings:
    HOST: str
    PORT: int
    LOG_LEVEL: str
    SERVER_URL: str
    SIPS_BIN: Optional[str]
    FFMPEG_BIN: Optional[str]
    FFPROBE_BIN: Optional[str]


def load_settings() -> Settings:
    load_dotenv()
    port = _getenv_int("LAYOUTLENS_PORT", DEFAULT_PORT)
    return Settings(
        HOST=os.getenv("LAYOUTLENS_HOST", "127.0.0.1").strip(),
        PORT=port,
        LOG_LEVEL=os.getenv("LAYOUTLENS_LOG_LEVEL", "INFO").strip().upper(),
        SERVER_URL=os.getenv("LAYOUTLENS_SERVER_URL", f"http://localhost:{port}").strip(),
        SIPS_BIN=os.getenv("LAYOUTLENS_SIPS") or None,
        FFMPEG_BIN=os.getenv("LAYOUTLENS_FFMPEG") or None,
        FFPROBE_BIN=os.getenv("LAYOUTLENS_FFPROBE") or None,
    )
