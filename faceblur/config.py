from __future__ import annotations

import copy
import os
import platform
import sys
from pathlib import Path
from typing import Any

import yaml

from faceblur.constants import BLUR_STYLE_GAUSSIAN, DEFAULT_JPEG_QUALITY
from faceblur.models import BlurSettings, ExportOptions


def default_jobs() -> int:
    cpu_count = os.cpu_count() or 2
    return max(1, cpu_count - 1)


DEFAULT_CONFIG: dict[str, Any] = {
    "blur": {
        "style": BLUR_STYLE_GAUSSIAN,
        "intensity": 0.7,
        "face_radius_scale": 1.0,
        "face_detection_threshold": 0.2,
    },
    "export": {
        "remove_metadata": True,
        "jpeg_quality": DEFAULT_JPEG_QUALITY,
    },
    "jobs": default_jobs(),
    "log_level": "info",
}


def get_app_dir() -> Path:
    """Return the application root directory.

    - Frozen (PyInstaller): directory containing the executable.
    - Development: project root (two levels up from this file).
    """
    if getattr(sys, "frozen", False):
        return Path(sys.executable).resolve().parent
    return Path(__file__).resolve().parent.parent


def get_user_data_dir() -> Path:
    """User-writable data directory; never inside a frozen app bundle."""
    if not getattr(sys, "frozen", False):
        return get_app_dir()

    system_name = platform.system().lower()
    if system_name == "windows":
        base = (
            os.environ.get("APPDATA")
            or os.environ.get("LOCALAPPDATA")
            or str(Path.home() / "AppData" / "Roaming")
        )
        return Path(base) / "FaceBlur"
    if system_name == "darwin":
        return Path.home() / "Library" / "Application Support" / "FaceBlur"

    xdg_config_home = os.environ.get("XDG_CONFIG_HOME")
    if xdg_config_home:
        return Path(xdg_config_home) / "FaceBlur"
    return Path.home() / ".config" / "FaceBlur"


def get_config_path() -> Path:
    return get_user_data_dir() / "Config" / "config.yaml"


def _deep_merge(base: dict[str, Any], incoming: dict[str, Any]) -> dict[str, Any]:
    merged = copy.deepcopy(base)
    for key, value in incoming.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_config(path: Path | None = None) -> dict[str, Any]:
    cfg_path = path or get_config_path()
    if not cfg_path.exists():
        cfg = copy.deepcopy(DEFAULT_CONFIG)
        cfg["jobs"] = default_jobs()
        return cfg

    text = cfg_path.read_text(encoding="utf-8")
    loaded = yaml.safe_load(text) or {}
    if not isinstance(loaded, dict):
        loaded = {}
    cfg = _deep_merge(DEFAULT_CONFIG, loaded)
    if not cfg.get("jobs"):
        cfg["jobs"] = default_jobs()
    return cfg


def write_default_config(path: Path | None = None, force: bool = False) -> Path:
    cfg_path = path or get_config_path()
    cfg_path.parent.mkdir(parents=True, exist_ok=True)
    if cfg_path.exists() and not force:
        return cfg_path
    cfg = copy.deepcopy(DEFAULT_CONFIG)
    cfg["jobs"] = default_jobs()
    cfg_path.write_text(yaml.safe_dump(cfg, sort_keys=False, allow_unicode=True), encoding="utf-8")
    return cfg_path


def _section(cfg: dict[str, Any], name: str) -> dict[str, Any]:
    value = cfg.get(name)
    return value if isinstance(value, dict) else {}


def _float_value(section: dict[str, Any], key: str, default: float) -> float:
    try:
        return float(section.get(key, default))
    except (TypeError, ValueError):
        return default


def settings_from_config(cfg: dict[str, Any]) -> BlurSettings:
    blur = _section(cfg, "blur")
    defaults = BlurSettings()
    return BlurSettings(
        style=str(blur.get("style", defaults.style)),
        intensity=_float_value(blur, "intensity", defaults.intensity),
        face_radius_scale=_float_value(blur, "face_radius_scale", defaults.face_radius_scale),
        face_detection_threshold=_float_value(blur, "face_detection_threshold", defaults.face_detection_threshold),
    ).normalized()


def export_options_from_config(cfg: dict[str, Any]) -> ExportOptions:
    export = _section(cfg, "export")
    try:
        quality = int(export.get("jpeg_quality", DEFAULT_JPEG_QUALITY))
    except (TypeError, ValueError):
        quality = DEFAULT_JPEG_QUALITY
    return ExportOptions(
        remove_metadata=bool(export.get("remove_metadata", True)),
        jpeg_quality=max(1, min(100, quality)),
    )
