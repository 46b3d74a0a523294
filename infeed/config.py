"""Configuration discovery, loading and saving (config.toml)."""
import copy
import os
import sys
import tomllib
from pathlib import Path
from typing import Any, Dict, List, Optional

CONFIG_FILENAME = "config.toml"
APP_DIR_NAME = "infeed"

DEFAULT_CONFIG: Dict[str, Any] = {
    "paths": {
        "log": "log.txt",
        "input": "in.txt",
    },
    "reader": {
        # On output-open failure: warn and discard instead of raising
        "silent_mode": True,
        # Prefer native change notification, fall back to polling
        "event_driven": True,
    },
}


def get_platform_config_dir() -> Path:
    """Return the per-user config directory for this platform."""
    if os.name == "nt":
        appdata = os.getenv("APPDATA")
        if appdata:
            return Path(appdata) / APP_DIR_NAME
    elif sys.platform == "darwin":
        return Path.home() / "Library" / "Application Support" / APP_DIR_NAME

    xdg = os.getenv("XDG_CONFIG_HOME")
    if xdg:
        return Path(xdg) / APP_DIR_NAME
    return Path.home() / ".config" / APP_DIR_NAME


def _config_dirs() -> List[Path]:
    """Directories searched for config.toml, in priority order."""
    return [Path.cwd(), get_platform_config_dir()]


def _find_config_path() -> Optional[Path]:
    for directory in _config_dirs():
        candidate = directory / CONFIG_FILENAME
        if candidate.is_file():
            return candidate
    return None


def get_config_path() -> Optional[Path]:
    return _find_config_path()


def _merge_configs(base: Dict[str, Any], overrides: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively merge overrides into a copy of base."""
    result = copy.deepcopy(base)
    for key, value in overrides.items():
        if isinstance(value, dict) and isinstance(result.get(key), dict):
            result[key] = _merge_configs(result[key], value)
        else:
            result[key] = value
    return result


def load_config(
    path: Optional[Path] = None,
    quiet: bool = False,
    raise_on_error: bool = False,
) -> Dict[str, Any]:
    """Load config.toml merged over the defaults.

    Args:
        path: Explicit config file; searched for when omitted
        quiet: Suppress status messages
        raise_on_error: Re-raise read/parse errors instead of using defaults

    Returns:
        Complete configuration dict
    """
    if path is None:
        path = _find_config_path()
        if path is None:
            if not quiet:
                print(f"[INFO] No {CONFIG_FILENAME} found, using defaults")
            return copy.deepcopy(DEFAULT_CONFIG)

    try:
        with open(path, "rb") as f:
            user_config = tomllib.load(f)
    except (OSError, tomllib.TOMLDecodeError) as e:
        if raise_on_error:
            raise
        if not quiet:
            print(f"[WARN] Failed to load {path}: {e}")
            print("[INFO] Using default configuration")
        return copy.deepcopy(DEFAULT_CONFIG)

    if not quiet:
        print(f"[OK] Loaded config from {path}")
    return _merge_configs(DEFAULT_CONFIG, user_config)


def _toml_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return repr(value)
    text = str(value).replace("\\", "\\\\").replace('"', '\\"')
    return f'"{text}"'


def save_config(path: Path, config: Dict[str, Any]) -> None:
    """Write config as TOML with one table per top-level section."""
    # Bare keys must precede the first table header.
    lines: List[str] = [
        f"{key} = {_toml_value(value)}"
        for key, value in config.items()
        if not isinstance(value, dict)
    ]
    for section, values in config.items():
        if not isinstance(values, dict):
            continue
        if lines:
            lines.append("")
        lines.append(f"[{section}]")
        for key, value in values.items():
            lines.append(f"{key} = {_toml_value(value)}")

    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")
