from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

_DOTENV_LOADED = False

_TRUE_VALUES = {"true", "1", "yes"}


def _parse_dotenv(dotenv_path: Path) -> dict[str, str]:
    parsed: dict[str, str] = {}
    for raw_line in dotenv_path.read_text(encoding="utf-8").splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        if line.startswith("export "):
            line = line[len("export ") :].strip()
        if "=" not in line:
            continue
        key, value = line.split("=", 1)
        key = key.strip()
        if not key:
            continue
        value = value.strip()
        if len(value) >= 2 and value[0] == value[-1] and value[0] in {"'", '"'}:
            value = value[1:-1]
        parsed[key] = value
    return parsed


def load_dotenv(*, path: Optional[str | Path] = None, override: bool = False) -> dict[str, str]:
    """
    Minimal .env loader.

    - Ignores blank lines and comments starting with '#'
    - Supports optional leading 'export '
    - Parses KEY=VALUE where VALUE may be quoted
    - Sets os.environ unless the key already exists (unless override=True)

    Returns a dict of keys that were set.
    """
    dotenv_path = Path(path).expanduser().resolve() if path is not None else (Path.cwd() / ".env")
    if not dotenv_path.exists():
        return {}
    if dotenv_path.is_dir():
        raise RuntimeError(f".env path is a directory: {dotenv_path}")

    loaded: dict[str, str] = {}
    for key, value in _parse_dotenv(dotenv_path).items():
        if not override and os.environ.get(key) is not None:
            continue
        os.environ[key] = value
        loaded[key] = value
    return loaded


def ensure_dotenv_loaded() -> dict[str, str]:
    """
    Load environment files exactly once per process.

    DOTENV_PATH points at a single file when set (CI injects env directly and
    usually leaves it unset). Otherwise .env is loaded from the working
    directory, then .env.local on top of it.
    """
    global _DOTENV_LOADED
    if _DOTENV_LOADED:
        return {}
    explicit = os.environ.get("DOTENV_PATH", "").strip()
    if explicit:
        loaded = load_dotenv(path=explicit)
    else:
        loaded = load_dotenv()
        loaded.update(load_dotenv(path=Path.cwd() / ".env.local", override=True))
    _DOTENV_LOADED = True
    return loaded


def reset_dotenv_state() -> None:
    global _DOTENV_LOADED
    _DOTENV_LOADED = False


def env_str(name: str, default: Optional[str] = None) -> Optional[str]:
    """Return a stripped env value, treating empty strings as unset."""
    value = os.environ.get(name)
    if value is None or not value.strip():
        return default
    return value.strip()


def env_flag(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in _TRUE_VALUES


def env_int(name: str, default: Optional[int] = None) -> Optional[int]:
    value = env_str(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError as e:
        raise ValueError(f"Environment variable {name} must be an integer, got: {value!r}") from e
