from __future__ import annotations

import logging
import os
import re
import tomllib
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any

from .errors import InvalidSettingError
from .phone import PhoneFormatPolicy, resolve_country_code
from .validate import DEFAULT_MAX_ENTRIES

logger = logging.getLogger(__name__)


@dataclass
class Paths:
    root: Path
    data_dir: Path
    local_dir: Path
    conf_file: Path


@dataclass
class Settings:
    host: str = "0.0.0.0"
    port: int = 8080
    max_import_entries: int = DEFAULT_MAX_ENTRIES
    local_country_code: str = ""
    phone_format_conversion: bool = False
    remove_separators: bool = False
    remove_spaces: bool = False

    @property
    def is_configured(self) -> bool:
        return bool(self.local_country_code)

    def phone_policy(self) -> PhoneFormatPolicy:
        return PhoneFormatPolicy(
            local_country_code=self.local_country_code,
            convert_format=self.phone_format_conversion,
            remove_separators=self.remove_separators,
            remove_spaces=self.remove_spaces,
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


DEFAULT_CONF = """# gigaset-phonebook local config (TOML)
host = "0.0.0.0"
port = 8080
max_import_entries = 2000

# Phone number rewriting for the base station.
# local_country_code accepts "+49", "49" or a region such as "DE".
local_country_code = ""
phone_format_conversion = false
remove_separators = false
remove_spaces = false
"""

_SETTING_TYPES = {f.name: f.type for f in fields(Settings)}


def _coerce(name: str, value: Any) -> Any:
    kind = _SETTING_TYPES[name]
    if kind == "bool":
        if isinstance(value, str):
            lowered = value.strip().lower()
            if lowered not in ("true", "false", "1", "0", "yes", "no", "on", "off"):
                raise InvalidSettingError(f"{name} must be true or false, got {value!r}")
            return lowered in ("true", "1", "yes", "on")
        return bool(value)
    if kind == "int":
        try:
            number = int(value)
        except (TypeError, ValueError):
            raise InvalidSettingError(f"{name} must be a whole number, got {value!r}") from None
        if number < 1:
            raise InvalidSettingError(f"{name} must be positive, got {number}")
        return number
    value = "" if value is None else str(value).strip()
    if name == "local_country_code":
        return resolve_country_code(value)
    return value


def settings_from_mapping(data: dict[str, Any], base: Settings | None = None) -> Settings:
    settings = Settings(**(base or Settings()).to_dict())
    for key, value in data.items():
        if key in _SETTING_TYPES:
            setattr(settings, key, _coerce(key, value))
    return settings


def workspace_paths(base: Path | None = None) -> Paths:
    root = Path(base or os.environ.get("PHONEBOOK_HOME") or os.getcwd())
    local = root / "local"
    return Paths(root=root, data_dir=root / "data", local_dir=local, conf_file=local / "phonebook.conf")


def ensure_workspace(base: Path | None = None) -> tuple[Paths, Settings]:
    paths = workspace_paths(base)
    for d in (paths.data_dir, paths.local_dir):
        d.mkdir(parents=True, exist_ok=True)

    if not paths.conf_file.exists():
        paths.conf_file.write_text(DEFAULT_CONF, encoding="utf-8")

    return paths, load_settings(paths.conf_file)


def load_settings(conf_file: Path) -> Settings:
    try:
        data = tomllib.loads(conf_file.read_text(encoding="utf-8"))
        return settings_from_mapping(data)
    except (OSError, tomllib.TOMLDecodeError, InvalidSettingError) as exc:
        logger.warning("Ignoring %s, using defaults: %s", conf_file, exc)
        return Settings()


def _toml_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    escaped = str(value).replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def save_settings(paths: Paths, updates: dict[str, Any]) -> Settings:
    """Validate updates and write them into the config, preserving comments."""
    current = load_settings(paths.conf_file) if paths.conf_file.exists() else Settings()
    known = {k: v for k, v in updates.items() if k in _SETTING_TYPES}
    settings = settings_from_mapping(known, base=current)

    try:
        conf_text = paths.conf_file.read_text(encoding="utf-8")
    except FileNotFoundError:
        conf_text = DEFAULT_CONF

    for key in known:
        line = f"{key} = {_toml_value(getattr(settings, key))}"
        pattern = rf"^{re.escape(key)}\s*=.*$"
        if re.search(pattern, conf_text, re.MULTILINE):
            conf_text = re.sub(pattern, lambda _m: line, conf_text, flags=re.MULTILINE)
        else:
            conf_text = conf_text.rstrip("\n") + f"\n{line}\n"

    paths.conf_file.parent.mkdir(parents=True, exist_ok=True)
    paths.conf_file.write_text(conf_text, encoding="utf-8")
    return settings
