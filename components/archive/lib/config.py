"""
Archive settings.

Settings come from a YAML file (components/archive/config/settings.yaml
by default), then environment variables override individual values.
A .env file at the repo root is loaded first, so overrides can live
there too.

Expected format (camelCase or snake_case keys):
    runPiiScan: true
    alwaysRedact: false
    defaultVisibility: public   # public | private
    defaultShowAuthor: true

Environment overrides:
    ARCHIVE_RUN_PII_SCAN, ARCHIVE_ALWAYS_REDACT,
    ARCHIVE_DEFAULT_VISIBILITY, ARCHIVE_DEFAULT_SHOW_AUTHOR
"""

import os
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from dotenv import load_dotenv

from .models import RedactionPolicy

logger = logging.getLogger(__name__)

REPO_ROOT = Path(__file__).parent.parent.parent.parent
DEFAULT_SETTINGS_PATH = Path(__file__).parent.parent / "config" / "settings.yaml"

VISIBILITIES = ('public', 'private')

# field name -> (camelCase key, environment variable)
SETTING_KEYS = {
    'run_pii_scan': ('runPiiScan', 'ARCHIVE_RUN_PII_SCAN'),
    'always_redact': ('alwaysRedact', 'ARCHIVE_ALWAYS_REDACT'),
    'default_visibility': ('defaultVisibility', 'ARCHIVE_DEFAULT_VISIBILITY'),
    'default_show_author': ('defaultShowAuthor', 'ARCHIVE_DEFAULT_SHOW_AUTHOR'),
}

TRUE_VALUES = ('1', 'true', 'yes', 'on')
FALSE_VALUES = ('0', 'false', 'no', 'off')


@dataclass(frozen=True)
class ArchiveSettings:
    """User settings consumed by the archive flow. Read-only."""
    run_pii_scan: bool = True
    always_redact: bool = False
    default_visibility: str = 'public'
    default_show_author: bool = True

    @property
    def policy(self) -> RedactionPolicy:
        return RedactionPolicy(run_scan=self.run_pii_scan, always_redact=self.always_redact)

    @property
    def is_public(self) -> bool:
        return self.default_visibility == 'public'


def _to_bool(name: str, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in TRUE_VALUES:
        return True
    if text in FALSE_VALUES:
        return False
    raise ValueError(f"{name} must be a boolean, got {value!r}")


def settings_from_dict(data: Dict[str, Any]) -> ArchiveSettings:
    """
    Build settings from a mapping with camelCase or snake_case keys.

    Raises:
        ValueError: On unknown visibility or non-boolean flags
    """
    values: Dict[str, Any] = {}
    for field_name, (camel, _) in SETTING_KEYS.items():
        if field_name in data:
            values[field_name] = data[field_name]
        elif camel in data:
            values[field_name] = data[camel]

    for flag in ('run_pii_scan', 'always_redact', 'default_show_author'):
        if flag in values:
            values[flag] = _to_bool(flag, values[flag])

    if 'default_visibility' in values:
        visibility = str(values['default_visibility']).strip().lower()
        if visibility not in VISIBILITIES:
            raise ValueError(
                f"default_visibility must be one of {VISIBILITIES}, got {values['default_visibility']!r}"
            )
        values['default_visibility'] = visibility

    return ArchiveSettings(**values)


def load_settings(
    path: Optional[Path] = None,
    env: Optional[Dict[str, str]] = None,
    env_file: Optional[Path] = None
) -> ArchiveSettings:
    """
    Load settings from YAML plus environment overrides.

    Args:
        path: Settings YAML (defaults to DEFAULT_SETTINGS_PATH; a missing
            default file means built-in defaults)
        env: Environment mapping (defaults to os.environ after loading .env)
        env_file: .env file to load (defaults to the repo root .env)

    Returns:
        ArchiveSettings

    Raises:
        FileNotFoundError: If an explicit path does not exist
        ValueError: If the file or an override holds an invalid value
    """
    settings_path = Path(path) if path else DEFAULT_SETTINGS_PATH
    data: Dict[str, Any] = {}

    if settings_path.exists():
        with open(settings_path, 'r', encoding='utf-8') as f:
            loaded = yaml.safe_load(f) or {}
        if not isinstance(loaded, dict):
            raise ValueError(f"Settings file must hold a mapping: {settings_path}")
        data.update(loaded)
        logger.debug(f"Loaded settings from {settings_path}")
    elif path:
        raise FileNotFoundError(f"Settings file not found: {settings_path}")

    if env is None:
        load_dotenv(env_file or REPO_ROOT / ".env")
        env = dict(os.environ)

    for field_name, (_, variable) in SETTING_KEYS.items():
        if variable in env:
            data.pop(SETTING_KEYS[field_name][0], None)
            data[field_name] = env[variable]
            logger.debug(f"Setting {field_name} overridden by {variable}")

    return settings_from_dict(data)
