"""
Settings resolution for qmdlsp.

Settings are resolved with a cascading set of sources:

1. Client configuration supplied via ``initializationOptions`` or
   ``workspace/didChangeConfiguration`` (under the ``qmdlsp`` key).
2. A ``.qmdlsp.toml`` project config file in the workspace root.
3. Built-in defaults.

A ``.qmdlsp.toml`` looks like::

    tempfile_dir = ".vdoc"

    [languages.python]
    strategy = "tempfile"
    inject = "# type: ignore"

Relative ``tempfile_dir`` values are resolved against the workspace root.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

from qmdlsp.languages import LanguageRegistry, Strategy, default_registry, strategy_from_string

logger = logging.getLogger(__name__)

CONFIG_FILENAME = '.qmdlsp.toml'


@dataclass
class Settings:
    tempfile_dir: str | None = None
    strategies: dict[str, Strategy] = field(default_factory=dict)
    injects: dict[str, str | None] = field(default_factory=dict)
    log_level: str | None = None

    def registry(self, base: LanguageRegistry = default_registry) -> LanguageRegistry:
        if not self.strategies and not self.injects:
            return base
        return base.with_overrides(self.strategies, self.injects)


# ---------------------------------------------------------------------------
# Parsing raw option mappings
# ---------------------------------------------------------------------------

def _get(options: Mapping[str, Any], *keys: str):
    for key in keys:
        if key in options:
            return options[key]
    return None


def settings_from_mapping(options: Mapping[str, Any] | None, base_dir: str | None = None) -> Settings:
    """Build :class:`Settings` from a TOML table or client settings object.

    Both ``snake_case`` and ``camelCase`` keys are accepted.  Invalid entries
    are logged and skipped.
    """
    settings = Settings()
    if not options:
        return settings

    tempfile_dir = _get(options, 'tempfile_dir', 'tempfileDir')
    if tempfile_dir:
        path = Path(str(tempfile_dir)).expanduser()
        if not path.is_absolute() and base_dir:
            path = Path(base_dir) / path
        settings.tempfile_dir = str(path)

    level = _get(options, 'log_level', 'logLevel')
    if level:
        settings.log_level = str(level)

    languages = options.get('languages') or {}
    if not isinstance(languages, Mapping):
        logger.warning('ignoring "languages" setting: expected a table, got %r', type(languages).__name__)
        languages = {}
    for lang_id, entry in languages.items():
        if not isinstance(entry, Mapping):
            logger.warning('ignoring settings for language %r: expected a table', lang_id)
            continue
        if 'strategy' in entry:
            strategy = strategy_from_string(entry['strategy'])
            if strategy is None:
                logger.warning('unknown strategy %r for language %r', entry['strategy'], lang_id)
            else:
                settings.strategies[lang_id] = strategy
        if 'inject' in entry:
            settings.injects[lang_id] = entry['inject'] or None

    return settings


def _merge(low: Settings, high: Settings) -> Settings:
    """Return *low* overlaid with every value *high* sets."""
    return Settings(
        tempfile_dir=high.tempfile_dir or low.tempfile_dir,
        strategies={**low.strategies, **high.strategies},
        injects={**low.injects, **high.injects},
        log_level=high.log_level or low.log_level,
    )


# ---------------------------------------------------------------------------
# Project config file
# ---------------------------------------------------------------------------

def _read_project_config(workspace_root: str | None) -> Settings:
    """Parse ``.qmdlsp.toml`` in *workspace_root*; defaults if absent or invalid."""
    if not workspace_root:
        return Settings()
    try:
        import tomllib  # Python 3.11+
    except ImportError:
        import tomli as tomllib

    config_path = Path(workspace_root) / CONFIG_FILENAME
    if not config_path.exists():
        return Settings()

    try:
        data = tomllib.loads(config_path.read_text(encoding='utf-8'))
    except (OSError, UnicodeDecodeError, tomllib.TOMLDecodeError) as e:
        logger.warning('could not read %s: %s', config_path, e)
        return Settings()
    return settings_from_mapping(data, base_dir=workspace_root)


# ---------------------------------------------------------------------------
# SettingsResolver
# ---------------------------------------------------------------------------

class SettingsResolver:
    """Resolves the effective :class:`Settings` and language registry.

    The project file is read once on construction and again on
    :meth:`reload`; client settings replace each other wholesale.
    """

    def __init__(self, workspace_root: str | None = None):
        self._workspace_root = workspace_root
        self._project = _read_project_config(workspace_root)
        self._client = Settings()
        self._effective = self._project
        self._registry = self._effective.registry()

    @property
    def workspace_root(self) -> str | None:
        return self._workspace_root

    @property
    def settings(self) -> Settings:
        return self._effective

    @property
    def registry(self) -> LanguageRegistry:
        return self._registry

    def set_client_settings(self, options: Mapping[str, Any] | None) -> Settings:
        """Replace the client-supplied settings and return the effective result."""
        self._client = settings_from_mapping(options, base_dir=self._workspace_root)
        return self._refresh()

    def reload(self) -> Settings:
        """Re-read the project config file (e.g. after it changed on disk)."""
        self._project = _read_project_config(self._workspace_root)
        return self._refresh()

    def _refresh(self) -> Settings:
        self._effective = _merge(self._project, self._client)
        self._registry = self._effective.registry()
        return self._effective
