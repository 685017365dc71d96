"""
Embedded language registry.

Maps an identifier taken from a fence info string (``python``, ``{r}``,
``js`` ...) to the :class:`EmbeddedLanguage` descriptor that says how the
virtual document for that language is materialized.

Lookup is by alias: every string in ``EmbeddedLanguage.ids`` resolves to the
same descriptor, and the first alias is the language's primary identity.
"""
from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, replace
from typing import Iterable, Mapping

logger = logging.getLogger(__name__)


class Strategy(enum.Enum):
    """How a virtual document is handed to the embedded language's tooling."""
    CONTENT = 'content'      # content-addressed virtual URI, no disk I/O
    TEMPFILE = 'tempfile'    # backing file on disk


def strategy_from_string(value: str | None) -> Strategy | None:
    """Convert ``'content'`` / ``'tempfile'`` (any case) to a :class:`Strategy`."""
    if not value:
        return None
    name = str(value).strip().lower().replace('-', '').replace('_', '')
    for strategy in Strategy:
        if strategy.value == name:
            return strategy
    return None


@dataclass(frozen=True)
class EmbeddedLanguage:
    ids: tuple[str, ...]
    extension: str
    strategy: Strategy = Strategy.CONTENT
    inject: str | None = None

    @property
    def id(self) -> str:
        return self.ids[0]

    def matches(self, identifier: str) -> bool:
        return identifier in self.ids


# Identifier display-math blocks classify to.
MATH_LANGUAGE_ID = 'latex'

_DEFAULT_LANGUAGES: tuple[EmbeddedLanguage, ...] = (
    EmbeddedLanguage(ids=('python', 'py'), extension='py'),
    EmbeddedLanguage(ids=('r',), extension='r', strategy=Strategy.TEMPFILE,
                     inject='# !diagnostics off'),
    EmbeddedLanguage(ids=('julia', 'jl'), extension='jl', strategy=Strategy.TEMPFILE),
    EmbeddedLanguage(ids=('sql',), extension='sql'),
    EmbeddedLanguage(ids=('bash', 'sh', 'shell'), extension='sh'),
    EmbeddedLanguage(ids=('javascript', 'js', 'ojs'), extension='js'),
    EmbeddedLanguage(ids=('typescript', 'ts'), extension='ts'),
    EmbeddedLanguage(ids=('html',), extension='html'),
    EmbeddedLanguage(ids=('css',), extension='css'),
    EmbeddedLanguage(ids=(MATH_LANGUAGE_ID, 'tex'), extension='tex'),
    EmbeddedLanguage(ids=('dot', 'graphviz'), extension='dot'),
    EmbeddedLanguage(ids=('mermaid',), extension='mmd'),
    EmbeddedLanguage(ids=('yaml', 'yml'), extension='yaml'),
    EmbeddedLanguage(ids=('json',), extension='json'),
    EmbeddedLanguage(ids=('toml',), extension='toml'),
    EmbeddedLanguage(ids=('c',), extension='c'),
    EmbeddedLanguage(ids=('cpp', 'c++'), extension='cpp'),
)


class LanguageRegistry:
    """Immutable alias -> :class:`EmbeddedLanguage` lookup table."""

    def __init__(self, languages: Iterable[EmbeddedLanguage] = _DEFAULT_LANGUAGES):
        self._languages: tuple[EmbeddedLanguage, ...] = tuple(languages)
        self._by_id: dict[str, EmbeddedLanguage] = {}
        for language in self._languages:
            for alias in language.ids:
                # First registration of an alias wins
                self._by_id.setdefault(alias, language)

    def __iter__(self):
        return iter(self._languages)

    def __len__(self) -> int:
        return len(self._languages)

    def lookup(self, identifier: str | None) -> EmbeddedLanguage | None:
        """Return the language registered under *identifier*, or None."""
        if not identifier:
            return None
        return self._by_id.get(identifier)

    def with_overrides(
        self,
        strategies: Mapping[str, Strategy] | None = None,
        injects: Mapping[str, str | None] | None = None,
    ) -> LanguageRegistry:
        """Return a new registry with per-language strategy/inject replaced.

        Keys may be any alias of a registered language.  Unknown keys are
        logged and ignored.
        """
        strategies = dict(strategies or {})
        injects = dict(injects or {})
        for key in set(strategies) | set(injects):
            if self.lookup(key) is None:
                logger.warning('ignoring configuration for unknown language %r', key)

        updated: list[EmbeddedLanguage] = []
        for language in self._languages:
            changes = {}
            for alias in language.ids:
                if alias in strategies:
                    changes['strategy'] = strategies[alias]
                if alias in injects:
                    changes['inject'] = injects[alias] or None
            updated.append(replace(language, **changes) if changes else language)
        return LanguageRegistry(updated)


default_registry = LanguageRegistry()


def embedded_language(identifier: str | None) -> EmbeddedLanguage | None:
    """Look *identifier* up in the default registry."""
    return default_registry.lookup(identifier)
