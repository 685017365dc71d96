"""
Temp-file backed virtual documents.

Some language servers only work on real files, so for languages using
:attr:`~qmdlsp.languages.Strategy.TEMPFILE` the virtual document is written to
disk and handed over as a ``file://`` URI.

Each (parent document, language) pair owns one stable file, named after a hash
of the parent URI.  The file is rewritten on every request because the
embedded code may have changed between two requests.  Writes go to a sibling
file first and are moved into place with :func:`os.replace` while holding a
per-pair lock, so a reader never sees a partially written file.
"""
from __future__ import annotations

import hashlib
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from qmdlsp.vdoc import VirtualDocument

logger = logging.getLogger(__name__)


class VirtualDocumentError(Exception):
    """Raised when a virtual document cannot be materialized."""


def default_tempfile_dir() -> str:
    return str(Path(tempfile.gettempdir()) / 'qmdlsp')


class TempFileStore:
    """Owns the backing files written for temp-file virtual documents.

    Bookkeeping (``_locks`` and ``_files``) is only touched under
    ``_locks_guard``.  Per-pair locks live as long as the store, so a writer
    and :meth:`forget` always contend on the same lock object.
    """

    def __init__(self, directory: str | None = None):
        self.directory = Path(directory) if directory else Path(default_tempfile_dir())
        self._locks: dict[tuple[str, str], threading.Lock] = {}
        self._locks_guard = threading.Lock()
        # (parent uri, language id) -> file written on its behalf
        self._files: dict[tuple[str, str], Path] = {}

    def path_for(self, parent_uri: str, language_id: str, extension: str) -> Path:
        digest = hashlib.md5(parent_uri.encode()).hexdigest()[:12]
        return self.directory / f'qmdlsp_{digest}_{language_id}.{extension}'

    def _lock_for(self, key: tuple[str, str]) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = threading.Lock()
            return lock

    def tracked(self, parent_uri: str) -> list[Path]:
        """Backing files currently held for *parent_uri*."""
        with self._locks_guard:
            return [path for key, path in self._files.items() if key[0] == parent_uri]

    def materialize(self, vdoc: VirtualDocument, parent_uri: str) -> str:
        """Write *vdoc* to its backing file and return the file's URI.

        Raises :class:`VirtualDocumentError` if the file cannot be written.
        """
        language = vdoc.language
        key = (parent_uri, language.id)
        path = self.path_for(parent_uri, language.id, language.extension)
        with self._lock_for(key):
            try:
                self.directory.mkdir(parents=True, exist_ok=True)
                fd, tmp_name = tempfile.mkstemp(
                    dir=self.directory, prefix='.qmdlsp_', suffix='.tmp',
                )
                try:
                    with os.fdopen(fd, 'w', encoding='utf-8', newline='') as fh:
                        fh.write(vdoc.content)
                    os.replace(tmp_name, path)
                except BaseException:
                    Path(tmp_name).unlink(missing_ok=True)
                    raise
            except OSError as e:
                logger.error('failed to write virtual document %s: %s', path, e)
                raise VirtualDocumentError(
                    f'cannot write {language.id} virtual document for {parent_uri}: {e}'
                ) from e
            with self._locks_guard:
                self._files[key] = path
        logger.debug('materialize: %s -> %s (%d chars)', parent_uri, path, len(vdoc.content))
        return path.resolve().as_uri()

    def forget(self, parent_uri: str) -> None:
        """Delete the backing files of *parent_uri* (called when it is closed).

        Waits for any write in progress for the same parent, so the file it
        produces is removed too.
        """
        with self._locks_guard:
            keys = [key for key in self._locks if key[0] == parent_uri]
        for key in keys:
            with self._lock_for(key):
                with self._locks_guard:
                    path = self._files.pop(key, None)
                if path is None:
                    continue
                try:
                    path.unlink(missing_ok=True)
                except OSError as e:
                    logger.warning('could not remove %s: %s', path, e)

    def cleanup(self) -> None:
        """Delete every backing file this store has written."""
        with self._locks_guard:
            parents = {key[0] for key in self._locks}
        for parent_uri in parents:
            self.forget(parent_uri)
