"""
qmdlsp Language Server.

Registers LSP capabilities and wires the markdown handlers and the embedded
language virtual documents.

Embedded-language features (completion, hover, diagnostics inside code
cells) are run by the client against a virtual document obtained with::

    client.sendRequest('workspace/executeCommand',
                       {command: 'qmdlsp.getVirtualDoc', arguments: [uri, line, character]})

Content-addressed virtual URIs are read back with ``qmdlsp.getVirtualDocContent``.
"""
from __future__ import annotations

import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor

from pygls.lsp.server import LanguageServer
from pygls.uris import to_fs_path
from lsprotocol import types as lsp

logger = logging.getLogger(__name__)

from qmdlsp import __version__
from qmdlsp.config import SettingsResolver
from qmdlsp.document import parse_document, ParsedDocument
from qmdlsp.handlers import get_completions, get_hover
from qmdlsp.preview_errors import preview_error_location
from qmdlsp.vdoc import project, virtual_doc_uri
from qmdlsp.vdoc_content import decode_uri
from qmdlsp.vdoc_tempfile import TempFileStore, VirtualDocumentError

# ---------------------------------------------------------------------------
# Server instance + per-session state
# ---------------------------------------------------------------------------

server = LanguageServer(
    'qmdlsp', __version__,
    text_document_sync_kind=lsp.TextDocumentSyncKind.Full,
)

# Per-URI document store (populated on open/change).
_docs: dict[str, ParsedDocument] = {}

# Settings resolver — single instance, replaced on initialize.
_settings = SettingsResolver()

# Temp-file directory given on the command line; settings take precedence.
_default_tempfile_dir: str | None = None

# Backing files for temp-file virtual documents.
_tempfiles = TempFileStore(_settings.settings.tempfile_dir)

# Thread pool for temp-file writes (keeps event loop free).
_executor = ThreadPoolExecutor(max_workers=2, thread_name_prefix='qmdlsp-vdoc')


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _apply_log_level(raw: str | None) -> None:
    """Set the root logger level from a string like 'debug', 'warning', etc."""
    if not raw:
        return
    level = getattr(logging, str(raw).upper(), None)
    if isinstance(level, int):
        logging.getLogger().setLevel(level)


def _client_options(options) -> dict | None:
    """Extract the ``qmdlsp`` section from client options, if present."""
    if options is None:
        return None
    if isinstance(options, dict):
        section = options.get('qmdlsp', options)
        return section if isinstance(section, dict) else None
    # Some clients send a typed object; try attribute access
    section = getattr(options, 'qmdlsp', None)
    return section if isinstance(section, dict) else None


def _apply_settings() -> None:
    """Recreate the temp-file store if its directory changed; apply log level."""
    global _tempfiles
    settings = _settings.settings
    wanted = TempFileStore(settings.tempfile_dir or _default_tempfile_dir)
    if wanted.directory != _tempfiles.directory:
        logger.info('temp-file directory changed to %s', wanted.directory)
        _tempfiles.cleanup()
        _tempfiles = wanted
    _apply_log_level(settings.log_level)


def set_default_tempfile_dir(directory: str | None) -> None:
    """Use *directory* for temp-file documents unless settings name another."""
    global _default_tempfile_dir
    _default_tempfile_dir = directory
    _apply_settings()


def virtual_doc_info(uri: str, position: lsp.Position) -> dict | None:
    """Project and materialize the virtual document at *position* in *uri*.

    Returns None when the document is unknown or *position* is not inside a
    registered language block.  Raises :class:`VirtualDocumentError` if a
    backing file cannot be written.
    """
    doc = _docs.get(uri)
    if doc is None:
        logger.debug('virtual_doc_info: no doc for %s', uri)
        return None
    vdoc = project(doc, position, _settings.registry)
    if vdoc is None:
        return None
    virtual_uri = virtual_doc_uri(vdoc, uri, _tempfiles)
    logger.debug('virtual_doc_info: %s line %d → %s', uri, position.line, vdoc.language.id)
    return {
        'languageId': vdoc.language.id,
        'extension': vdoc.language.extension,
        'strategy': vdoc.language.strategy.value,
        'content': vdoc.content,
        'virtualUri': virtual_uri,
    }


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------

@server.feature(lsp.INITIALIZE)
def on_initialize(params: lsp.InitializeParams):
    global _settings
    workspace_root = to_fs_path(params.root_uri) if params.root_uri else None

    _settings = SettingsResolver(workspace_root=workspace_root)
    opts = _client_options(getattr(params, 'initialization_options', None))
    if opts:
        _settings.set_client_settings(opts)
    _apply_settings()


@server.feature(lsp.WORKSPACE_DID_CHANGE_CONFIGURATION)
def did_change_configuration(params: lsp.DidChangeConfigurationParams):
    """Handle live config changes (e.g. user changes ``qmdlsp.languages`` in VS Code)."""
    settings = getattr(params, 'settings', None) or {}
    if isinstance(settings, dict):
        section = settings.get('qmdlsp')
        if isinstance(section, dict):
            _settings.set_client_settings(section)
            _apply_settings()


@server.feature(lsp.WORKSPACE_DID_CHANGE_WATCHED_FILES)
def did_change_watched_files(params: lsp.DidChangeWatchedFilesParams):
    """Re-read ``.qmdlsp.toml`` when the client reports it changed."""
    if any(change.uri.endswith('/.qmdlsp.toml') for change in params.changes):
        _settings.reload()
        _apply_settings()


@server.feature(lsp.SHUTDOWN)
def on_shutdown(params=None):
    _tempfiles.cleanup()
    _executor.shutdown(wait=False)


# ---------------------------------------------------------------------------
# Text document synchronisation
# ---------------------------------------------------------------------------

@server.feature(lsp.TEXT_DOCUMENT_DID_OPEN)
def did_open(params: lsp.DidOpenTextDocumentParams):
    td = params.text_document
    _docs[td.uri] = parse_document(td.uri, td.text)


@server.feature(lsp.TEXT_DOCUMENT_DID_CHANGE)
def did_change(params: lsp.DidChangeTextDocumentParams):
    uri = params.text_document.uri
    source = params.content_changes[-1].text
    _docs[uri] = parse_document(uri, source)


@server.feature(lsp.TEXT_DOCUMENT_DID_CLOSE)
def did_close(params: lsp.DidCloseTextDocumentParams):
    uri = params.text_document.uri
    _docs.pop(uri, None)
    _tempfiles.forget(uri)


# ---------------------------------------------------------------------------
# Completion
# ---------------------------------------------------------------------------

@server.feature(
    lsp.TEXT_DOCUMENT_COMPLETION,
    lsp.CompletionOptions(trigger_characters=['@']),
)
def completion(params: lsp.CompletionParams) -> lsp.CompletionList | None:
    doc = _docs.get(params.text_document.uri)
    if doc is None:
        return None
    items = get_completions(doc, params.position)
    return lsp.CompletionList(is_incomplete=False, items=items)


# ---------------------------------------------------------------------------
# Hover
# ---------------------------------------------------------------------------

@server.feature(lsp.TEXT_DOCUMENT_HOVER)
def hover(params: lsp.HoverParams) -> lsp.Hover | None:
    doc = _docs.get(params.text_document.uri)
    if doc is None:
        return None
    return get_hover(doc, params.position)


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

# pygls unpacks ``workspace/executeCommand`` ``arguments`` as positional args.

@server.command('qmdlsp.getVirtualDoc')
async def cmd_get_virtual_doc(uri: str, line: int, character: int = 0):
    """Return the virtual document for the embedded language at (line, character).

    The result is ``null`` when the position is not inside a registered
    language block; the client then falls back to markdown behaviour.
    """
    if uri is None:
        return None
    position = lsp.Position(line=int(line), character=int(character))
    loop = asyncio.get_running_loop()
    try:
        return await loop.run_in_executor(_executor, virtual_doc_info, uri, position)
    except VirtualDocumentError:
        logger.error('qmdlsp.getVirtualDoc failed for %s', uri, exc_info=True)
        raise


@server.command('qmdlsp.getVirtualDocContent')
def cmd_get_virtual_doc_content(virtual_uri: str):
    """Answer a virtual-filesystem read for a content-addressed URI."""
    _language_id, content, _parent = decode_uri(virtual_uri)
    return content


@server.command('qmdlsp.getPreviewErrorLocation')
def cmd_get_preview_error_location(output: str, preview_target: str, preview_dir: str):
    """Return ``{file, lineBegin, lineEnd}`` for the error in render *output*, or null."""
    location = preview_error_location(output, preview_target, preview_dir)
    return location.to_dict() if location else None
