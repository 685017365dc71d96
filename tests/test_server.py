"""Tests for qmdlsp.server — document store, commands and lifecycle."""
from __future__ import annotations

import asyncio

import pytest
from lsprotocol import types as lsp

URI = 'file:///work/doc.qmd'

SOURCE = """\
# T
```python
x = 1
```

```{r}
y <- 2
```
"""


@pytest.fixture
def srv(tmp_path, monkeypatch):
    import qmdlsp.server as srv
    from qmdlsp.config import SettingsResolver
    from qmdlsp.vdoc_tempfile import TempFileStore
    monkeypatch.setattr(srv, '_docs', {})
    monkeypatch.setattr(srv, '_settings', SettingsResolver())
    monkeypatch.setattr(srv, '_tempfiles', TempFileStore(str(tmp_path)))
    return srv


def _open(srv, uri: str = URI, text: str = SOURCE) -> None:
    srv.did_open(lsp.DidOpenTextDocumentParams(
        text_document=lsp.TextDocumentItem(uri=uri, language_id='quarto', version=1, text=text),
    ))


class TestServerModule:
    def test_server_importable(self):
        from qmdlsp.server import server
        assert server is not None

    def test_docs_dict_initially_empty(self):
        from qmdlsp.server import _docs
        assert isinstance(_docs, dict)


class TestDocumentSync:
    def test_open_change_close(self, srv):
        _open(srv)
        assert srv._docs[URI].line_count == 9
        srv.did_change(lsp.DidChangeTextDocumentParams(
            text_document=lsp.VersionedTextDocumentIdentifier(uri=URI, version=2),
            content_changes=[lsp.TextDocumentContentChangeWholeDocument(text='new\n')],
        ))
        assert srv._docs[URI].lines == ('new', '')
        srv.did_close(lsp.DidCloseTextDocumentParams(
            text_document=lsp.TextDocumentIdentifier(uri=URI),
        ))
        assert URI not in srv._docs


class TestVirtualDocInfo:
    def test_content_strategy(self, srv):
        from qmdlsp.vdoc_content import decode_uri
        _open(srv)
        info = srv.virtual_doc_info(URI, lsp.Position(line=2, character=0))
        assert info['languageId'] == 'python'
        assert info['strategy'] == 'content'
        assert info['content'].split('\n')[2] == 'x = 1'
        assert decode_uri(info['virtualUri']) == ('python', info['content'], URI)

    def test_tempfile_strategy(self, srv, tmp_path):
        _open(srv)
        info = srv.virtual_doc_info(URI, lsp.Position(line=6, character=0))
        assert info['languageId'] == 'r'
        assert info['strategy'] == 'tempfile'
        files = list(tmp_path.iterdir())
        assert len(files) == 1
        assert files[0].read_text(encoding='utf-8') == info['content']

    def test_outside_block(self, srv):
        _open(srv)
        assert srv.virtual_doc_info(URI, lsp.Position(line=0, character=0)) is None

    def test_unknown_document(self, srv):
        assert srv.virtual_doc_info('file:///nope.qmd', lsp.Position(line=0, character=0)) is None

    def test_close_removes_temp_files(self, srv, tmp_path):
        _open(srv)
        srv.virtual_doc_info(URI, lsp.Position(line=6, character=0))
        srv.did_close(lsp.DidCloseTextDocumentParams(
            text_document=lsp.TextDocumentIdentifier(uri=URI),
        ))
        assert list(tmp_path.iterdir()) == []

    def test_write_failure_propagates(self, srv, tmp_path, monkeypatch):
        from qmdlsp.vdoc_tempfile import TempFileStore, VirtualDocumentError
        blocker = tmp_path / 'blocker'
        blocker.write_text('')
        monkeypatch.setattr(srv, '_tempfiles', TempFileStore(str(blocker)))
        _open(srv)
        with pytest.raises(VirtualDocumentError):
            srv.virtual_doc_info(URI, lsp.Position(line=6, character=0))

    def test_configured_strategy_applies(self, srv, tmp_path):
        _open(srv)
        srv._settings.set_client_settings({'languages': {'python': {'strategy': 'tempfile'}}})
        info = srv.virtual_doc_info(URI, lsp.Position(line=2, character=0))
        assert info['strategy'] == 'tempfile'
        assert info['virtualUri'].startswith('file://')


class TestCommands:
    def test_get_virtual_doc(self, srv):
        _open(srv)
        info = asyncio.run(srv.cmd_get_virtual_doc(URI, 2, 0))
        assert info['languageId'] == 'python'

    def test_get_virtual_doc_outside(self, srv):
        _open(srv)
        assert asyncio.run(srv.cmd_get_virtual_doc(URI, 0, 0)) is None

    def test_get_virtual_doc_write_failure(self, srv, tmp_path, monkeypatch, caplog):
        import logging
        from qmdlsp.vdoc_tempfile import TempFileStore, VirtualDocumentError
        blocker = tmp_path / 'blocker'
        blocker.write_text('')
        monkeypatch.setattr(srv, '_tempfiles', TempFileStore(str(blocker)))
        _open(srv)
        with caplog.at_level(logging.ERROR, logger='qmdlsp.server'):
            with pytest.raises(VirtualDocumentError):
                asyncio.run(srv.cmd_get_virtual_doc(URI, 6, 0))
        assert 'qmdlsp.getVirtualDoc failed' in caplog.text

    def test_get_virtual_doc_content(self, srv):
        from qmdlsp.vdoc_content import encode_uri
        uri = encode_uri('python', 'py', '\nx = 1', URI)
        assert srv.cmd_get_virtual_doc_content(uri) == '\nx = 1'

    def test_get_virtual_doc_content_malformed(self, srv):
        with pytest.raises(ValueError):
            srv.cmd_get_virtual_doc_content('file:///work/doc.qmd')

    def test_preview_error_location(self, srv):
        result = srv.cmd_get_preview_error_location(
            'Quitting from lines 3-4 (doc.Rmd)', '/work/doc.qmd', '/work',
        )
        assert result == {'file': '/work/doc.Rmd', 'lineBegin': 3, 'lineEnd': 4}


class TestFeatures:
    def test_hover_on_math(self, srv):
        _open(srv, text='Some $x$ here\n')
        h = srv.hover(lsp.HoverParams(
            text_document=lsp.TextDocumentIdentifier(uri=URI),
            position=lsp.Position(line=0, character=6),
        ))
        assert h is not None

    def test_completion(self, srv):
        _open(srv, text='# A {#sec-a}\n\nSee @')
        result = srv.completion(lsp.CompletionParams(
            text_document=lsp.TextDocumentIdentifier(uri=URI),
            position=lsp.Position(line=2, character=5),
        ))
        assert [i.label for i in result.items] == ['sec-a']

    def test_unknown_document(self, srv):
        assert srv.hover(lsp.HoverParams(
            text_document=lsp.TextDocumentIdentifier(uri='file:///nope.qmd'),
            position=lsp.Position(line=0, character=0),
        )) is None


class TestConfiguration:
    def test_initialize_reads_project_config(self, srv, tmp_path):
        ws = tmp_path / 'ws'
        ws.mkdir()
        (ws / '.qmdlsp.toml').write_text('tempfile_dir = "vd"\n')
        srv.on_initialize(lsp.InitializeParams(
            process_id=None,
            capabilities=lsp.ClientCapabilities(),
            root_uri=ws.as_uri(),
        ))
        assert srv._tempfiles.directory == ws / 'vd'

    def test_initialize_decodes_root_uri(self, srv, tmp_path):
        ws = tmp_path / 'my project'
        ws.mkdir()
        (ws / '.qmdlsp.toml').write_text('tempfile_dir = "vd"\n')
        assert '%20' in ws.as_uri()
        srv.on_initialize(lsp.InitializeParams(
            process_id=None,
            capabilities=lsp.ClientCapabilities(),
            root_uri=ws.as_uri(),
        ))
        assert srv._settings.workspace_root == str(ws)
        assert srv._tempfiles.directory == ws / 'vd'

    def test_did_change_configuration(self, srv):
        from qmdlsp.languages import Strategy
        srv.did_change_configuration(lsp.DidChangeConfigurationParams(
            settings={'qmdlsp': {'languages': {'sql': {'strategy': 'tempfile'}}}},
        ))
        assert srv._settings.registry.lookup('sql').strategy is Strategy.TEMPFILE
