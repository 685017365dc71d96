"""Tests for qmdlsp.config — SettingsResolver and settings parsing."""
from __future__ import annotations

PROJECT_TOML = """\
tempfile_dir = "vdocs"
log_level = "debug"

[languages.python]
strategy = "tempfile"
inject = "# type: ignore"
"""


class TestSettingsFromMapping:
    def test_empty(self):
        from qmdlsp.config import settings_from_mapping
        s = settings_from_mapping(None)
        assert s.tempfile_dir is None
        assert s.strategies == {} and s.injects == {}

    def test_camel_case_keys(self):
        from qmdlsp.config import settings_from_mapping
        s = settings_from_mapping({'tempfileDir': '/tmp/vd', 'logLevel': 'info'})
        assert s.tempfile_dir == '/tmp/vd'
        assert s.log_level == 'info'

    def test_relative_tempfile_dir(self, tmp_path):
        from qmdlsp.config import settings_from_mapping
        s = settings_from_mapping({'tempfile_dir': '.vdoc'}, base_dir=str(tmp_path))
        assert s.tempfile_dir == str(tmp_path / '.vdoc')

    def test_invalid_strategy_skipped(self):
        from qmdlsp.config import settings_from_mapping
        s = settings_from_mapping({'languages': {'python': {'strategy': 'floppy'}}})
        assert s.strategies == {}

    def test_non_table_language_entry_skipped(self):
        from qmdlsp.config import settings_from_mapping
        s = settings_from_mapping({'languages': {'python': 'tempfile'}})
        assert s.strategies == {}


class TestSettingsResolver:
    def test_defaults_without_workspace(self):
        from qmdlsp.config import SettingsResolver
        from qmdlsp.languages import Strategy
        r = SettingsResolver()
        assert r.settings.tempfile_dir is None
        assert r.registry.lookup('python').strategy is Strategy.CONTENT

    def test_project_config_file(self, tmp_path):
        from qmdlsp.config import SettingsResolver
        from qmdlsp.languages import Strategy
        (tmp_path / '.qmdlsp.toml').write_text(PROJECT_TOML)
        r = SettingsResolver(workspace_root=str(tmp_path))
        assert r.settings.tempfile_dir == str(tmp_path / 'vdocs')
        assert r.settings.log_level == 'debug'
        python = r.registry.lookup('py')
        assert python.strategy is Strategy.TEMPFILE
        assert python.inject == '# type: ignore'

    def test_missing_config_falls_through(self, tmp_path):
        from qmdlsp.config import SettingsResolver
        r = SettingsResolver(workspace_root=str(tmp_path))
        assert r.settings.tempfile_dir is None

    def test_invalid_toml_falls_back_to_defaults(self, tmp_path):
        from qmdlsp.config import SettingsResolver
        (tmp_path / '.qmdlsp.toml').write_text('this is = = not toml')
        r = SettingsResolver(workspace_root=str(tmp_path))
        assert r.settings.strategies == {}

    def test_client_settings_override_project(self, tmp_path):
        from qmdlsp.config import SettingsResolver
        from qmdlsp.languages import Strategy
        (tmp_path / '.qmdlsp.toml').write_text(PROJECT_TOML)
        r = SettingsResolver(workspace_root=str(tmp_path))
        r.set_client_settings({'languages': {'python': {'strategy': 'content'}}})
        assert r.registry.lookup('python').strategy is Strategy.CONTENT
        # values the client does not set still come from the project file
        assert r.registry.lookup('python').inject == '# type: ignore'
        assert r.settings.tempfile_dir == str(tmp_path / 'vdocs')

    def test_clearing_client_settings_restores_project(self, tmp_path):
        from qmdlsp.config import SettingsResolver
        from qmdlsp.languages import Strategy
        (tmp_path / '.qmdlsp.toml').write_text(PROJECT_TOML)
        r = SettingsResolver(workspace_root=str(tmp_path))
        r.set_client_settings({'languages': {'python': {'strategy': 'content'}}})
        r.set_client_settings(None)
        assert r.registry.lookup('python').strategy is Strategy.TEMPFILE

    def test_reload_picks_up_changes(self, tmp_path):
        from qmdlsp.config import SettingsResolver
        from qmdlsp.languages import Strategy
        r = SettingsResolver(workspace_root=str(tmp_path))
        (tmp_path / '.qmdlsp.toml').write_text(PROJECT_TOML)
        r.reload()
        assert r.registry.lookup('python').strategy is Strategy.TEMPFILE
