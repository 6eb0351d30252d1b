"""
Tests for the environment loader and map settings.
"""

import os

from env_config import MapSettings, get_env_int, load_env_file, load_map_settings


class TestEnvFile:

    def test_loads_values_without_overriding(self, tmp_path, monkeypatch):
        env = tmp_path / '.env'
        env.write_text('# comment\nPLACEMAP_TEST_A="quoted"\nPLACEMAP_TEST_B=plain\nnot a pair\n')
        monkeypatch.setenv('PLACEMAP_TEST_B', 'from-shell')
        monkeypatch.delenv('PLACEMAP_TEST_A', raising=False)
        load_env_file(str(env))
        assert os.environ['PLACEMAP_TEST_A'] == 'quoted'
        assert os.environ['PLACEMAP_TEST_B'] == 'from-shell'
        monkeypatch.delenv('PLACEMAP_TEST_A')

    def test_missing_file_is_fine(self, tmp_path):
        load_env_file(str(tmp_path / 'missing.env'))


class TestEnvInt:

    def test_default_and_bad_values(self, monkeypatch):
        monkeypatch.delenv('PLACEMAP_TEST_INT', raising=False)
        assert get_env_int('PLACEMAP_TEST_INT', 7) == 7
        monkeypatch.setenv('PLACEMAP_TEST_INT', 'abc')
        assert get_env_int('PLACEMAP_TEST_INT', 7) == 7
        monkeypatch.setenv('PLACEMAP_TEST_INT', '42')
        assert get_env_int('PLACEMAP_TEST_INT', 7) == 42


class TestMapSettings:

    def test_defaults(self):
        settings = MapSettings()
        assert settings.default_zoom == 13
        assert settings.fit_padding == 50
        assert settings.min_zoom <= settings.fit_max_zoom <= settings.max_zoom

    def test_from_environment(self, monkeypatch):
        monkeypatch.setenv('MAP_WIDTH', '1024')
        monkeypatch.setenv('MAP_HEIGHT', '480')
        monkeypatch.setenv('PLACES_SITE_URL', 'https://places.example.com/')
        settings = load_map_settings()
        assert (settings.width_px, settings.height_px) == (1024, 480)
        assert settings.detail_base_url == 'https://places.example.com'
