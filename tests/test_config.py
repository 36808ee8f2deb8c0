"""
Tests for brandsnap/config.py.
"""

import pytest

from brandsnap.config import USER_AGENTS, CrawlerConfig, Settings, load_settings
from brandsnap.errors import ConfigError


class TestDefaults:
    """Defaults match the documented crawl behavior."""

    def test_crawler_defaults(self):
        config = CrawlerConfig()
        assert config.retry_attempts == 3
        assert config.retry_delay_ms == 1000
        assert config.request_timeout_ms == 60000
        assert config.scroll_steps == 3
        assert config.handle_lazy_load is True
        assert config.user_agents == USER_AGENTS
        assert len(USER_AGENTS) == 8

    def test_settings_defaults(self):
        settings = Settings()
        assert settings.llm.provider == 'openai'
        assert settings.store.database_url is None
        assert settings.store.cache_ttl_seconds == 3600


class TestFromEnv:
    """Environment variables override defaults."""

    def test_reads_known_variables(self):
        settings = Settings.from_env({
            'LLM_PROVIDER': 'ollama',
            'OLLAMA_MODEL': 'mistral',
            'ROTATE_USER_AGENTS': 'true',
            'BROWSER_TYPE': 'firefox',
            'RETRY_ATTEMPTS': '5',
            'RETRY_DELAY_MS': '250',
            'HANDLE_LAZY_LOAD': 'false',
            'DATABASE_URL': 'sqlite:///brands.db',
            'CACHE_TTL_SECONDS': '60',
        })
        assert settings.llm.provider == 'ollama'
        assert settings.llm.ollama_model == 'mistral'
        assert settings.crawler.rotate_user_agents is True
        assert settings.crawler.browser == 'firefox'
        assert settings.crawler.retry_attempts == 5
        assert settings.crawler.retry_delay_ms == 250
        assert settings.crawler.handle_lazy_load is False
        assert settings.store.database_url == 'sqlite:///brands.db'
        assert settings.store.cache_ttl_seconds == 60

    def test_bad_integer_falls_back(self):
        settings = Settings.from_env({'SCROLL_STEPS': 'lots'})
        assert settings.crawler.scroll_steps == 3

    def test_unknown_provider_rejected(self):
        with pytest.raises(ConfigError):
            Settings.from_env({'LLM_PROVIDER': 'carrier-pigeon'})

    def test_unknown_browser_rejected(self):
        with pytest.raises(ConfigError):
            Settings.from_env({'BROWSER_TYPE': 'lynx'})


class TestLoadSettings:
    """File settings layer over the environment."""

    def test_yaml_file(self, tmp_path):
        path = tmp_path / 'brandsnap.yaml'
        path.write_text(
            "crawler:\n"
            "  retry_attempts: 2\n"
            "  viewport: [1280, 720]\n"
            "llm:\n"
            "  provider: anthropic\n",
            encoding='utf-8',
        )
        settings = load_settings(path, environ={})
        assert settings.crawler.retry_attempts == 2
        assert settings.crawler.viewport == (1280, 720)
        assert settings.llm.provider == 'anthropic'

    def test_json_file(self, tmp_path):
        path = tmp_path / 'brandsnap.json'
        path.write_text('{"store": {"max_normalized_tokens": 10}}', encoding='utf-8')
        settings = load_settings(path, environ={})
        assert settings.store.max_normalized_tokens == 10

    def test_empty_file_gives_env_settings(self, tmp_path):
        path = tmp_path / 'empty.yaml'
        path.write_text('', encoding='utf-8')
        settings = load_settings(path, environ={'RETRY_ATTEMPTS': '4'})
        assert settings.crawler.retry_attempts == 4

    def test_unknown_key_rejected(self, tmp_path):
        path = tmp_path / 'bad.yaml'
        path.write_text("crawler:\n  warp_speed: 9\n", encoding='utf-8')
        with pytest.raises(ConfigError, match='warp_speed'):
            load_settings(path, environ={})

    def test_unknown_section_rejected(self, tmp_path):
        path = tmp_path / 'bad.yaml'
        path.write_text("database:\n  url: x\n", encoding='utf-8')
        with pytest.raises(ConfigError):
            load_settings(path, environ={})

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError):
            load_settings(tmp_path / 'nope.yaml', environ={})

    def test_zero_attempts_rejected(self, tmp_path):
        path = tmp_path / 'bad.yaml'
        path.write_text("crawler:\n  retry_attempts: 0\n", encoding='utf-8')
        with pytest.raises(ConfigError):
            load_settings(path, environ={})
