"""
Tests for environment-based configuration
"""

from coop_mis.config import CoopConfig


class TestCoopConfig:
    """Test defaults and environment overrides"""

    def test_defaults(self):
        config = CoopConfig(_env_file=None)
        assert config.storage_backend == "sqlite"
        assert config.api_port == 8090
        assert config.auth_enabled is True
        assert config.currency == "PHP"
        assert config.default_minimum_balance == "500.00"
        assert config.llm_base_url == ""

    def test_environment_override(self, monkeypatch):
        monkeypatch.setenv("COOPMIS_STORAGE_BACKEND", "memory")
        monkeypatch.setenv("COOPMIS_AUTH_ENABLED", "false")
        monkeypatch.setenv("COOPMIS_MAX_FAILED_LOGINS", "3")
        monkeypatch.setenv("COOPMIS_LOG_FORMAT", "text")

        config = CoopConfig(_env_file=None)
        assert config.storage_backend == "memory"
        assert config.auth_enabled is False
        assert config.max_failed_logins == 3
        assert config.log_format == "text"

    def test_sqlite_path(self):
        assert CoopConfig(database_url="sqlite:///data/coop.db").sqlite_path == "data/coop.db"
        assert CoopConfig(database_url="sqlite:///").sqlite_path == ":memory:"
        assert CoopConfig(database_url="/tmp/coop.db").sqlite_path == "/tmp/coop.db"
