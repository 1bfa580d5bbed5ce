"""
Tests for environment-based configuration
"""

from studio_ledger.config import StudioConfig, reload_config, get_config


class TestStudioConfig:

    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("STUDIO_DATABASE_URL", raising=False)
        monkeypatch.delenv("STUDIO_API_PORT", raising=False)

        cfg = StudioConfig(_env_file=None)
        assert cfg.database_url == "sqlite:///studio_ledger.db"
        assert cfg.api_port == 8090
        assert cfg.default_page_size == 20
        assert cfg.max_page_size == 100
        assert cfg.balance_update_retries == 3
        assert cfg.enable_audit_logging is True

    def test_env_prefix(self, monkeypatch):
        monkeypatch.setenv("STUDIO_DATABASE_URL", "memory://")
        monkeypatch.setenv("STUDIO_MAX_PAGE_SIZE", "25")
        monkeypatch.setenv("studio_log_format", "text")

        cfg = StudioConfig(_env_file=None)
        assert cfg.database_url == "memory://"
        assert cfg.max_page_size == 25
        assert cfg.log_format == "text"

    def test_reload_replaces_global(self, monkeypatch):
        monkeypatch.setenv("STUDIO_BALANCE_UPDATE_RETRIES", "7")
        try:
            reloaded = reload_config()
            assert reloaded.balance_update_retries == 7
            assert get_config() is reloaded
        finally:
            monkeypatch.delenv("STUDIO_BALANCE_UPDATE_RETRIES")
            reload_config()


class TestSystemUsesConfig:

    def test_page_size_and_retries_flow_into_components(self, storage):
        from studio_ledger.api.dependencies import StudioSystem

        system = StudioSystem(storage=storage, config=StudioConfig(
            database_url="memory://", max_page_size=5, balance_update_retries=1,
            enable_audit_logging=False
        ))
        assert system.ledger.max_page_size == 5
        assert system.balances.rollback_retries == 1
        assert system.audit_trail.enabled is False
