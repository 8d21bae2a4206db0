"""Tests for the configuration layer."""

import pytest
import yaml

from floraa.core.exceptions import ConfigurationError
from floraa.core.message_bus import ConfigChanged, get_message_bus
from floraa.core.settings import ConfigManager, deep_merge

from conftest import make_settings


class TestDeepMerge:
    """Test nested dictionary merging."""

    def test_merges_nested_dicts(self):
        base = {"app": {"name": "a", "url": "http://x"}, "flag": True}
        merged = deep_merge(base, {"app": {"name": "b"}})

        assert merged == {"app": {"name": "b", "url": "http://x"}, "flag": True}
        assert base["app"]["name"] == "a"

    def test_non_dict_values_replace(self):
        merged = deep_merge({"origins": ["a", "b"]}, {"origins": ["c"]})
        assert merged["origins"] == ["c"]


class TestConfigManager:
    """Test runtime configuration updates."""

    def test_defaults(self, config_manager):
        config = config_manager.get_config()
        assert config.app.name == "Floraa.dev"
        assert config.ai.default_model == "claude-3-5-sonnet"
        assert config.app.maintenance_mode is False

    def test_update_keeps_untouched_fields(self, config_manager):
        config_manager.update_config({"app": {"name": "Acme"}})

        config = config_manager.get_config()
        assert config.app.name == "Acme"
        assert config.app.url == "http://localhost:5173"

    def test_unknown_key_rejected(self, config_manager):
        with pytest.raises(ConfigurationError, match="app.colour"):
            config_manager.update_config({"app": {"colour": "red"}})

    def test_invalid_value_leaves_config_unchanged(self, config_manager):
        with pytest.raises(ConfigurationError):
            config_manager.update_config({"app": {"url": "not-a-url"}})

        assert config_manager.get_config().app.url == "http://localhost:5173"

    def test_listeners_notified_and_unsubscribed(self, config_manager):
        seen = []
        unsubscribe = config_manager.subscribe(lambda config: seen.append(config.app.name))

        config_manager.update_config({"app": {"name": "One"}})
        unsubscribe()
        config_manager.update_config({"app": {"name": "Two"}})

        assert seen == ["One"]

    def test_failing_listener_does_not_block_update(self, config_manager):
        def broken(config):
            raise RuntimeError("boom")

        config_manager.subscribe(broken)
        config_manager.update_config({"app": {"name": "Still works"}})
        assert config_manager.get_config().app.name == "Still works"

    def test_update_publishes_config_changed(self, config_manager):
        events = []
        get_message_bus().subscribe(ConfigChanged, events.append)

        config_manager.update_config({"features": {"api_access": False}, "app": {"name": "X"}})

        assert len(events) == 1
        assert events[0].sections == ["app", "features"]

    def test_maintenance_mode(self, config_manager):
        config_manager.set_maintenance_mode(True, "Back soon")
        assert config_manager.is_maintenance_mode()
        assert config_manager.get_config().app.maintenance_message == "Back soon"

        config_manager.set_maintenance_mode(False)
        assert not config_manager.is_maintenance_mode()
        assert config_manager.get_config().app.maintenance_message == "Back soon"

    def test_feature_flags(self, config_manager):
        assert config_manager.is_feature_enabled("team_collaboration") is False
        config_manager.set_feature("team_collaboration", True)
        assert config_manager.is_feature_enabled("team_collaboration") is True

    def test_unknown_feature_flag(self, config_manager):
        with pytest.raises(ConfigurationError):
            config_manager.set_feature("time_travel", True)
        with pytest.raises(ConfigurationError):
            config_manager.is_feature_enabled("time_travel")

    def test_provider_lookup(self, config_manager):
        openai = config_manager.get_ai_provider("openai")
        assert "gpt-4" in openai.models
        assert openai.enabled is False

        with pytest.raises(ConfigurationError):
            config_manager.get_ai_provider("mistral")
        with pytest.raises(ConfigurationError):
            config_manager.get_payment_provider("bitcoin")

    def test_public_config_masks_secrets(self):
        manager = ConfigManager(make_settings(ai={"providers": {"openai": {"api_key": "sk-real-key"}}}))

        public = manager.public_config()
        assert public["ai"]["providers"]["openai"]["api_key"] == "**********"
        assert "sk-real-key" not in str(public)
        assert "default-secret" not in str(public)

    def test_provider_enabled_follows_key(self):
        manager = ConfigManager(make_settings(ai={"providers": {"openai": {"api_key": "sk-real-key"}}}))
        assert manager.get_ai_provider("openai").enabled is True

    def test_key_set_at_runtime_enables_provider(self, config_manager):
        config_manager.update_config({"ai": {"providers": {"openai": {"api_key": "sk-real-key"}}}})

        assert config_manager.get_ai_provider("openai").get_api_key() == "sk-real-key"
        assert config_manager.get_ai_provider("openai").enabled is True
        assert config_manager.get_ai_provider("anthropic").enabled is False

        config_manager.update_config({"payments": {"stripe": {"secret_key": "sk_live_123"}}})
        assert config_manager.get_payment_provider("stripe").enabled is True

    def test_explicit_enabled_survives_updates(self, config_manager):
        config_manager.update_config({"ai": {"providers": {"openai": {"enabled": False}}}})
        config_manager.update_config({"ai": {"providers": {"openai": {"api_key": "sk-real-key"}}}})
        config_manager.update_config({"app": {"name": "Renamed"}})

        assert config_manager.get_ai_provider("openai").enabled is False


class TestOverridesFile:
    """Test persistence of admin overrides."""

    def test_updates_saved_and_reloaded(self, tmp_path):
        overrides = tmp_path / "overrides.yaml"
        manager = ConfigManager(make_settings(), overrides_file=overrides)

        manager.update_config({"app": {"name": "Persisted"}})

        assert yaml.safe_load(overrides.read_text()) == {"app": {"name": "Persisted"}}
        reloaded = ConfigManager(make_settings(), overrides_file=overrides)
        assert reloaded.get_config().app.name == "Persisted"

    def test_invalid_overrides_file(self, tmp_path):
        overrides = tmp_path / "overrides.yaml"
        overrides.write_text("app:\n  colour: red\n")

        with pytest.raises(ConfigurationError, match="Invalid overrides file"):
            ConfigManager(make_settings(), overrides_file=overrides)

    def test_no_file_written_without_path(self, config_manager, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        config_manager.update_config({"app": {"name": "Memory only"}})
        assert list(tmp_path.iterdir()) == []
