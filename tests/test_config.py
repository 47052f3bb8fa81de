import pytest

from lawconnect import config


def test_startup_config_present():
    config.require_startup_config()


@pytest.mark.parametrize("name", ["GOOGLE_CLIENT_ID", "SUPABASE_URL", "SUPABASE_ANON_KEY"])
def test_missing_required_setting_is_fatal(monkeypatch, name):
    monkeypatch.setattr(config, name, None)

    with pytest.raises(config.ConfigurationError, match=name):
        config.require_startup_config()
