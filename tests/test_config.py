# tests/test_config.py

from invite_service.core.config import Settings


def test_origins_list_accepts_comma_separated():
    s = Settings(allowed_origins="http://localhost:3000, https://a.example ,")
    assert s.origins_list() == ["http://localhost:3000", "https://a.example"]


def test_origins_list_accepts_json_list():
    s = Settings(allowed_origins='["http://localhost:3000","https://a.example"]')
    assert s.origins_list() == ["http://localhost:3000", "https://a.example"]


def test_origins_list_empty():
    assert Settings(allowed_origins="").origins_list() == []


def test_database_url_falls_back_to_data_dir():
    s = Settings(database_url=None, data_dir="/var/data/invites")
    assert s.resolved_database_url == "sqlite:////var/data/invites/tokens.db"


def test_database_url_wins_over_data_dir():
    s = Settings(database_url="postgresql://u:p@db/invites", data_dir="/ignored")
    assert s.resolved_database_url == "postgresql://u:p@db/invites"


def test_unknown_environment_keys_are_ignored(monkeypatch):
    monkeypatch.setenv("ENVIRONMENT", "prod")
    monkeypatch.setenv("DEBUG", "false")
    s = Settings()
    assert not hasattr(s, "environment")
    assert not hasattr(s, "debug")
