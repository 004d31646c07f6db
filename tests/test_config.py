import pytest

from app.core.config import Settings, get_settings


def test_get_settings():
    """Test settings configuration"""
    settings = get_settings()

    assert settings.DATABASE_URL.startswith("sqlite+aiosqlite")
    assert settings.SERVICE_NAME == "WhatsApp SaaS API"
    assert settings.VERSION == "1.0.0"
    assert settings.ACCESS_TOKEN_EXPIRE_DAYS == 7
    assert settings.SEND_INTERVAL_SECONDS == 0
    assert settings.ENABLE_SCHEDULER is False


def test_settings_singleton():
    """Test that get_settings returns the same instance"""
    assert get_settings() is get_settings()


def test_postgres_url_is_normalised_to_asyncpg():
    s = Settings(DATABASE_URL="postgres://u:p@db:5432/wa")
    assert s.DATABASE_URL == "postgresql+asyncpg://u:p@db:5432/wa"
    assert not s.is_sqlite
    opts = s.sqlalchemy_engine_options()
    assert opts["pool_size"] == s.SQLALCHEMY_POOL_SIZE


def test_sqlite_engine_options_have_no_pool_sizing():
    s = Settings(DATABASE_URL="sqlite+aiosqlite:///./x.db")
    assert s.is_sqlite
    assert "pool_size" not in s.sqlalchemy_engine_options()


def test_cors_origins_from_comma_list():
    s = Settings(CORS_ORIGINS="https://a.example, https://b.example")
    assert s.CORS_ORIGINS == ["https://a.example", "https://b.example"]
    assert s.cors_config["allow_credentials"] is True


def test_wildcard_cors_disables_credentials():
    assert Settings(CORS_ORIGINS="*").cors_config["allow_credentials"] is False


def test_relative_paths_resolve_against_project_root(tmp_path):
    s = Settings(SESSIONS_DIR="sessions", WEB_DIR=str(tmp_path / "web"))
    assert s.sessions_path == s.base_dir / "sessions"
    assert s.web_path == tmp_path / "web"


def test_gateway_url_trailing_slash_stripped():
    assert Settings(WA_GATEWAY_URL="http://gw:3300/").gateway_settings["base_url"] == "http://gw:3300"


def test_unsupported_algorithm_rejected():
    with pytest.raises(ValueError):
        Settings(ALGORITHM="RS256")


def test_production_requires_real_secret():
    s = Settings(ENVIRONMENT="production", JWT_SECRET="default_secret_key")
    with pytest.raises(ValueError):
        s.check_secret_key()
    Settings(ENVIRONMENT="production", JWT_SECRET="a-long-random-value").check_secret_key()


def test_dump_settings_masks_secrets():
    dumped = Settings(JWT_SECRET="supersecretvalue").dump_settings_safe()
    assert dumped["JWT_SECRET"] == "sup***lue"
