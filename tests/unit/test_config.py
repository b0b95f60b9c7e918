import warnings

import pytest

from mcprouter.config.settings import (
    CHALLENGE_TTL_SECONDS,
    RESEND_COOLDOWN_SECONDS,
    RP_NAME,
    AuthConfig,
    Settings,
    get_settings,
)
from mcprouter.exceptions import ConfigError


@pytest.fixture(autouse=True)
def _clear_settings_cache():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.mark.unit
class TestSettings:
    def test_default_settings(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("SECRET_KEY", "test-secret")
        settings = Settings(_env_file=None)
        assert settings.debug is False
        assert settings.log_level == "INFO"
        assert "postgresql" in settings.database_url
        assert settings.kv_backend == "memory"
        assert settings.webauthn_rp_id == "localhost"
        assert settings.webauthn_origin == "http://localhost:3000"

    def test_settings_from_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("DATABASE_URL", "postgresql+asyncpg://user:pass@db:5432/mydb")
        monkeypatch.setenv("WEBAUTHN_RP_ID", "mcprouter.example.com")
        monkeypatch.setenv("WEBAUTHN_ORIGIN", "https://mcprouter.example.com")
        monkeypatch.setenv("KV_BACKEND", "redis")
        monkeypatch.setenv("DEBUG", "true")
        settings = Settings(_env_file=None)
        assert settings.database_url.endswith("@db:5432/mydb")
        assert settings.webauthn_rp_id == "mcprouter.example.com"
        assert settings.kv_backend == "redis"
        assert settings.debug is True

    def test_invalid_kv_backend(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("KV_BACKEND", "memcached")
        with pytest.raises(ValueError):
            Settings(_env_file=None)

    def test_auth_config_from_settings(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("WEBAUTHN_RP_ID", "example.com")
        monkeypatch.setenv("WEBAUTHN_ORIGIN", "https://example.com")
        monkeypatch.setenv("APP_URL", "https://example.com/")
        config = Settings(_env_file=None).auth_config()
        assert config.rp_id == "example.com"
        assert config.origin == "https://example.com"
        assert config.app_url == "https://example.com"
        assert config.rp_name == RP_NAME

    def test_insecure_secret_warns(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("SECRET_KEY", raising=False)
        with pytest.warns(UserWarning, match="SECRET_KEY"):
            get_settings()

    def test_redis_backend_requires_url(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("SECRET_KEY", "a-real-secret")
        monkeypatch.setenv("KV_BACKEND", "redis")
        monkeypatch.setenv("REDIS_URL", "")
        with pytest.raises(ConfigError, match="REDIS_URL"):
            get_settings()

    def test_custom_secret_does_not_warn(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("SECRET_KEY", "a-real-secret")
        with warnings.catch_warnings():
            warnings.simplefilter("error")
            get_settings()


@pytest.mark.unit
class TestAuthConfig:
    def test_defaults(self) -> None:
        config = AuthConfig()
        assert config.challenge_ttl_seconds == CHALLENGE_TTL_SECONDS == 300
        assert config.resend_cooldown_seconds == RESEND_COOLDOWN_SECONDS == 60
        assert config.token_expiry_minutes == 15
        assert config.token_backstop_seconds == 86400

    def test_frozen(self) -> None:
        config = AuthConfig()
        with pytest.raises(AttributeError):
            config.rp_id = "other"  # type: ignore[misc]
