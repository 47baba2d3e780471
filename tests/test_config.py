"""Tests for configuration validation.

Settings are constructed directly (without the .env file) so the shared
settings instance used by the rest of the suite is never replaced.
"""

import pytest
from pydantic import ValidationError

from versenest.core.config import Settings

ACCESS = "a" * 32
REFRESH = "b" * 32


def make_settings(**overrides) -> Settings:
    return Settings(_env_file=None, **overrides)


class TestJwtSecretValidation:
    """Tests for JWT secret validation."""

    def test_valid_secrets_accepted(self):
        settings = make_settings(jwt_access_secret_key=ACCESS, jwt_refresh_secret_key=REFRESH)
        assert settings.effective_access_secret_key == ACCESS
        assert settings.effective_refresh_secret_key == REFRESH

    def test_short_secret_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            make_settings(jwt_access_secret_key="too-short")
        assert "32" in str(exc_info.value)

    def test_missing_secrets_generate_per_process_keys(self):
        settings = make_settings(jwt_access_secret_key="", jwt_refresh_secret_key="")
        assert len(settings.effective_access_secret_key) >= 32
        assert settings.effective_access_secret_key != settings.effective_refresh_secret_key
        warnings = settings.check_security_configuration()
        assert any("JWT_ACCESS_SECRET_KEY is not set" in w for w in warnings)

    def test_identical_secrets_warned(self):
        settings = make_settings(jwt_access_secret_key=ACCESS, jwt_refresh_secret_key=ACCESS)
        assert any("identical" in w for w in settings.check_security_configuration())


class TestOtherSettings:
    def test_algorithm_normalized_and_restricted(self):
        assert make_settings(jwt_algorithm="hs512").jwt_algorithm == "HS512"
        with pytest.raises(ValidationError):
            make_settings(jwt_algorithm="none")

    def test_defaults(self):
        settings = make_settings(
            jwt_access_secret_key=ACCESS,
            jwt_refresh_secret_key=REFRESH,
            password_hash_time_cost=3,
            password_hash_memory_cost=65536,
        )
        assert settings.access_token_expire_minutes == 15
        assert settings.refresh_token_expire_days == 7
        assert settings.max_login_attempts == 5
        assert settings.lockout_duration_minutes == 30
        assert settings.max_concurrent_sessions == 5
        assert settings.password_min_length == 8

    def test_weak_hash_cost_warned(self):
        settings = make_settings(
            jwt_access_secret_key=ACCESS,
            jwt_refresh_secret_key=REFRESH,
            password_hash_time_cost=1,
        )
        assert any("hashing cost" in w for w in settings.check_security_configuration())

    def test_sqlite_in_production_warned(self):
        settings = make_settings(
            environment="production",
            database_url="sqlite+aiosqlite:///./versenest.db",
            jwt_access_secret_key=ACCESS,
            jwt_refresh_secret_key=REFRESH,
        )
        assert settings.is_production
        assert any("SQLite" in w for w in settings.check_security_configuration())

    def test_cors_origins_list(self):
        settings = make_settings(cors_origins="https://a.example, https://b.example,")
        assert settings.cors_origins_list == ["https://a.example", "https://b.example"]

    def test_password_min_length_floor(self):
        with pytest.raises(ValidationError):
            make_settings(password_min_length=4)


class TestCookieOrigins:
    """Cookie exposure to insecure CORS origins."""

    def test_plain_http_origin_warned_in_production(self):
        settings = make_settings(
            environment="production",
            database_url="postgresql+asyncpg://u:p@db/versenest",
            jwt_access_secret_key=ACCESS,
            jwt_refresh_secret_key=REFRESH,
            cors_origins="https://app.versenest.example, http://legacy.versenest.example",
        )
        warnings = settings.check_security_configuration()
        assert any("http://legacy.versenest.example" in w for w in warnings)
        assert not any("https://app.versenest.example" in w for w in warnings)

    def test_wildcard_origin_warned_in_production(self):
        settings = make_settings(
            environment="production",
            database_url="postgresql+asyncpg://u:p@db/versenest",
            jwt_access_secret_key=ACCESS,
            jwt_refresh_secret_key=REFRESH,
            cors_origins="*",
        )
        assert any("insecure origins" in w for w in settings.check_security_configuration())

    def test_local_http_origin_fine_outside_production(self):
        settings = make_settings(
            jwt_access_secret_key=ACCESS,
            jwt_refresh_secret_key=REFRESH,
            cors_origins="http://localhost:3000",
        )
        assert not any("insecure origins" in w for w in settings.check_security_configuration())
