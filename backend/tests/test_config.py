"""
Unit Tests for configuration

Run with: pytest backend/tests/test_config.py -v
"""

from config import Settings

SECRET = "x" * 32


def make_settings(**overrides):
    values = dict(
        ENVIRONMENT="development",
        DATABASE_URL="postgresql+asyncpg://localhost/statements",
        JWT_SECRET_KEY=SECRET,
    )
    values.update(overrides)
    return Settings(_env_file=None, **values)


class TestSettings:

    def test_process_url(self):
        settings = make_settings(APP_BASE_URL="https://app.example.com/")

        assert settings.process_url == "https://app.example.com/api/vendor-import/process"

    def test_dev_origins_added_outside_production(self):
        settings = make_settings(CORS_ORIGINS="https://app.example.com")

        assert "http://localhost:3000" in settings.cors_origins_list
        assert "https://app.example.com" in settings.cors_origins_list

    def test_production_origins_only(self):
        settings = make_settings(ENVIRONMENT="production", CORS_ORIGINS="https://app.example.com")

        assert settings.cors_origins_list == ["https://app.example.com"]

    def test_valid_development_config(self):
        assert make_settings().validate_production_config() == []

    def test_short_secret(self):
        errors = make_settings(JWT_SECRET_KEY="short").validate_production_config()

        assert "JWT_SECRET_KEY should be at least 32 characters" in errors

    def test_production_requires_signing_key_and_public_url(self):
        errors = make_settings(
            ENVIRONMENT="production",
            CORS_ORIGINS="https://app.example.com",
            APP_BASE_URL="http://localhost:8000",
        ).validate_production_config()

        assert "QUEUE_CURRENT_SIGNING_KEY is required in production" in errors
        assert "APP_BASE_URL cannot point to localhost in production" in errors
