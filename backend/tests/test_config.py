"""Settings validation tests."""

import pytest
from pydantic import ValidationError

from s2s_api.core.config import INSECURE_DEFAULT_JWT_SECRET, Settings


def test_defaults_match_documented_limits():
    settings = Settings(_env_file=None, JWT_SECRET="x")

    assert settings.API_KEY_PREFIX == "s2s_"
    assert settings.API_KEY_LENGTH == 32
    assert settings.API_KEY_MAX_PER_USER == 10
    assert settings.RATE_LIMIT_PUBLIC_PER_HOUR == 100
    assert settings.RATE_LIMIT_PUBLIC_PER_DAY == 500
    assert settings.RATE_LIMIT_AUTHENTICATED_PER_HOUR == 1000
    assert settings.RATE_LIMIT_AUTHENTICATED_PER_DAY == 10000
    assert settings.PASSWORD_MIN_LENGTH == 8
    assert settings.JWT_EXPIRE_MINUTES == 24 * 60


def test_default_secret_refused_in_production():
    with pytest.raises(ValidationError):
        Settings(_env_file=None, APP_ENV="production", JWT_SECRET=INSECURE_DEFAULT_JWT_SECRET)


def test_custom_secret_accepted_in_production():
    settings = Settings(_env_file=None, APP_ENV="production", JWT_SECRET="a-real-secret")
    assert settings.is_production
    assert not settings.uses_default_secret


def test_default_secret_flagged_outside_production():
    settings = Settings(_env_file=None, APP_ENV="development", JWT_SECRET=INSECURE_DEFAULT_JWT_SECRET)
    assert settings.uses_default_secret


def test_settings_are_immutable():
    settings = Settings(_env_file=None, JWT_SECRET="x")
    with pytest.raises(ValidationError):
        settings.API_KEY_PREFIX = "other_"


def test_cors_origins_accepts_comma_separated_string():
    settings = Settings(_env_file=None, JWT_SECRET="x", CORS_ORIGINS="http://a.test, http://b.test")
    assert settings.CORS_ORIGINS == ["http://a.test", "http://b.test"]


def test_key_prefix_must_fit_inside_lookup_prefix():
    with pytest.raises(ValidationError):
        Settings(_env_file=None, JWT_SECRET="x", API_KEY_PREFIX="much_too_long_prefix_")


def test_forwarded_allow_ips_defaults_to_no_trusted_proxies():
    assert Settings(_env_file=None, JWT_SECRET="x").FORWARDED_ALLOW_IPS == []

    settings = Settings(_env_file=None, JWT_SECRET="x", FORWARDED_ALLOW_IPS="10.0.0.1, 10.0.0.2")
    assert settings.FORWARDED_ALLOW_IPS == ["10.0.0.1", "10.0.0.2"]
