import pytest
from pydantic import ValidationError

from gatehouse.config import DEFAULT_SECRET_KEY, Settings

STRONG_SECRET = "0123456789abcdef0123456789abcdef0123456789abcdef0123456789abcdef"


def test_missing_secret_key_fails_closed():
    with pytest.raises(ValidationError, match="SECRET_KEY"):
        Settings(secret_key="")


@pytest.mark.parametrize(
    "secret",
    [
        DEFAULT_SECRET_KEY,
        "changeme-in-production",
        "short-but-random-Q8z",
        "x" * 64,
        "please-changeme-please-changeme-please-changeme",
    ],
)
def test_weak_secret_key_fails_closed_in_production(secret):
    with pytest.raises(ValidationError, match="SECRET_KEY"):
        Settings(environment="production", secret_key=secret)


def test_strong_secret_key_passes_in_production():
    settings = Settings(environment="production", secret_key=STRONG_SECRET)

    assert settings.is_production
    assert settings.secret_key == STRONG_SECRET


def test_development_accepts_default_secret():
    assert Settings(environment="development", secret_key=DEFAULT_SECRET_KEY).secret_key == DEFAULT_SECRET_KEY


def test_only_hmac_algorithms_are_accepted():
    assert Settings(algorithm="hs384").algorithm == "HS384"
    with pytest.raises(ValidationError, match="ALGORITHM"):
        Settings(algorithm="none")
    with pytest.raises(ValidationError, match="ALGORITHM"):
        Settings(algorithm="RS256")


def test_unknown_environment_is_rejected():
    with pytest.raises(ValidationError, match="ENVIRONMENT"):
        Settings(environment="staging")


@pytest.mark.parametrize(
    "field, value",
    [("bcrypt_rounds", 3), ("otp_length", 3), ("otp_length", 11), ("lockout_threshold", 0)],
)
def test_numeric_bounds_are_enforced(field, value):
    with pytest.raises(ValidationError):
        Settings(**{field: value})


def test_durations_derive_from_settings():
    settings = Settings(
        access_token_expire_minutes=5,
        otp_expire_minutes=10,
        lockout_duration_minutes=15,
        session_expire_hours=24,
    )

    assert settings.access_token_ttl.total_seconds() == 300
    assert settings.otp_ttl.total_seconds() == 600
    assert settings.lockout_duration.total_seconds() == 900
    assert settings.session_ttl.total_seconds() == 86400
