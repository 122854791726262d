"""Tests for envdock.redact: secret redaction in text and log records."""

import logging

import envdock.redact as redact_module
from envdock.errors import CommandError
from envdock.models import AwsCredentials
from envdock.redact import SecretRedactingFilter, redact_secrets, register_secret


def _reset_cache():
    """Reset the module-level pattern cache so env changes take effect."""
    redact_module._patterns = None


# ── redact_secrets ──────────────────────────────────────────────


def test_redact_secrets_replaces_value(monkeypatch):
    monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", "wJalrXUtnFEMIK7MDENG")
    _reset_cache()

    text = "terraform apply with key wJalrXUtnFEMIK7MDENG failed"
    assert redact_secrets(text) == "terraform apply with key *** failed"

    _reset_cache()


def test_redact_secrets_short_values_ignored(monkeypatch):
    monkeypatch.setenv("SCW_SECRET_KEY", "short")
    _reset_cache()

    text = "Key is short and should not be redacted"
    assert redact_secrets(text) == text

    _reset_cache()


def test_redact_secrets_no_env_vars(monkeypatch):
    for var in redact_module._SECRET_ENV_VARS:
        monkeypatch.delenv(var, raising=False)
    _reset_cache()

    text = "Nothing secret here"
    assert redact_secrets(text) == text

    _reset_cache()


def test_redact_secrets_multiple_values(monkeypatch):
    monkeypatch.setenv("AWS_ACCESS_KEY_ID", "AKIAAAAAAAAAAAAA")
    monkeypatch.setenv("DIGITAL_OCEAN_TOKEN", "dop_v1_BBBB_long_enough")
    _reset_cache()

    text = "AWS=AKIAAAAAAAAAAAAA DO=dop_v1_BBBB_long_enough done"
    result = redact_secrets(text)
    assert "AKIAAAAAAAAAAAAA" not in result
    assert "dop_v1_BBBB_long_enough" not in result
    assert result == "AWS=*** DO=*** done"

    _reset_cache()


def test_registered_secret_is_redacted():
    register_secret("db-password-registered-1")
    assert redact_secrets("login with db-password-registered-1") == "login with ***"


def test_credentials_register_their_secrets():
    AwsCredentials("AKIAREGISTEREDKEY1", "registered-secret-key-value", "eu-west-3")
    assert redact_secrets("key=registered-secret-key-value") == "key=***"


def test_command_error_message_is_redacted():
    register_secret("super-secret-token-42")
    error = CommandError.from_result(["helm", "upgrade"], 1, "", "auth failed for super-secret-token-42")
    assert "super-secret-token-42" not in error.message_safe
    assert "super-secret-token-42" not in (error.full_details or "")


# ── SecretRedactingFilter ───────────────────────────────────────


def test_secret_redacting_filter(monkeypatch):
    monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", "FilterTestSecret99")
    _reset_cache()

    filt = SecretRedactingFilter()
    record = logging.LogRecord(
        name="test",
        level=logging.INFO,
        pathname="",
        lineno=0,
        msg="Using key FilterTestSecret99",
        args=None,
        exc_info=None,
    )
    filt.filter(record)
    assert record.msg == "Using key ***"

    _reset_cache()


def test_secret_redacting_filter_with_args(monkeypatch):
    monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", "ArgsTestSecret88")
    _reset_cache()

    filt = SecretRedactingFilter()
    record = logging.LogRecord(
        name="test",
        level=logging.INFO,
        pathname="",
        lineno=0,
        msg="Key: %s",
        args=("ArgsTestSecret88",),
        exc_info=None,
    )
    filt.filter(record)
    assert record.args == ("***",)

    _reset_cache()
