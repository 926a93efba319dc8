"""Startup configuration checks."""
import pytest

from app.config import Settings
from app.main import _assert_gateway_settings


def _settings(**overrides) -> Settings:
    values = {
        "RAZORPAY_KEY_ID": "rzp_test_key",
        "RAZORPAY_KEY_SECRET": "key-secret",
        "RAZORPAY_WEBHOOK_SECRET": "webhook-secret",
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


def test_complete_gateway_settings_pass():
    settings = _settings()

    _assert_gateway_settings(settings)
    gateway_settings = settings.gateway_settings()
    assert gateway_settings.key_id == "rzp_test_key"
    assert gateway_settings.timeout_seconds == 15


@pytest.mark.parametrize("missing", ["RAZORPAY_KEY_ID", "RAZORPAY_KEY_SECRET", "RAZORPAY_WEBHOOK_SECRET"])
def test_missing_gateway_setting_fails_fast(missing):
    settings = _settings(**{missing: None})

    with pytest.raises(RuntimeError) as excinfo:
        _assert_gateway_settings(settings)
    assert missing in str(excinfo.value)


def test_blank_secret_counts_as_missing():
    settings = _settings(RAZORPAY_WEBHOOK_SECRET="   ")

    assert settings.missing_gateway_settings() == ["RAZORPAY_WEBHOOK_SECRET"]
    with pytest.raises(RuntimeError):
        settings.gateway_settings()
