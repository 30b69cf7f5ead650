"""
Tests for YAML configuration loading.
"""

import pytest

from inkslot.config import AppConfig


def test_defaults():
    config = AppConfig()

    assert config.timezone == "Europe/Berlin"
    assert config.scheduling.slot_duration_minutes == 60
    assert config.scheduling.detect_overlaps is False
    assert config.payments.deposit_amount == 5000
    assert config.payments.currency == "usd"
    assert config.payments.proceed_without_payment_on_gateway_failure is True


def test_load_from_yaml(tmp_path):
    config_path = tmp_path / "config.yaml"
    config_path.write_text(
        "store:\n"
        "  url: https://demo.supabase.co/\n"
        "  api_key: anon-key\n"
        "payments:\n"
        "  secret_key: sk_test_key\n"
        "  currency: EUR\n"
        "  deposit_amount: 7500\n"
        "  proceed_without_payment_on_gateway_failure: false\n"
        "scheduling:\n"
        "  slot_duration_minutes: 30\n"
        "  detect_overlaps: true\n"
        "timezone: America/New_York\n"
        "log_level: debug\n",
        encoding="utf-8",
    )

    config = AppConfig.load_from_yaml(config_path)

    assert config.store.url == "https://demo.supabase.co"
    assert config.payments.currency == "eur"
    assert config.payments.deposit_amount == 7500
    assert config.payments.proceed_without_payment_on_gateway_failure is False
    assert config.scheduling.slot_duration_minutes == 30
    assert config.scheduling.detect_overlaps is True
    assert config.timezone == "America/New_York"
    assert config.log_level == "DEBUG"


def test_empty_file_gives_defaults(tmp_path):
    config_path = tmp_path / "config.yaml"
    config_path.write_text("", encoding="utf-8")

    assert AppConfig.load_from_yaml(config_path) == AppConfig()


def test_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError, match="config.example.yaml"):
        AppConfig.load_from_yaml(tmp_path / "missing.yaml")


def test_non_mapping_root(tmp_path):
    config_path = tmp_path / "config.yaml"
    config_path.write_text("- just\n- a list\n", encoding="utf-8")

    with pytest.raises(ValueError, match="mapping"):
        AppConfig.load_from_yaml(config_path)


@pytest.mark.parametrize(
    "data,message",
    [
        ({"timezone": "Mars/Olympus"}, "Unknown timezone"),
        ({"log_level": "chatty"}, "Unknown log level"),
        ({"scheduling": {"slot_duration_minutes": 0}}, "slot_duration_minutes"),
        ({"payments": {"deposit_amount": -5}}, "deposit_amount"),
        ({"payments": {"currency": "euro"}}, "three-letter"),
        ({"store": {"url": "demo.supabase.co"}}, "http"),
    ],
)
def test_invalid_values(data, message):
    with pytest.raises(ValueError, match=message):
        AppConfig(**data)
