"""Tests for engine configuration."""

from __future__ import annotations

import pytest

from swagcart.config import CartConfig
from swagcart.exceptions import CartConfigError


def test_defaults() -> None:
    config = CartConfig()
    assert config.storage_key == "swag_cart_v1"
    assert config.quantity_ceiling == 10_000
    assert config.save_debounce == pytest.approx(0.12)
    assert config.storage_dir is None
    assert not config.mqtt_enabled
    assert config.mqtt_topic == "swagcart/storage/swag_cart_v1"


@pytest.mark.parametrize(
    "kwargs",
    [
        {"storage_key": "  "},
        {"quantity_ceiling": 0},
        {"save_debounce": -0.1},
        {"mqtt_port": 0},
        {"mqtt_port": 70000},
    ],
)
def test_invalid_values_rejected(kwargs: dict[str, object]) -> None:
    with pytest.raises(CartConfigError):
        CartConfig(**kwargs)  # type: ignore[arg-type]


def test_from_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("SWAGCART_STORAGE_KEY", "cart_x")
    monkeypatch.setenv("SWAGCART_QUANTITY_CEILING", "500")
    monkeypatch.setenv("SWAGCART_SAVE_DEBOUNCE", "0.5")
    monkeypatch.setenv("SWAGCART_STRICT_PRICE_TABLES", "yes")
    monkeypatch.setenv("SWAGCART_MQTT_ENABLED", "off")
    monkeypatch.setenv("SWAGCART_CURRENCY", "USD")

    config = CartConfig.from_env()

    assert config.storage_key == "cart_x"
    assert config.quantity_ceiling == 500
    assert config.save_debounce == 0.5
    assert config.strict_price_tables is True
    assert config.mqtt_enabled is False
    assert config.currency == "USD"


def test_from_env_overrides_win(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("SWAGCART_QUANTITY_CEILING", "not-a-number")
    monkeypatch.setenv("SWAGCART_STORAGE_DIR", "/from/env")
    config = CartConfig.from_env(quantity_ceiling=7, storage_dir="/explicit")
    assert config.quantity_ceiling == 7
    assert config.storage_dir == "/explicit"


def test_from_env_bad_number_names_variable(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("SWAGCART_MQTT_PORT", "eighty")
    with pytest.raises(CartConfigError, match="SWAGCART_MQTT_PORT"):
        CartConfig.from_env()


def test_mqtt_requires_shared_storage_dir() -> None:
    with pytest.raises(CartConfigError, match="storage_dir"):
        CartConfig(mqtt_enabled=True)
    assert CartConfig(mqtt_enabled=True, storage_dir="/srv/cart").mqtt_enabled


def test_from_env_mqtt_without_storage_dir_rejected(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("SWAGCART_STORAGE_DIR", raising=False)
    monkeypatch.setenv("SWAGCART_MQTT_ENABLED", "1")
    with pytest.raises(CartConfigError):
        CartConfig.from_env()
