"""Engine configuration for swagcart."""

from __future__ import annotations

import dataclasses
import os
from typing import Any

from swagcart._constants import (
    DEFAULT_CURRENCY,
    HARD_MAX_QUANTITY,
    MQTT_DEFAULT_PORT,
    MQTT_TOPIC_PREFIX,
    SAVE_DEBOUNCE_SECONDS,
    STORAGE_KEY,
)
from swagcart.exceptions import CartConfigError


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


@dataclasses.dataclass(frozen=True)
class CartConfig:
    """Engine configuration.

    Parameters
    ----------
    storage_key : str
        Key the cart snapshot is stored under.  Every tab sharing a cart
        must use the same key.
    quantity_ceiling : int
        Hard practical ceiling on a single line quantity, applied on top
        of product stock and product maximum.
    save_debounce : float
        Trailing-edge debounce window for snapshot writes, in seconds.
    storage_dir : str or None
        Directory for file-backed storage.  ``None`` keeps the cart in a
        process-local storage area.
    catalog_url : str or None
        URL of a JSON product listing used by :class:`~swagcart.catalog.CatalogClient`.
    currency : str
        ISO currency code prices are expressed in.
    strict_price_tables : bool
        Reject catalog products whose price breaks are not monotonically
        non-increasing instead of only flagging them in the log.
    mqtt_enabled : bool
        Announce storage writes over MQTT so engines in other processes
        reconcile.  Requires ``storage_dir``: the other processes must read
        the same durable snapshot.
    mqtt_host : str
        MQTT broker host.
    mqtt_port : int
        MQTT broker port.
    mqtt_topic_prefix : str
        Topic prefix; the storage key is appended.
    mqtt_keepalive : int
        MQTT keepalive in seconds.
    """

    storage_key: str = STORAGE_KEY
    quantity_ceiling: int = HARD_MAX_QUANTITY
    save_debounce: float = SAVE_DEBOUNCE_SECONDS
    storage_dir: str | None = None
    catalog_url: str | None = None
    currency: str = DEFAULT_CURRENCY
    strict_price_tables: bool = False
    mqtt_enabled: bool = False
    mqtt_host: str = "localhost"
    mqtt_port: int = MQTT_DEFAULT_PORT
    mqtt_topic_prefix: str = MQTT_TOPIC_PREFIX
    mqtt_keepalive: int = 60

    def __post_init__(self) -> None:
        if not self.storage_key.strip():
            raise CartConfigError("storage_key must be non-empty")
        if self.quantity_ceiling < 1:
            raise CartConfigError(f"quantity_ceiling must be >= 1, got {self.quantity_ceiling}")
        if self.save_debounce < 0:
            raise CartConfigError(f"save_debounce must be >= 0, got {self.save_debounce}")
        if not 0 < self.mqtt_port < 65536:
            raise CartConfigError(f"mqtt_port out of range: {self.mqtt_port}")
        if self.mqtt_enabled and not self.storage_dir:
            raise CartConfigError("mqtt_enabled requires storage_dir shared by every process")

    @property
    def mqtt_topic(self) -> str:
        return f"{self.mqtt_topic_prefix.rstrip('/')}/{self.storage_key}"

    @classmethod
    def from_env(cls, **overrides: Any) -> CartConfig:
        """Create configuration from environment variables.

        Reads optional ``SWAGCART_*`` variables.  Explicit keyword
        arguments override environment values.

        Parameters
        ----------
        **overrides
            Explicit field values that take precedence over env vars.

        Returns
        -------
        CartConfig
            Populated configuration.

        Raises
        ------
        CartConfigError
            A numeric variable could not be parsed or a value is out of range.
        """
        env = os.environ

        _ENV_STR_MAP = {
            "SWAGCART_STORAGE_KEY": "storage_key",
            "SWAGCART_STORAGE_DIR": "storage_dir",
            "SWAGCART_CATALOG_URL": "catalog_url",
            "SWAGCART_CURRENCY": "currency",
            "SWAGCART_MQTT_HOST": "mqtt_host",
            "SWAGCART_MQTT_TOPIC_PREFIX": "mqtt_topic_prefix",
        }
        config_kwargs: dict[str, Any] = {}
        for env_key, field_name in _ENV_STR_MAP.items():
            val = env.get(env_key)
            if val is not None:
                config_kwargs[field_name] = val

        # Numeric fields are parsed separately so a bad value names its variable
        _ENV_NUM_MAP: dict[str, tuple[str, type]] = {
            "SWAGCART_QUANTITY_CEILING": ("quantity_ceiling", int),
            "SWAGCART_SAVE_DEBOUNCE": ("save_debounce", float),
            "SWAGCART_MQTT_PORT": ("mqtt_port", int),
            "SWAGCART_MQTT_KEEPALIVE": ("mqtt_keepalive", int),
        }
        for env_key, (field_name, caster) in _ENV_NUM_MAP.items():
            val = env.get(env_key)
            if val is None or field_name in overrides:
                continue
            try:
                config_kwargs[field_name] = caster(val)
            except ValueError as exc:
                raise CartConfigError(f"{env_key} is not a valid {caster.__name__}: {val!r}") from exc

        if "strict_price_tables" not in overrides:
            config_kwargs["strict_price_tables"] = _env_bool(env.get("SWAGCART_STRICT_PRICE_TABLES"), False)

        if "mqtt_enabled" not in overrides:
            config_kwargs["mqtt_enabled"] = _env_bool(env.get("SWAGCART_MQTT_ENABLED"), False)

        config_kwargs.update(overrides)

        return cls(**config_kwargs)
