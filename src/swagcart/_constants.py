"""Internal constants shared across the library."""

#: Storage key the cart snapshot lives under (shared by every tab).
STORAGE_KEY = "swag_cart_v1"

#: Current persisted envelope version.  Version 1 is the legacy bare array.
FORMAT_VERSION = 2
LEGACY_FORMAT_VERSION = 1

#: Hard practical ceiling on any single line quantity.
HARD_MAX_QUANTITY = 10_000

#: Trailing-edge debounce window for snapshot writes, in seconds.
SAVE_DEBOUNCE_SECONDS = 0.12

DEFAULT_CURRENCY = "CLP"

MQTT_TOPIC_PREFIX = "swagcart/storage"
MQTT_DEFAULT_PORT = 1883
