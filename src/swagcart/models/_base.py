"""Base model shared by every cart and catalog record.

Every model inherits from :class:`CartBaseModel` which provides:

* ``alias_generator=to_camel`` so the camelCase storage/catalog keys map
  automatically to snake_case fields.
* A ``model_validator(mode="before")`` that drops ``None`` and blank-string
  values so the field default is used, and renames legacy keys declared
  in ``_KEY_ALIASES``.
"""

from __future__ import annotations

import math
from typing import Any, ClassVar

from pydantic import BaseModel, ConfigDict, model_validator
from pydantic.alias_generators import to_camel


class CartBaseModel(BaseModel):
    """Base for cart, product and envelope models.

    Handles:
    * camelCase ↔ snake_case via ``alias_generator=to_camel``
    * ``None`` / ``""`` / NaN values → dropped so the default is used
    * infinite floats rejected, since JSON cannot carry them
    * legacy key renames via ``_KEY_ALIASES``
    """

    _KEY_ALIASES: ClassVar[dict[str, str]] = {}
    """Legacy key → current key renames applied before validation."""

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
        alias_generator=to_camel,
        allow_inf_nan=False,
    )

    @staticmethod
    def _clean_dict(values: dict[str, Any], aliases: dict[str, str] | None = None) -> dict[str, Any]:
        """Drop empty values and apply key aliases on *values*."""
        working = dict(values)
        if aliases:
            for old_key, new_key in aliases.items():
                if old_key in working and new_key not in working:
                    working[new_key] = working.pop(old_key)

        cleaned: dict[str, Any] = {}
        for key, value in working.items():
            if value is None:
                continue
            if isinstance(value, str) and not value.strip():
                continue
            if isinstance(value, float) and math.isnan(value):
                continue
            cleaned[key] = value
        return cleaned

    @model_validator(mode="before")
    @classmethod
    def _clean_values(cls, values: Any) -> Any:
        if not isinstance(values, dict):
            return values
        aliases: dict[str, str] = getattr(cls, "_KEY_ALIASES", {})
        return CartBaseModel._clean_dict(values, aliases)

    def to_wire(self) -> dict[str, Any]:
        """Return the camelCase JSON-compatible dict used for storage."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
