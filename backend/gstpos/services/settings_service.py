# Overview: Per-store billing configuration backed by store_configs rows.

"""
Store settings

WHY: Invoice prefix, rounding, loyalty rates and cancellation policy differ per
store. They are resolved into an explicit StoreSettings object and handed to
the aggregator and numbering code, never read from module-level state.

Keys live in store_configs under the "billing." prefix; missing keys fall back
to the defaults in SETTINGS_CATALOG.
"""

from __future__ import annotations

from dataclasses import dataclass, fields

from ..extensions import db
from ..models import Store, StoreConfig


KEY_PREFIX = "billing."


class SettingsError(ValueError):
    pass


class SettingsValidationError(SettingsError):
    pass


class SettingsNotFoundError(SettingsError):
    pass


@dataclass(frozen=True)
class StoreSettings:
    bill_prefix: str = "INV"
    rounding_unit_cents: int = 100
    loyalty_point_value_cents: int = 100
    loyalty_earn_points_per_100: int = 0
    held_bill_ttl_hours: int = 24
    restock_on_cancel: bool = False
    reverse_loyalty_on_cancel: bool = False
    allow_excess_discount: bool = False


SETTINGS_CATALOG = {f.name: f for f in fields(StoreSettings)}

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


def _coerce(name: str, raw) -> object:
    field = SETTINGS_CATALOG[name]
    if field.type in ("bool", bool):
        if isinstance(raw, bool):
            return raw
        value = str(raw).strip().lower()
        if value in _TRUE:
            return True
        if value in _FALSE:
            return False
        raise SettingsValidationError(f"{KEY_PREFIX}{name} must be a boolean")

    if field.type in ("int", int):
        if isinstance(raw, bool):
            raise SettingsValidationError(f"{KEY_PREFIX}{name} must be an integer")
        try:
            value = int(str(raw).strip())
        except ValueError:
            raise SettingsValidationError(f"{KEY_PREFIX}{name} must be an integer")
        if name in ("rounding_unit_cents", "held_bill_ttl_hours", "loyalty_point_value_cents") and value <= 0:
            raise SettingsValidationError(f"{KEY_PREFIX}{name} must be > 0")
        if value < 0:
            raise SettingsValidationError(f"{KEY_PREFIX}{name} must be >= 0")
        return value

    value = str(raw).strip()
    if not value:
        raise SettingsValidationError(f"{KEY_PREFIX}{name} cannot be blank")
    if len(value) > 16:
        raise SettingsValidationError(f"{KEY_PREFIX}{name} exceeds max length 16")
    return value


def _short_name(key: str) -> str:
    name = key[len(KEY_PREFIX):] if key.startswith(KEY_PREFIX) else key
    if name not in SETTINGS_CATALOG:
        raise SettingsValidationError(f"Unknown setting: {key}")
    return name


def get_store_settings(store_id: int) -> StoreSettings:
    rows = (
        db.session.query(StoreConfig)
        .filter(StoreConfig.store_id == store_id, StoreConfig.key.like(f"{KEY_PREFIX}%"))
        .all()
    )
    values = {}
    for row in rows:
        name = row.key[len(KEY_PREFIX):]
        if name not in SETTINGS_CATALOG or row.value is None:
            continue
        values[name] = _coerce(name, row.value)
    return StoreSettings(**values)


def set_store_setting(store_id: int, key: str, value, *, commit: bool = True) -> StoreSettings:
    """Validate and persist one billing setting; returns the resolved settings."""
    name = _short_name(key)
    coerced = _coerce(name, value)

    store = db.session.get(Store, store_id)
    if not store:
        raise SettingsNotFoundError(f"Store {store_id} not found")

    full_key = f"{KEY_PREFIX}{name}"
    row = db.session.query(StoreConfig).filter_by(store_id=store_id, key=full_key).first()
    stored = str(coerced).lower() if isinstance(coerced, bool) else str(coerced)
    if row:
        row.value = stored
    else:
        db.session.add(StoreConfig(store_id=store_id, key=full_key, value=stored))

    if commit:
        db.session.commit()
    else:
        db.session.flush()
    return get_store_settings(store_id)
