import logging
from typing import Any

from config import (
    DEFAULT_CURRENCY,
    DEFAULT_HOURLY_RATE,
    MAX_HOURLY_RATE,
    SETTING_CURRENCY,
    SETTING_HOURLY_RATE,
    SETTING_TARGET_DAY,
    SETTING_TARGET_MONTH,
    SETTING_TARGET_WEEK,
)
from database import db
from errors import ValidationError
from events import AppEvent, event_bus
from models.entities import Targets
from services.stats import DEFAULT_TARGETS

logger = logging.getLogger(__name__)


class SettingsService:
    """Service for user settings: hourly rate, currency and hour targets.

    Values live in the settings table. Reads fall back to defaults when a
    value is missing or unusable.
    """

    async def get_setting(self, key: str, default: Any = None) -> Any:
        """Get a setting value from database."""
        return await db.get_setting(key, default)

    async def set_setting(self, key: str, value: Any) -> None:
        """Set a setting value in database."""
        await db.set_setting(key, value)
        event_bus.emit(AppEvent.SETTINGS_CHANGED, {key: value})

    async def _get_float(self, key: str, default: float) -> float:
        value = await db.get_setting(key, default)
        try:
            return float(value)
        except (TypeError, ValueError):
            logger.warning(f"Setting {key} has unusable value {value!r}, using {default}")
            return default

    async def get_hourly_rate(self) -> float:
        return await self._get_float(SETTING_HOURLY_RATE, DEFAULT_HOURLY_RATE)

    async def set_hourly_rate(self, rate: float) -> None:
        """Store the hourly rate.

        Raises:
            ValidationError: If rate is not a number in 0..MAX_HOURLY_RATE.
        """
        try:
            value = float(rate)
        except (TypeError, ValueError):
            raise ValidationError(f"Hourly rate must be a number, got {rate!r}")
        if not 0 <= value <= MAX_HOURLY_RATE:
            raise ValidationError(f"Hourly rate must be between 0 and {MAX_HOURLY_RATE:.0f}")
        await self.set_setting(SETTING_HOURLY_RATE, value)

    async def get_currency(self) -> str:
        return await db.get_setting(SETTING_CURRENCY, DEFAULT_CURRENCY) or DEFAULT_CURRENCY

    async def set_currency(self, currency: str) -> None:
        if not currency or not currency.strip():
            raise ValidationError("Currency is required")
        await self.set_setting(SETTING_CURRENCY, currency.strip().upper())

    async def get_targets(self) -> Targets:
        return Targets(
            per_day=await self._get_float(SETTING_TARGET_DAY, DEFAULT_TARGETS.per_day),
            per_week=await self._get_float(SETTING_TARGET_WEEK, DEFAULT_TARGETS.per_week),
            per_month=await self._get_float(SETTING_TARGET_MONTH, DEFAULT_TARGETS.per_month),
        )

    async def set_targets(self, targets: Targets) -> None:
        for name, value in (
            ("daily", targets.per_day),
            ("weekly", targets.per_week),
            ("monthly", targets.per_month),
        ):
            if value is None or value <= 0:
                raise ValidationError(f"The {name} target must be positive")
        await db.set_setting(SETTING_TARGET_DAY, targets.per_day)
        await db.set_setting(SETTING_TARGET_WEEK, targets.per_week)
        await db.set_setting(SETTING_TARGET_MONTH, targets.per_month)
        event_bus.emit(AppEvent.SETTINGS_CHANGED, {"targets": targets})
