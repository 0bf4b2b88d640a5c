# lawnly/repositories/pricing_setting_repository.py
from decimal import Decimal
from typing import Dict

from sqlalchemy.orm import Session

from ..models.pricing_setting import DEFAULT_PRICING_SETTINGS, PricingSetting
from .base_repository import BaseRepository


class PricingSettingRepository(BaseRepository[PricingSetting]):
    def __init__(self, db: Session):
        super().__init__(db, PricingSetting)

    def get_rates(self) -> Dict[str, Decimal]:
        """Current rate table, falling back to defaults for keys with no row."""
        rows = self._run("loading pricing settings", lambda: self._query().all())
        rates = dict(DEFAULT_PRICING_SETTINGS)
        for row in rows:
            rates[row.key] = Decimal(str(row.value))
        return rates

    def upsert(self, key: str, value: Decimal, description: str | None = None) -> PricingSetting:
        existing = self.find_one_by(key=key)
        if existing:
            existing.value = value
            if description is not None:
                existing.description = description
            self.flush()
            return existing
        return self.create(key=key, value=value, description=description)
