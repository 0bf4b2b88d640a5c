"""Tests for quote calculation against stored addresses and rates."""

from datetime import date
from decimal import Decimal

import pytest

from lawnly.core.config import settings
from lawnly.core.enums import RoleName
from lawnly.core.exceptions import ForbiddenException, NotFoundException, ValidationException
from lawnly.models import AddressStatus
from lawnly.principal import Principal
from lawnly.services.pricing_service import PricingService

NEXT_MONDAY = date(2026, 3, 9)
NEXT_SATURDAY = date(2026, 3, 7)


@pytest.mark.unit
class TestCalculateQuote:
    def test_verified_address_quote(self, db, address, customer_principal) -> None:
        result = PricingService(db).calculate_quote(
            customer_principal, address_id=address.id, service_date=NEXT_MONDAY
        )
        assert result.breakdown.total == Decimal("40.00")
        assert result.is_verified
        assert not result.is_preliminary

    def test_unverified_address_gives_preliminary_quote(
        self, db, make_address, customer_principal
    ) -> None:
        pending = make_address(status=AddressStatus.PENDING.value, square_meters=Decimal("200"))
        result = PricingService(db).calculate_quote(
            customer_principal,
            address_id=pending.id,
            service_date=NEXT_SATURDAY,
            clippings_removal=True,
        )
        # (25 + 30) * 1.25 + 15
        assert result.breakdown.total == Decimal("83.75")
        assert result.to_dict()["is_preliminary"] is True

    def test_gst_included_when_configured(
        self, db, address, customer_principal, monkeypatch
    ) -> None:
        monkeypatch.setattr(settings, "gst_rate", Decimal("0.10"))
        result = PricingService(db).calculate_quote(
            customer_principal, address_id=address.id, service_date=NEXT_MONDAY
        )
        assert result.breakdown.total == Decimal("44.00")

    def test_other_customers_address_is_hidden(self, db, address) -> None:
        stranger = Principal(user_id="01HZZZZZZZZZZZZZZZZZZZZZZZ", role=RoleName.CUSTOMER)
        with pytest.raises(NotFoundException):
            PricingService(db).calculate_quote(
                stranger, address_id=address.id, service_date=NEXT_MONDAY
            )

    def test_admin_can_quote_any_address(self, db, address, admin_principal) -> None:
        result = PricingService(db).calculate_quote(
            admin_principal, address_id=address.id, service_date=NEXT_MONDAY
        )
        assert result.address_id == address.id

    def test_rejected_address(self, db, make_address, customer_principal) -> None:
        rejected = make_address(status=AddressStatus.REJECTED.value)
        with pytest.raises(ValidationException) as exc:
            PricingService(db).calculate_quote(
                customer_principal, address_id=rejected.id, service_date=NEXT_MONDAY
            )
        assert exc.value.code == "ADDRESS_REJECTED"

    def test_address_without_area(self, db, make_address, customer_principal) -> None:
        unmeasured = make_address(status=AddressStatus.PENDING.value, square_meters=None)
        with pytest.raises(ValidationException) as exc:
            PricingService(db).calculate_quote(
                customer_principal, address_id=unmeasured.id, service_date=NEXT_MONDAY
            )
        assert exc.value.code == "AREA_REQUIRED"


@pytest.mark.unit
class TestUpdateSetting:
    def test_admin_update_changes_future_quotes(
        self, db, address, admin_principal, customer_principal
    ) -> None:
        service = PricingService(db)
        rates = service.update_setting(admin_principal, "fixed_base_price", "30", "Winter rate")
        assert rates["fixed_base_price"] == Decimal("30")

        result = service.calculate_quote(
            customer_principal, address_id=address.id, service_date=NEXT_MONDAY
        )
        assert result.breakdown.total == Decimal("45.00")

    def test_update_is_idempotent_upsert(self, db, admin_principal) -> None:
        service = PricingService(db)
        service.update_setting(admin_principal, "sunday_surcharge", Decimal("1.6"))
        rates = service.update_setting(admin_principal, "sunday_surcharge", Decimal("1.7"))
        assert rates["sunday_surcharge"] == Decimal("1.7")

    def test_non_admin_rejected(self, db, customer_principal) -> None:
        with pytest.raises(ForbiddenException):
            PricingService(db).update_setting(customer_principal, "fixed_base_price", 10)

    @pytest.mark.parametrize(
        "key, value, code",
        [
            ("loyalty_discount", 5, "UNKNOWN_SETTING"),
            ("fixed_base_price", "lots", "INVALID_SETTING_VALUE"),
            ("fixed_base_price", -1, "INVALID_SETTING_VALUE"),
        ],
    )
    def test_invalid_updates(self, db, admin_principal, key, value, code) -> None:
        with pytest.raises(ValidationException) as exc:
            PricingService(db).update_setting(admin_principal, key, value)
        assert exc.value.code == code
