"""
Tests for best-effort shipment creation.
"""
from dataclasses import replace

import pytest

from conftest import FIXED_NOW, FailingCarrier, FakeCarrier
from tire_shipping.core.exceptions import CarrierConfigError
from tire_shipping.modules.shipping.carriers import CarrierFactory
from tire_shipping.modules.shipping.carriers.base import Package, ServiceType
from tire_shipping.services.shipment_service import (
    ShipmentCreationService,
    coerce_service_type,
)


def make_service(carrier, shipper_config):
    factory = CarrierFactory(carriers={"FAKE": carrier})
    return ShipmentCreationService(factory, shipper_config, clock=lambda: FIXED_NOW)


class TestCreateShipmentForOrder:

    @pytest.mark.asyncio
    async def test_success(self, shipper_config, recipient_address, packages, make_order):
        carrier = FakeCarrier()
        service = make_service(carrier, shipper_config)

        result = await service.create_shipment_for_order(
            make_order(), recipient_address, packages, "express", "fake",
        )

        assert result.tracking_number == "1234567890"
        assert result.provider_name == "FAKE"
        sent = carrier.shipment_requests[0]
        assert sent.reference == "TS-1001"
        assert sent.service_type == ServiceType.EXPRESS
        assert sent.recipient.country_code == "BE"
        assert sent.shipper.country_code == "BE"
        assert sent.shipper.contact_name == "Warehouse Team"
        assert sent.packages == packages

    @pytest.mark.asyncio
    async def test_carrier_failure_returns_none(self, shipper_config, recipient_address, packages, make_order):
        service = make_service(FailingCarrier(), shipper_config)

        result = await service.create_shipment_for_order(
            make_order(), recipient_address, packages, "STANDARD", "FAKE",
        )

        assert result is None

    @pytest.mark.asyncio
    async def test_unexpected_error_returns_none(self, shipper_config, recipient_address, packages, make_order):
        carrier = FakeCarrier()

        async def broken(request):
            raise RuntimeError("boom")

        carrier.create_shipment = broken
        service = make_service(carrier, shipper_config)

        result = await service.create_shipment_for_order(
            make_order(), recipient_address, packages, "STANDARD", "FAKE",
        )

        assert result is None

    @pytest.mark.asyncio
    async def test_unknown_provider_returns_none(self, shipper_config, recipient_address, packages, make_order):
        service = make_service(FakeCarrier(), shipper_config)

        result = await service.create_shipment_for_order(
            make_order(), recipient_address, packages, "STANDARD", "POSTNL",
        )

        assert result is None

    @pytest.mark.asyncio
    async def test_incomplete_shipper_config_returns_none(self, shipper_config, recipient_address, packages, make_order):
        carrier = FakeCarrier()
        service = make_service(carrier, replace(shipper_config, phone="", city=""))

        result = await service.create_shipment_for_order(
            make_order(), recipient_address, packages, "STANDARD", "FAKE",
        )

        assert result is None
        assert carrier.shipment_requests == []

    @pytest.mark.asyncio
    async def test_order_not_touched_on_failure(self, shipper_config, recipient_address, packages, make_order):
        order = make_order()
        service = make_service(FailingCarrier(), shipper_config)

        await service.create_shipment_for_order(order, recipient_address, packages, "STANDARD", "FAKE")

        assert order.tracking_number is None
        assert order.label_url is None

    @pytest.mark.asyncio
    async def test_skips_order_with_tracking_number(self, shipper_config, recipient_address, packages, make_order):
        carrier = FakeCarrier()
        service = make_service(carrier, shipper_config)

        result = await service.create_shipment_for_order(
            make_order(tracking_number="JD000"), recipient_address, packages, "STANDARD", "FAKE",
        )

        assert result is None
        assert carrier.shipment_requests == []

    @pytest.mark.asyncio
    async def test_force_ships_again(self, shipper_config, recipient_address, packages, make_order):
        carrier = FakeCarrier()
        service = make_service(carrier, shipper_config)

        result = await service.create_shipment_for_order(
            make_order(tracking_number="JD000"), recipient_address, packages, "STANDARD", "FAKE",
            force=True,
        )

        assert result is not None
        assert len(carrier.shipment_requests) == 1

    @pytest.mark.asyncio
    async def test_default_package_when_none_given(self, shipper_config, recipient_address, make_order):
        carrier = FakeCarrier()
        service = make_service(carrier, shipper_config)

        await service.create_shipment_for_order(make_order(), recipient_address, [], None, "FAKE")

        sent = carrier.shipment_requests[0]
        assert sent.packages == [Package(weight=0.5, length=10.0, width=10.0, height=10.0, description="TS-1001")]
        assert sent.service_type == ServiceType.STANDARD


class TestShipperAddress:

    def test_incomplete_config_raises(self, shipper_config):
        service = make_service(FakeCarrier(), replace(shipper_config, postal_code=""))

        with pytest.raises(CarrierConfigError) as exc:
            service.shipper_address()

        assert exc.value.details["missing"] == ["SHIPPER_POSTAL_CODE"]


class TestManualShipment:

    def test_generated_tracking_number(self, shipper_config, packages, make_order):
        service = make_service(FakeCarrier(), shipper_config)

        result = service.create_manual_shipment(make_order(), packages, "dhl")

        stamp = str(int(FIXED_NOW.timestamp() * 1000))[-8:]
        assert result.tracking_number == f"MANUAL-DHL-{stamp}"
        assert result.total_amount == 18.0  # 10 + 2 * 4
        assert result.currency == "USD"
        assert (result.estimated_delivery - FIXED_NOW).days == 5

    def test_given_tracking_number_kept(self, shipper_config, packages, make_order):
        service = make_service(FakeCarrier(), shipper_config)

        result = service.create_manual_shipment(make_order(), packages, "DHL", tracking_number="JD999")

        assert result.tracking_number == "JD999"
        assert result.provider_name == "DHL"


@pytest.mark.parametrize("value,expected", [
    (ServiceType.EXPRESS, ServiceType.EXPRESS),
    ("economy", ServiceType.ECONOMY),
    ("PRIORITY", ServiceType.PRIORITY),
    ("overnight", ServiceType.STANDARD),
    (None, ServiceType.STANDARD),
])
def test_coerce_service_type(value, expected):
    assert coerce_service_type(value) == expected
