"""
Tests for the GLS client and carrier at the wire level (httpx.MockTransport).
"""
import base64
import json

import httpx
import pytest

from tire_shipping.core.exceptions import CarrierAPIError, CarrierConfigError
from tire_shipping.modules.shipping.carriers.base import (
    RateRequest,
    ServiceType,
    ShipmentRequest,
    TrackingStatus,
)
from tire_shipping.modules.shipping.carriers.gls import GLS_STATUS_MAP, GLSCarrier
from tire_shipping.services.gls_client import GLSClient, GLSCredentials

BASE_URL = "https://gls.test"


def make_carrier(handler, **overrides):
    credentials = GLSCredentials(
        api_key=overrides.get("api_key", "key"),
        api_secret=overrides.get("api_secret", "secret"),
        customer_id="C-42",
        api_url=BASE_URL,
        timeout=5.0,
        max_retries=overrides.get("max_retries", 2),
        backoff_seconds=0,
    )
    client = GLSClient(credentials, transport=httpx.MockTransport(handler))
    return GLSCarrier(credentials, client=client)


@pytest.fixture
def rate_request(shipper_address, recipient_address, packages):
    return RateRequest(
        shipper=shipper_address,
        recipient=recipient_address.with_country("BE"),
        packages=packages,
    )


@pytest.fixture
def shipment_request(shipper_address, recipient_address, packages):
    return ShipmentRequest(
        shipper=shipper_address,
        recipient=recipient_address.with_country("BE"),
        packages=packages,
        service_type=ServiceType.PRIORITY,
        reference="TS-1001",
    )


class TestRates:

    @pytest.mark.asyncio
    async def test_maps_rates_to_quotes(self, rate_request):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["auth"] = request.headers["Authorization"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"rates": [
                {
                    "serviceType": "EXPRESS",
                    "totalPrice": {"amount": "18.90", "currency": "EUR"},
                    "estimatedDeliveryDate": "2025-03-12",
                    "transitDays": 1,
                    "rateId": "gls-exp",
                },
                {"serviceType": "SOMETHING_ELSE", "totalPrice": {"amount": 9.5}},
            ]})

        carrier = make_carrier(handler)
        quotes = await carrier.get_rates(rate_request)
        await carrier.close()

        assert seen["url"] == f"{BASE_URL}/shipping/rates"
        assert seen["auth"] == "Basic " + base64.b64encode(b"key:secret").decode()
        assert seen["body"]["customerId"] == "C-42"
        assert seen["body"]["recipient"]["zipCode"] == "9000"
        assert seen["body"]["parcels"][0]["content"] == "Tire 205/55R16"
        assert "serviceType" not in seen["body"]

        assert quotes[0].service_type == ServiceType.EXPRESS
        assert quotes[0].total_amount == 18.9
        assert quotes[0].transit_days == 1
        assert quotes[0].rate_id == "gls-exp"
        assert quotes[0].delivery_date.day == 12
        assert quotes[1].service_type == ServiceType.STANDARD
        assert quotes[1].currency == "EUR"

    @pytest.mark.asyncio
    async def test_empty_rates_is_an_error(self, rate_request):
        carrier = make_carrier(lambda request: httpx.Response(200, json={"rates": []}))

        with pytest.raises(CarrierAPIError) as exc:
            await carrier.get_rates(rate_request)

        assert "no rates" in exc.value.message

    @pytest.mark.asyncio
    async def test_missing_credentials(self, rate_request):
        carrier = make_carrier(lambda request: httpx.Response(200), api_key="", api_secret="")

        with pytest.raises(CarrierConfigError) as exc:
            await carrier.get_rates(rate_request)

        assert exc.value.details["missing"] == ["GLS_API_KEY", "GLS_API_SECRET"]


class TestShipments:

    @pytest.mark.asyncio
    async def test_label_is_returned_as_data_url(self, shipment_request):
        seen = {}

        def handler(request):
            seen["url"] = str(request.url)
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={
                "trackingId": "GLS123456",
                "labelData": "JVBERi0x",
                "totalPrice": {"amount": 21.0, "currency": "EUR"},
            })

        carrier = make_carrier(handler)
        result = await carrier.create_shipment(shipment_request)

        assert seen["url"] == f"{BASE_URL}/shipping/shipments"
        assert seen["body"]["serviceType"] == "EXPRESS_1200"
        assert seen["body"]["reference"] == "TS-1001"
        assert seen["body"]["labelFormat"] == "PDF"

        assert result.tracking_number == "GLS123456"
        assert result.shipment_id == "GLS123456"
        assert result.label_url == "data:application/pdf;base64,JVBERi0x"
        assert result.total_amount == 21.0

    @pytest.mark.asyncio
    async def test_missing_tracking_number_is_an_error(self, shipment_request):
        carrier = make_carrier(lambda request: httpx.Response(200, json={"labelData": "x"}))

        with pytest.raises(CarrierAPIError):
            await carrier.create_shipment(shipment_request)


class TestTracking:

    @pytest.mark.asyncio
    async def test_maps_status_and_orders_events(self):
        def handler(request):
            assert request.method == "GET"
            assert request.url.path == "/tracking/GLS123456"
            return httpx.Response(200, json={
                "status": "IN_TRANSIT",
                "estimatedDelivery": "2025-03-04T17:00:00Z",
                "events": [
                    {"timestamp": "2025-03-02T08:00:00Z", "status": "IN_DEPOT", "location": "Gent"},
                    {"timestamp": "2025-03-01T15:30:00Z", "status": "PICKEDUP",
                     "description": "Parcel picked up", "location": "Antwerp"},
                    {"timestamp": "", "status": "IN_TRANSIT"},
                ],
            })

        carrier = make_carrier(handler)
        tracking = await carrier.get_tracking("GLS123456")

        assert tracking.status == TrackingStatus.IN_TRANSIT
        assert tracking.provider_name == "GLS"
        assert tracking.estimated_delivery.day == 4
        assert [e.status for e in tracking.events] == [
            TrackingStatus.PICKED_UP, TrackingStatus.IN_TRANSIT,
        ]
        assert tracking.events[0].description == "Parcel picked up"
        assert tracking.events[1].description == "No description available"

    @pytest.mark.asyncio
    async def test_empty_response_is_not_found(self):
        carrier = make_carrier(lambda request: httpx.Response(200, json={"events": []}))

        with pytest.raises(CarrierAPIError) as exc:
            await carrier.get_tracking("GLS000")

        assert exc.value.status_code == 404
        assert exc.value.code == "NOT_FOUND"

    @pytest.mark.asyncio
    async def test_malformed_body_is_a_carrier_error(self):
        body = {"status": "IN_TRANSIT", "events": ["scanned"]}
        carrier = make_carrier(lambda request: httpx.Response(200, json=body))

        with pytest.raises(CarrierAPIError) as exc:
            await carrier.get_tracking("GLS123456")

        assert exc.value.code == "MALFORMED_RESPONSE"

    @pytest.mark.asyncio
    async def test_tracking_number_is_escaped_in_path(self):
        seen = {}

        def handler(request):
            seen["path"] = request.url.raw_path
            return httpx.Response(200, json={"status": "DELIVERED"})

        carrier = make_carrier(handler)
        await carrier.get_tracking("GLS 1/2")

        assert seen["path"] == b"/tracking/GLS%201%2F2"

    @pytest.mark.parametrize("gls_status,expected", list(GLS_STATUS_MAP.items()))
    def test_every_known_status_maps(self, gls_status, expected):
        carrier = make_carrier(lambda request: httpx.Response(200))
        assert carrier.map_status(gls_status) == expected

    @pytest.mark.parametrize("gls_status", ["delivered ", "Delivered"])
    def test_status_is_case_insensitive(self, gls_status):
        carrier = make_carrier(lambda request: httpx.Response(200))
        assert carrier.map_status(gls_status) == TrackingStatus.DELIVERED

    @pytest.mark.parametrize("gls_status", ["RETURNED", "", None])
    def test_unknown_status(self, gls_status):
        carrier = make_carrier(lambda request: httpx.Response(200))
        assert carrier.map_status(gls_status) == TrackingStatus.UNKNOWN


class TestAddressValidation:

    @pytest.mark.asyncio
    async def test_suggestion_from_gls(self, recipient_address):
        def handler(request):
            assert json.loads(request.content)["address"]["zipCode"] == "9000"
            return httpx.Response(200, json={
                "valid": False,
                "suggestions": [{
                    "street1": "Kerkstraat 5A", "city": "Gent",
                    "zipCode": "9000", "countryCode": "BE",
                }],
            })

        carrier = make_carrier(handler)
        result = await carrier.validate_address(recipient_address.with_country("BE"))

        assert result.is_valid is False
        assert result.suggested_address.address_line1 == "Kerkstraat 5A"
        assert result.suggested_address.phone == "+32 470 12 34 56"
        assert result.messages == ["Address was corrected based on GLS recommendations"]

    @pytest.mark.asyncio
    async def test_valid_address(self, recipient_address):
        carrier = make_carrier(lambda request: httpx.Response(200, json={"valid": True}))

        result = await carrier.validate_address(recipient_address.with_country("BE"))

        assert result.is_valid is True
        assert result.suggested_address is None

    @pytest.mark.asyncio
    async def test_falls_back_to_local_checks(self, recipient_address):
        carrier = make_carrier(lambda request: httpx.Response(502), max_retries=0)

        result = await carrier.validate_address(recipient_address.with_country("BE"))

        assert result.is_valid is True


def test_tracking_url():
    carrier = make_carrier(lambda request: httpx.Response(200))
    assert carrier.get_tracking_url("GLS123456").endswith("match=GLS123456")
