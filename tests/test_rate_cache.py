"""
Tests for the rate quote cache.
"""
from dataclasses import replace

from tire_shipping.modules.shipping.carriers.base import (
    Package,
    RateQuote,
    RateRequest,
    ServiceType,
)
from tire_shipping.services.rate_cache import RateCache


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


def quote(amount=10.0):
    return RateQuote(provider_name="DHL", service_type=ServiceType.STANDARD, total_amount=amount)


def make_request(shipper_address, recipient_address, packages):
    return RateRequest(shipper=shipper_address, recipient=recipient_address, packages=packages)


class TestRateCache:

    def test_miss_then_hit(self, shipper_address, recipient_address, packages):
        cache = RateCache()
        request = make_request(shipper_address, recipient_address, packages)

        assert cache.get(request, "DHL") is None
        cache.set(request, "DHL", [quote()])

        assert cache.get(request, "DHL") == [quote()]
        stats = cache.get_stats()
        assert stats["hits"] == 1
        assert stats["misses"] == 1

    def test_entries_expire(self, shipper_address, recipient_address, packages):
        clock = FakeClock()
        cache = RateCache(ttl_seconds=3600, clock=clock)
        request = make_request(shipper_address, recipient_address, packages)
        cache.set(request, "DHL", [quote()])

        clock.now += 3601

        assert cache.get(request, "DHL") is None
        assert cache.get_stats()["size"] == 0

    def test_package_order_does_not_matter(self, shipper_address, recipient_address, packages):
        cache = RateCache()
        forward = make_request(shipper_address, recipient_address, packages)
        backward = make_request(shipper_address, recipient_address, list(reversed(packages)))

        assert cache.make_key(forward, "DHL") == cache.make_key(backward, "DHL")

    def test_key_depends_on_destination_and_service(self, shipper_address, recipient_address, packages):
        cache = RateCache()
        base = make_request(shipper_address, recipient_address, packages)
        other_postcode = replace(base, recipient=replace(recipient_address, postal_code="1000"))
        express = replace(base, service_type=ServiceType.EXPRESS)

        keys = {
            cache.make_key(base, "DHL"),
            cache.make_key(other_postcode, "DHL"),
            cache.make_key(express, "DHL"),
            cache.make_key(base, "GLS"),
        }
        assert len(keys) == 4

    def test_contact_details_do_not_affect_key(self, shipper_address, recipient_address, packages):
        cache = RateCache()
        base = make_request(shipper_address, recipient_address, packages)
        renamed = replace(base, recipient=replace(recipient_address, contact_name="Someone Else"))

        assert cache.make_key(base, "DHL") == cache.make_key(renamed, "DHL")

    def test_lru_eviction(self, shipper_address, recipient_address):
        cache = RateCache(max_size=2)
        requests = [
            make_request(shipper_address, recipient_address, [Package(weight=w)])
            for w in (1.0, 2.0, 3.0)
        ]
        cache.set(requests[0], "DHL", [quote(1)])
        cache.set(requests[1], "DHL", [quote(2)])
        cache.get(requests[0], "DHL")  # touch, so requests[1] is oldest
        cache.set(requests[2], "DHL", [quote(3)])

        assert cache.get(requests[1], "DHL") is None
        assert cache.get(requests[0], "DHL") == [quote(1)]
        assert cache.get_stats()["evictions"] == 1

    def test_clear(self, shipper_address, recipient_address, packages):
        cache = RateCache()
        cache.set(make_request(shipper_address, recipient_address, packages), "DHL", [quote()])

        cache.clear()

        assert cache.get_stats()["size"] == 0
