"""
Product catalog client tests.

The HTTP client runs against httpx.MockTransport; no network access.
"""

from decimal import Decimal

import httpx
import pytest

from stockcheck.services.cache import TTLCache
from stockcheck.services.catalog_service import CachedProductCatalog, HttpProductCatalog
from stockcheck.services.errors import DependencyError

PRODUCT = {
    "product_code": "abc",
    "description": "Tornillo 1/4",
    "barcode": "7501",
    "division_code": "01",
    "division": "Ferreteria",
    "category_code": "0101",
    "group_code": "010101",
    "subgroup_code": "01010101",
    "unit_cost": "2.50",
    "unit_price": 5,
}


def make_client(handler):
    return HttpProductCatalog("http://catalog.test/", timeout=1, transport=httpx.MockTransport(handler))


def routes(request: httpx.Request) -> httpx.Response:
    path = request.url.path
    if path == "/api/products/ABC":
        return httpx.Response(200, json=PRODUCT)
    if path == "/api/stock/T01/ABC":
        return httpx.Response(200, json={"quantity": "7.5"})
    if path == "/api/products/hierarchy":
        return httpx.Response(200, json=[{"division_code": "01", "division": "Ferreteria"}])
    return httpx.Response(404, json={"error": "not found"})


class TestHttpProductCatalog:
    def test_product_is_parsed(self):
        info = make_client(routes).get_product("ABC")

        assert info.product_code == "ABC"
        assert info.unit_cost == Decimal("2.50")
        assert info.unit_price == Decimal("5")
        assert info.subgroup_code == "01010101"

    def test_unknown_product_is_none(self):
        assert make_client(routes).get_product("NOPE") is None

    def test_stock_quantity(self):
        assert make_client(routes).get_stock("T01", "ABC") == Decimal("7.5")

    def test_missing_stock_is_zero(self):
        assert make_client(routes).get_stock("T01", "NOPE") == Decimal("0")

    def test_hierarchy(self):
        (node,) = make_client(routes).list_hierarchy()
        assert node.division == "Ferreteria"
        assert node.subgroup_code is None

    def test_server_error_is_dependency_error(self):
        client = make_client(lambda request: httpx.Response(500))
        with pytest.raises(DependencyError):
            client.get_product("ABC")

    @pytest.mark.parametrize("exc_type", [httpx.ConnectError, httpx.ReadTimeout])
    def test_transport_failures_are_dependency_errors(self, exc_type):
        def handler(request):
            raise exc_type("boom", request=request)

        with pytest.raises(DependencyError):
            make_client(handler).get_stock("T01", "ABC")

    def test_invalid_json_is_dependency_error(self):
        client = make_client(lambda request: httpx.Response(200, content=b"<html>"))
        with pytest.raises(DependencyError):
            client.get_product("ABC")

    def test_malformed_product_is_dependency_error(self):
        client = make_client(lambda request: httpx.Response(200, json={"description": "no code"}))
        with pytest.raises(DependencyError):
            client.get_product("ABC")


class TestCachedProductCatalog:
    def test_lookups_are_memoized_until_invalidated(self):
        calls = []

        def handler(request):
            calls.append(request.url.path)
            return routes(request)

        catalog = CachedProductCatalog(make_client(handler), TTLCache(ttl_seconds=60, max_entries=10))

        catalog.get_product("ABC")
        catalog.get_product("ABC")
        catalog.get_stock("T01", "ABC")
        catalog.get_stock("T01", "ABC")
        assert calls == ["/api/products/ABC", "/api/stock/T01/ABC"]

        assert catalog.invalidate_stock("T01", "ABC") is True
        catalog.get_stock("T01", "ABC")
        assert calls[-1] == "/api/stock/T01/ABC"
        assert len(calls) == 3

    def test_unknown_products_are_not_cached(self):
        calls = []

        def handler(request):
            calls.append(request.url.path)
            return routes(request)

        catalog = CachedProductCatalog(make_client(handler), TTLCache(ttl_seconds=60, max_entries=10))
        catalog.get_product("NOPE")
        catalog.get_product("NOPE")
        assert len(calls) == 2
