# Overview: Product catalog collaborator: taxonomy, cost and calculated stock lookups.

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from decimal import Decimal
from typing import Protocol

import httpx
from flask import Flask, current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import CatalogProduct, StoreStock
from ..variance import to_decimal
from .cache import ProductKey, StockKey, TTLCache
from .errors import DependencyError

logger = logging.getLogger(__name__)

_EXTENSION_KEY = "stockcheck.catalog"


@dataclass(frozen=True)
class ProductInfo:
    product_code: str
    description: str = ""
    description2: str | None = None
    barcode: str | None = None
    division_code: str | None = None
    division: str | None = None
    category_code: str | None = None
    category: str | None = None
    group_code: str | None = None
    group_name: str | None = None
    subgroup_code: str | None = None
    subgroup: str | None = None
    unit_measure: str | None = None
    unit_price: Decimal = field(default=Decimal("0"))
    unit_cost: Decimal = field(default=Decimal("0"))
    is_blocked: bool = False
    is_active: bool = True

    @classmethod
    def from_mapping(cls, data: dict) -> "ProductInfo":
        try:
            return cls(
                product_code=str(data["product_code"]).strip().upper(),
                description=data.get("description") or "",
                description2=data.get("description2"),
                barcode=data.get("barcode"),
                division_code=data.get("division_code"),
                division=data.get("division"),
                category_code=data.get("category_code"),
                category=data.get("category"),
                group_code=data.get("group_code"),
                group_name=data.get("group_name"),
                subgroup_code=data.get("subgroup_code"),
                subgroup=data.get("subgroup"),
                unit_measure=data.get("unit_measure"),
                unit_price=to_decimal(data.get("unit_price") or 0),
                unit_cost=to_decimal(data.get("unit_cost") or 0),
                is_blocked=bool(data.get("is_blocked", False)),
                is_active=bool(data.get("is_active", True)),
            )
        except (KeyError, ValueError) as exc:
            raise DependencyError(f"Catalog returned malformed product data: {exc}")


@dataclass(frozen=True)
class HierarchyNode:
    division_code: str | None
    division: str | None
    category_code: str | None
    category: str | None
    group_code: str | None
    group_name: str | None
    subgroup_code: str | None
    subgroup: str | None

    def to_dict(self) -> dict:
        return asdict(self)


class ProductCatalog(Protocol):
    def get_product(self, product_code: str) -> ProductInfo | None: ...

    def get_stock(self, store_code: str, product_code: str) -> Decimal: ...

    def list_hierarchy(self) -> list[HierarchyNode]: ...


class SqlProductCatalog:
    """Reads the catalog_products / store_stock tables."""

    def get_product(self, product_code: str) -> ProductInfo | None:
        try:
            row = db.session.query(CatalogProduct).filter_by(product_code=product_code).first()
        except SQLAlchemyError as exc:
            raise DependencyError(f"Catalog lookup failed for {product_code}: {exc}")
        if row is None:
            return None
        return ProductInfo(
            product_code=row.product_code,
            description=row.description or "",
            description2=row.description2,
            barcode=row.barcode,
            division_code=row.division_code,
            division=row.division,
            category_code=row.category_code,
            category=row.category,
            group_code=row.group_code,
            group_name=row.group_name,
            subgroup_code=row.subgroup_code,
            subgroup=row.subgroup,
            unit_measure=row.unit_measure,
            unit_price=to_decimal(row.unit_price or 0),
            unit_cost=to_decimal(row.unit_cost or 0),
            is_blocked=row.is_blocked,
            is_active=row.is_active,
        )

    def get_stock(self, store_code: str, product_code: str) -> Decimal:
        try:
            quantity = (
                db.session.query(StoreStock.quantity)
                .filter_by(store_code=store_code, product_code=product_code)
                .scalar()
            )
        except SQLAlchemyError as exc:
            raise DependencyError(f"Stock lookup failed for {product_code}@{store_code}: {exc}")
        return to_decimal(quantity) if quantity is not None else Decimal("0")

    def list_hierarchy(self) -> list[HierarchyNode]:
        rows = (
            db.session.query(
                CatalogProduct.division_code,
                CatalogProduct.division,
                CatalogProduct.category_code,
                CatalogProduct.category,
                CatalogProduct.group_code,
                CatalogProduct.group_name,
                CatalogProduct.subgroup_code,
                CatalogProduct.subgroup,
            )
            .filter(CatalogProduct.is_active.is_(True))
            .distinct()
            .order_by(
                CatalogProduct.division,
                CatalogProduct.category,
                CatalogProduct.group_name,
                CatalogProduct.subgroup,
            )
            .all()
        )
        return [HierarchyNode(*row) for row in rows]


class HttpProductCatalog:
    """
    Remote catalog service client.

    Endpoints:
        GET /api/products/<code>                 -> product JSON, 404 if unknown
        GET /api/stock/<store_code>/<code>       -> {"quantity": number}
        GET /api/products/hierarchy              -> [taxonomy rows]
    """

    def __init__(self, base_url: str, *, timeout: float = 5.0, transport: httpx.BaseTransport | None = None):
        self.base_url = base_url.rstrip("/")
        self._client = httpx.Client(base_url=self.base_url, timeout=timeout, transport=transport)

    def close(self) -> None:
        self._client.close()

    def _get(self, path: str) -> httpx.Response:
        try:
            response = self._client.get(path)
        except httpx.TimeoutException:
            logger.warning("Catalog timeout calling %s%s", self.base_url, path)
            raise DependencyError("Product catalog timed out", path=path)
        except httpx.RequestError as exc:
            logger.warning("Catalog connection error calling %s%s: %s", self.base_url, path, exc)
            raise DependencyError("Product catalog unavailable", path=path)
        if response.status_code >= 500:
            logger.warning("Catalog returned %s for %s", response.status_code, path)
            raise DependencyError(f"Product catalog error ({response.status_code})", path=path)
        return response

    def _json(self, response: httpx.Response, path: str):
        try:
            return response.json()
        except ValueError:
            raise DependencyError("Product catalog returned invalid JSON", path=path)

    def get_product(self, product_code: str) -> ProductInfo | None:
        path = f"/api/products/{product_code}"
        response = self._get(path)
        if response.status_code == 404:
            return None
        if response.status_code != 200:
            raise DependencyError(f"Product catalog error ({response.status_code})", path=path)
        return ProductInfo.from_mapping(self._json(response, path))

    def get_stock(self, store_code: str, product_code: str) -> Decimal:
        path = f"/api/stock/{store_code}/{product_code}"
        response = self._get(path)
        if response.status_code == 404:
            return Decimal("0")
        if response.status_code != 200:
            raise DependencyError(f"Product catalog error ({response.status_code})", path=path)
        payload = self._json(response, path)
        try:
            return to_decimal(payload.get("quantity", 0))
        except (AttributeError, ValueError):
            raise DependencyError("Product catalog returned a malformed stock quantity", path=path)

    def list_hierarchy(self) -> list[HierarchyNode]:
        path = "/api/products/hierarchy"
        response = self._get(path)
        if response.status_code != 200:
            raise DependencyError(f"Product catalog error ({response.status_code})", path=path)
        rows = self._json(response, path)
        if not isinstance(rows, list):
            raise DependencyError("Product catalog hierarchy must be a list", path=path)
        return [
            HierarchyNode(
                division_code=row.get("division_code"),
                division=row.get("division"),
                category_code=row.get("category_code"),
                category=row.get("category"),
                group_code=row.get("group_code"),
                group_name=row.get("group_name"),
                subgroup_code=row.get("subgroup_code"),
                subgroup=row.get("subgroup"),
            )
            for row in rows
        ]


class CachedProductCatalog:
    """
    Memoizes catalog lookups in a TTLCache.

    Stock entries live under StockKey, so a count materialized within the TTL
    window may see a stock figure up to ttl_seconds old. Unknown products are
    not cached.
    """

    def __init__(self, inner: ProductCatalog, cache: TTLCache):
        self.inner = inner
        self.cache = cache

    def get_product(self, product_code: str) -> ProductInfo | None:
        return self.cache.get_or_load(ProductKey(product_code), lambda: self.inner.get_product(product_code))

    def get_stock(self, store_code: str, product_code: str) -> Decimal:
        return self.cache.get_or_load(
            StockKey(store_code, product_code),
            lambda: self.inner.get_stock(store_code, product_code),
        )

    def list_hierarchy(self) -> list[HierarchyNode]:
        return self.inner.list_hierarchy()

    def invalidate_product(self, product_code: str) -> bool:
        return self.cache.invalidate(ProductKey(product_code))

    def invalidate_stock(self, store_code: str, product_code: str) -> bool:
        return self.cache.invalidate(StockKey(store_code, product_code))


def build_catalog(config) -> CachedProductCatalog:
    backend = str(config.get("CATALOG_BACKEND", "sql")).lower()
    if backend == "http":
        inner: ProductCatalog = HttpProductCatalog(
            config["CATALOG_BASE_URL"],
            timeout=float(config.get("CATALOG_TIMEOUT_SECONDS", 5)),
        )
    elif backend == "sql":
        inner = SqlProductCatalog()
    else:
        raise ValueError(f"Unknown CATALOG_BACKEND: {backend}")
    cache: TTLCache = TTLCache(
        ttl_seconds=config.get("CATALOG_CACHE_TTL_SECONDS", 300),
        max_entries=config.get("CATALOG_CACHE_MAX_ENTRIES", 5000),
    )
    return CachedProductCatalog(inner, cache)


def init_catalog(app: Flask) -> None:
    app.extensions[_EXTENSION_KEY] = build_catalog(app.config)


def set_catalog(app: Flask, catalog) -> None:
    """Swap the catalog collaborator (tests, alternative backends)."""
    app.extensions[_EXTENSION_KEY] = catalog


def get_catalog():
    return current_app.extensions[_EXTENSION_KEY]


def require_product(product_code: str) -> ProductInfo:
    """Catalog lookup that treats an unknown code as inconsistent collaborator data."""
    info = get_catalog().get_product(product_code)
    if info is None:
        raise DependencyError(f"Product {product_code} not found in catalog", product_code=product_code)
    return info
