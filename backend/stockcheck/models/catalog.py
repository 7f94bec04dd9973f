from __future__ import annotations

from ..extensions import db


class CatalogProduct(db.Model):
    """
    Local mirror of the product catalog.

    Backs SqlProductCatalog. Each product carries its full taxonomy path
    (division > category > group > subgroup), code and name for every level.

    VALUE NORMALIZATION:
    product_code is stored upper-case with whitespace stripped, the same
    normalization applied to codes on ticket creation.
    """
    __tablename__ = "catalog_products"
    __table_args__ = (
        db.Index("ix_catalog_products_division", "division_code"),
        db.Index("ix_catalog_products_taxonomy", "division_code", "category_code", "group_code", "subgroup_code"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_code = db.Column(db.String(64), nullable=False, unique=True, index=True)
    barcode = db.Column(db.String(64), nullable=True, index=True)
    description = db.Column(db.String(255), nullable=False, default="")
    description2 = db.Column(db.String(255), nullable=True)

    division_code = db.Column(db.String(20), nullable=True)
    division = db.Column(db.String(120), nullable=True)
    category_code = db.Column(db.String(20), nullable=True)
    category = db.Column(db.String(120), nullable=True)
    group_code = db.Column(db.String(20), nullable=True)
    group_name = db.Column(db.String(120), nullable=True)
    subgroup_code = db.Column(db.String(20), nullable=True)
    subgroup = db.Column(db.String(120), nullable=True)

    unit_measure = db.Column(db.String(16), nullable=True)
    unit_price = db.Column(db.Numeric(18, 4), nullable=False, default=0)
    unit_cost = db.Column(db.Numeric(18, 4), nullable=False, default=0)

    is_blocked = db.Column(db.Boolean, nullable=False, default=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    def __repr__(self) -> str:
        return f"<CatalogProduct code={self.product_code!r}>"


class StoreStock(db.Model):
    """Calculated (system) on-hand quantity of a product in a store."""
    __tablename__ = "store_stock"
    __table_args__ = (
        db.UniqueConstraint("store_code", "product_code", name="uq_store_stock_store_product"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    store_code = db.Column(db.String(50), nullable=False, index=True)
    product_code = db.Column(db.String(64), nullable=False, index=True)
    quantity = db.Column(db.Numeric(18, 4), nullable=False, default=0)
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )
