from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z
from ..variance import compute_variance


def _num(value):
    return float(value) if value is not None else None


class InventoryCount(db.Model):
    """
    Reconciliation record for one ticket code.

    LIFECYCLE:
    1. EN_REVISION: materialized from the code, physical quantity pending
    2. DEVUELTO / FORENSE: sent back or escalated for investigation
    3. AJUSTADO: variance accepted; the linked code is completed

    Any non-review state may be reopened to EN_REVISION.

    difference, total_cost and movement_type are stored for reporting, but
    they are always written by compute_variance() and re-derivable from
    calculated_stock, physical_quantity and unit_cost. Readers recompute.
    """
    __tablename__ = "inventory_counts"
    __table_args__ = (
        db.UniqueConstraint("code_id", name="uq_inventory_counts_code"),
        db.Index("ix_inventory_counts_store_status", "store_code", "status"),
        db.Index("ix_inventory_counts_division", "division_code"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    request_id = db.Column(db.Integer, db.ForeignKey("product_requests.id"), nullable=False, index=True)
    code_id = db.Column(db.Integer, db.ForeignKey("request_codes.id"), nullable=False)

    store_code = db.Column(db.String(50), nullable=False)
    product_code = db.Column(db.String(64), nullable=False, index=True)
    barcode = db.Column(db.String(64), nullable=True)
    description = db.Column(db.String(255), nullable=False, default="")
    division_code = db.Column(db.String(20), nullable=True)
    category_code = db.Column(db.String(20), nullable=True)

    calculated_stock = db.Column(db.Numeric(18, 4), nullable=False, default=0)
    physical_quantity = db.Column(db.Numeric(18, 4), nullable=True)
    unit_cost = db.Column(db.Numeric(18, 4), nullable=False, default=0)
    difference = db.Column(db.Numeric(18, 4), nullable=False, default=0)
    total_cost = db.Column(db.Numeric(18, 4), nullable=False, default=0)

    comment = db.Column(db.String(500), nullable=True)
    movement_type = db.Column(db.String(20), nullable=False, default="STOCK_CUADRADO")

    # PENDIENTE until a physical quantity is registered, then CONTADO
    code_filter_status = db.Column(db.String(20), nullable=False, default="PENDIENTE", index=True)

    # EN_REVISION, DEVUELTO, FORENSE, AJUSTADO
    status = db.Column(db.String(20), nullable=False, default="EN_REVISION", index=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_by_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False)
    updated_by_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False)

    request = db.relationship("ProductRequest")
    code = db.relationship("RequestCode")

    def __repr__(self) -> str:
        return f"<InventoryCount id={self.id} code={self.product_code!r} status={self.status}>"

    def variance(self):
        return compute_variance(self.calculated_stock, self.physical_quantity, self.unit_cost)

    def to_dict(self) -> dict:
        variance = self.variance()
        request = self.request
        code = self.code
        return {
            "id": self.id,
            "request_id": self.request_id,
            "code_id": self.code_id,
            "ticket_number": request.ticket_number if request else None,
            "request_priority": request.priority if request else None,
            "store_code": self.store_code,
            "product_code": self.product_code,
            "barcode": self.barcode,
            "description": self.description,
            "division_code": self.division_code,
            "category_code": self.category_code,
            "calculated_stock": _num(self.calculated_stock),
            "physical_quantity": _num(self.physical_quantity),
            "unit_cost": _num(self.unit_cost),
            "difference": _num(variance.difference),
            "total_cost": _num(variance.total_cost),
            "has_difference": variance.has_difference,
            "is_physical_count_registered": self.physical_quantity is not None,
            "movement_type": variance.movement_type.value,
            "comment": self.comment,
            "code_filter_status": self.code_filter_status,
            "status": self.status,
            "assigned_to_id": code.assigned_to_id if code else None,
            "is_active": self.is_active,
            "created_by_id": self.created_by_id,
            "created_at": to_utc_z(self.created_at),
            "updated_by_id": self.updated_by_id,
            "updated_at": to_utc_z(self.updated_at),
        }
