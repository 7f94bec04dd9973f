from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class ProductRequest(db.Model):
    """
    Count request ticket ("REQ-YYYYMMDD-NNNN").

    LIFECYCLE:
    Status is aggregated from the ticket's codes (PENDIENTE, EN_REVISION,
    LISTO, AJUSTADO). DEVUELTO and CANCELADO are explicit ticket-level
    overrides. Tickets are never deleted; closing or cancelling clears
    is_active only when the ticket is finished.

    INVARIANTS:
    - ticket_number and requester_id never change after creation
    - total_codes == number of distinct normalized codes given at creation
    """
    __tablename__ = "product_requests"
    __table_args__ = (
        db.Index("ix_product_requests_store_status", "store_code", "status"),
        db.Index("ix_product_requests_created_at", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    ticket_number = db.Column(db.String(32), nullable=False, unique=True, index=True)

    requester_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    store_code = db.Column(db.String(50), nullable=False, index=True)

    status = db.Column(db.String(20), nullable=False, default="PENDIENTE", index=True)
    priority = db.Column(db.String(20), nullable=False, default="NORMAL", index=True)
    description = db.Column(db.String(1000), nullable=False, default="")
    due_date = db.Column(db.DateTime(timezone=True), nullable=True)

    total_codes = db.Column(db.Integer, nullable=False, default=0)
    completed_codes = db.Column(db.Integer, nullable=False, default=0)
    pending_codes = db.Column(db.Integer, nullable=False, default=0)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False)
    updated_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    requester = db.relationship("User", foreign_keys=[requester_id])
    codes = db.relationship(
        "RequestCode",
        back_populates="request",
        order_by="RequestCode.id",
        lazy=True,
    )

    def __repr__(self) -> str:
        return f"<ProductRequest id={self.id} ticket={self.ticket_number!r} status={self.status}>"

    def to_dict(self, *, include_codes: bool = False) -> dict:
        data = {
            "id": self.id,
            "ticket_number": self.ticket_number,
            "requester_id": self.requester_id,
            "requester_name": self.requester.username if self.requester else None,
            "store_code": self.store_code,
            "status": self.status,
            "priority": self.priority,
            "description": self.description,
            "due_date": to_utc_z(self.due_date) if self.due_date else None,
            "total_codes": self.total_codes,
            "completed_codes": self.completed_codes,
            "pending_codes": self.pending_codes,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "completed_at": to_utc_z(self.completed_at) if self.completed_at else None,
        }
        if include_codes:
            data["codes"] = [code.to_dict() for code in self.codes]
        return data


class RequestCode(db.Model):
    """
    One product code inside a ticket, independently assigned and tracked.

    processed_at is stamped only when the code reaches LISTO or AJUSTADO.
    assignment_type holds the matched grant level, or MANUAL for overrides.
    """
    __tablename__ = "request_codes"
    __table_args__ = (
        db.UniqueConstraint("request_id", "product_code", name="uq_request_codes_request_product"),
        db.Index("ix_request_codes_assigned_status", "assigned_to_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    request_id = db.Column(db.Integer, db.ForeignKey("product_requests.id"), nullable=False, index=True)
    product_code = db.Column(db.String(64), nullable=False, index=True)

    status = db.Column(db.String(20), nullable=False, default="PENDIENTE", index=True)

    assigned_to_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    assignment_type = db.Column(db.String(20), nullable=True)
    assignment_info = db.Column(db.String(255), nullable=True)

    notes = db.Column(db.String(500), nullable=True)
    processed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False)

    request = db.relationship("ProductRequest", back_populates="codes")
    assigned_to = db.relationship("User", foreign_keys=[assigned_to_id])

    def __repr__(self) -> str:
        return f"<RequestCode id={self.id} code={self.product_code!r} status={self.status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "request_id": self.request_id,
            "product_code": self.product_code,
            "status": self.status,
            "assigned_to_id": self.assigned_to_id,
            "assigned_to_name": self.assigned_to.username if self.assigned_to else None,
            "assignment_type": self.assignment_type,
            "assignment_info": self.assignment_info,
            "notes": self.notes,
            "processed_at": to_utc_z(self.processed_at) if self.processed_at else None,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
