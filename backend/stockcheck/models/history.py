"""
Append-only audit trail tables.

One row is written per state-changing operation on tickets/codes, counts and
grants. Rows are never updated or deleted: the ORM listeners registered at the
bottom of this module raise ImmutableRecordError before such SQL is emitted.
"""
from __future__ import annotations

from sqlalchemy import event

from ..extensions import db
from ..time_utils import to_utc_z


class ImmutableRecordError(Exception):
    """Raised when code tries to modify or delete a history row."""


class RequestHistory(db.Model):
    __tablename__ = "request_history"
    __table_args__ = (
        db.Index("ix_request_history_request_created", "request_id", "created_at"),
        db.Index("ix_request_history_code", "code_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    request_id = db.Column(db.Integer, db.ForeignKey("product_requests.id"), nullable=False)
    # NULL for ticket-level entries
    code_id = db.Column(db.Integer, db.ForeignKey("request_codes.id"), nullable=True)
    product_code = db.Column(db.String(64), nullable=True)

    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    action = db.Column(db.String(32), nullable=False)
    old_value = db.Column(db.String(255), nullable=True)
    new_value = db.Column(db.String(255), nullable=True)
    comment = db.Column(db.String(1000), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False)

    user = db.relationship("User")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "request_id": self.request_id,
            "code_id": self.code_id,
            "product_code": self.product_code,
            "user_id": self.user_id,
            "user_name": self.user.username if self.user else None,
            "action": self.action,
            "old_value": self.old_value,
            "new_value": self.new_value,
            "comment": self.comment,
            "created_at": to_utc_z(self.created_at),
        }


class CountHistory(db.Model):
    __tablename__ = "inventory_count_history"
    __table_args__ = (
        db.Index("ix_count_history_count_created", "count_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    count_id = db.Column(db.Integer, db.ForeignKey("inventory_counts.id"), nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    action = db.Column(db.String(32), nullable=False)
    old_value = db.Column(db.String(255), nullable=True)
    new_value = db.Column(db.String(255), nullable=True)
    comment = db.Column(db.String(1000), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False)

    user = db.relationship("User")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "count_id": self.count_id,
            "user_id": self.user_id,
            "user_name": self.user.username if self.user else None,
            "action": self.action,
            "old_value": self.old_value,
            "new_value": self.new_value,
            "comment": self.comment,
            "created_at": to_utc_z(self.created_at),
        }


class AssignmentHistory(db.Model):
    """Before/after scope of every grant change."""
    __tablename__ = "assignment_history"
    __table_args__ = (
        db.Index("ix_assignment_history_assignment", "assignment_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    assignment_id = db.Column(db.Integer, db.ForeignKey("user_product_assignments.id"), nullable=False)
    target_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    store_code = db.Column(db.String(50), nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    action = db.Column(db.String(32), nullable=False)
    old_value = db.Column(db.String(255), nullable=True)
    new_value = db.Column(db.String(255), nullable=True)
    comment = db.Column(db.String(1000), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "assignment_id": self.assignment_id,
            "target_user_id": self.target_user_id,
            "store_code": self.store_code,
            "user_id": self.user_id,
            "action": self.action,
            "old_value": self.old_value,
            "new_value": self.new_value,
            "comment": self.comment,
            "created_at": to_utc_z(self.created_at),
        }


def _reject_update(mapper, connection, target):
    raise ImmutableRecordError(
        f"{type(target).__name__} {target.id} is append-only and cannot be modified"
    )


def _reject_delete(mapper, connection, target):
    raise ImmutableRecordError(
        f"{type(target).__name__} {target.id} is append-only and cannot be deleted"
    )


for _model in (RequestHistory, CountHistory, AssignmentHistory):
    event.listen(_model, "before_update", _reject_update)
    event.listen(_model, "before_delete", _reject_delete)
