from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class UserProductAssignment(db.Model):
    """
    Grant of counting responsibility over part of the product taxonomy.

    A grant is scoped to one level (DIVISION, CATEGORIA, GRUPO, SUBGRUPO) and
    always records the codes and names of every ancestor level, e.g. a GRUPO
    grant also carries its division and category.

    INVARIANT: at most one active grant per (user_id, store_code,
    assignment_type). Replacing a grant deactivates the old row; rows are
    never deleted so the audit trail keeps resolving.
    """
    __tablename__ = "user_product_assignments"
    __table_args__ = (
        db.Index("ix_upa_user_store_type_active", "user_id", "store_code", "assignment_type", "is_active"),
        db.Index("ix_upa_store_active", "store_code", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    store_code = db.Column(db.String(50), nullable=False)
    assignment_type = db.Column(db.String(20), nullable=False)

    division_code = db.Column(db.String(20), nullable=True)
    division = db.Column(db.String(120), nullable=True)
    category_code = db.Column(db.String(20), nullable=True)
    category = db.Column(db.String(120), nullable=True)
    group_code = db.Column(db.String(20), nullable=True)
    group_name = db.Column(db.String(120), nullable=True)
    subgroup_code = db.Column(db.String(20), nullable=True)
    subgroup = db.Column(db.String(120), nullable=True)

    assigned_by_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    assigned_at = db.Column(db.DateTime(timezone=True), nullable=False)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    deactivated_by_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    deactivated_at = db.Column(db.DateTime(timezone=True), nullable=True)

    user = db.relationship("User", foreign_keys=[user_id])
    assigned_by = db.relationship("User", foreign_keys=[assigned_by_id])

    def __repr__(self) -> str:
        return (
            f"<UserProductAssignment id={self.id} user_id={self.user_id} "
            f"store={self.store_code!r} type={self.assignment_type} active={self.is_active}>"
        )

    def scope(self) -> dict:
        return {
            "division_code": self.division_code,
            "division": self.division,
            "category_code": self.category_code,
            "category": self.category,
            "group_code": self.group_code,
            "group_name": self.group_name,
            "subgroup_code": self.subgroup_code,
            "subgroup": self.subgroup,
        }

    def scope_label(self) -> str:
        """Human readable "<TYPE> <code> - <name>" for the grant's own level."""
        pairs = {
            "DIVISION": (self.division_code, self.division),
            "CATEGORIA": (self.category_code, self.category),
            "GRUPO": (self.group_code, self.group_name),
            "SUBGRUPO": (self.subgroup_code, self.subgroup),
        }
        code, name = pairs.get(self.assignment_type, (None, None))
        label = f"{self.assignment_type} {code or ''}".strip()
        return f"{label} - {name}" if name else label

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "username": self.user.username if self.user else None,
            "user_full_name": self.user.full_name if self.user else None,
            "store_code": self.store_code,
            "assignment_type": self.assignment_type,
            "product_info": self.scope(),
            "assigned_by_id": self.assigned_by_id,
            "assigned_by_name": self.assigned_by.username if self.assigned_by else None,
            "assigned_at": to_utc_z(self.assigned_at),
            "is_active": self.is_active,
            "deactivated_by_id": self.deactivated_by_id,
            "deactivated_at": to_utc_z(self.deactivated_at) if self.deactivated_at else None,
        }
