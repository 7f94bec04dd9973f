from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Store(db.Model):
    """
    Store master data.

    Maintained by the directory service; this service only reads it to
    validate tickets and grants. Stores are referenced by ``code`` everywhere
    in the workflow tables.
    """
    __tablename__ = "stores"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(50), nullable=False, unique=True, index=True)
    name = db.Column(db.String(120), nullable=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def __repr__(self) -> str:
        return f"<Store id={self.id} code={self.code!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "code": self.code,
            "name": self.name,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class User(db.Model):
    """
    Users known to the workflow (requesters, counters, leaders, managers).

    WHY: Every ticket, assignment and count transition is attributed to a
    user. Identity itself is issued upstream; ``profile`` mirrors the role
    claim the gateway asserts.
    """
    __tablename__ = "users"
    __table_args__ = (
        db.Index("ix_users_store_profile", "store_code", "profile"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(64), nullable=False, unique=True, index=True)
    full_name = db.Column(db.String(200), nullable=False, default="")
    email = db.Column(db.String(255), nullable=True)

    # ADMINISTRADOR, GERENTE_TIENDA, LIDER, INVENTARIO
    profile = db.Column(db.String(32), nullable=False, default="INVENTARIO")

    # Home store (nullable for org-level administrators)
    store_code = db.Column(db.String(50), nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    last_seen_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        return f"<User id={self.id} username={self.username!r} profile={self.profile}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "username": self.username,
            "full_name": self.full_name,
            "email": self.email,
            "profile": self.profile,
            "store_code": self.store_code,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "last_seen_at": to_utc_z(self.last_seen_at) if self.last_seen_at else None,
        }
