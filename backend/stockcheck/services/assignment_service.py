# Overview: Service-layer operations for taxonomy grants and the hierarchical assignee resolver.

"""
Grant management and assignee resolution.

RESOLUTION:
A product's taxonomy path (division > category > group > subgroup) is matched
against the store's active grants from the most specific level down
(AssignmentType.by_specificity()). A grant matches when every code on its
scope path equals the product's code at the same level. The first level with
a match wins; ties inside a level go to the most recently granted row.

Active grants are snapshotted per store in a TTLCache under StoreGrantsKey.
Every grant change in this module invalidates the affected store's entry,
once inside the transaction and once after it commits.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Mapping

from flask import Flask, current_app

from ..extensions import db
from ..models import AssignmentHistory, Store, User, UserProductAssignment
from ..models.enums import AssignmentAction, AssignmentType
from ..profiles import can_hold_grant, parse_profile
from ..time_utils import utcnow
from ..validation import normalize_code, parse_enum
from . import audit_service
from .cache import StoreGrantsKey, TTLCache
from .catalog_service import HierarchyNode, get_catalog, require_product
from .concurrency import call_after_commit
from .errors import ConflictError, NotFoundError, ValidationError, operation

logger = logging.getLogger(__name__)

_EXTENSION_KEY = "stockcheck.grant_cache"

# name column recorded next to each scope code column
_NAME_FIELDS = {
    "division_code": "division",
    "category_code": "category",
    "group_code": "group_name",
    "subgroup_code": "subgroup",
}


@dataclass(frozen=True)
class GrantSnapshot:
    id: int
    user_id: int
    assignment_type: AssignmentType
    path: tuple[str | None, ...]
    assigned_at: datetime
    label: str

    def matches(self, taxonomy: Any) -> bool:
        for field_name, code in zip(self.assignment_type.scope_fields, self.path):
            if not code or _taxonomy_code(taxonomy, field_name) != code:
                return False
        return True


@dataclass(frozen=True)
class Resolution:
    user_id: int
    assignment_id: int
    assignment_type: AssignmentType
    assignment_info: str

    def to_dict(self) -> dict:
        return {
            "user_id": self.user_id,
            "assignment_id": self.assignment_id,
            "assignment_type": self.assignment_type.value,
            "assignment_info": self.assignment_info,
        }


def _taxonomy_code(taxonomy: Any, field_name: str) -> str | None:
    if isinstance(taxonomy, Mapping):
        value = taxonomy.get(field_name)
    else:
        value = getattr(taxonomy, field_name, None)
    return normalize_code(value) or None


def init_resolver_cache(app: Flask) -> None:
    app.extensions[_EXTENSION_KEY] = TTLCache(
        ttl_seconds=app.config.get("CATALOG_CACHE_TTL_SECONDS", 300),
        max_entries=app.config.get("CATALOG_CACHE_MAX_ENTRIES", 5000),
    )


def grant_cache() -> TTLCache:
    return current_app.extensions[_EXTENSION_KEY]


def _load_store_grants(store_code: str) -> tuple[GrantSnapshot, ...]:
    rows = (
        db.session.query(UserProductAssignment)
        .join(User, User.id == UserProductAssignment.user_id)
        .filter(
            UserProductAssignment.store_code == store_code,
            UserProductAssignment.is_active.is_(True),
            User.is_active.is_(True),
        )
        .order_by(UserProductAssignment.assigned_at.desc(), UserProductAssignment.id.desc())
        .all()
    )
    snapshots = []
    for row in rows:
        grant_type = AssignmentType(row.assignment_type)
        snapshots.append(
            GrantSnapshot(
                id=row.id,
                user_id=row.user_id,
                assignment_type=grant_type,
                path=tuple(getattr(row, name) for name in grant_type.scope_fields),
                assigned_at=row.assigned_at,
                label=row.scope_label(),
            )
        )
    return tuple(snapshots)


def store_grants(store_code: str) -> tuple[GrantSnapshot, ...]:
    return grant_cache().get_or_load(StoreGrantsKey(store_code), lambda: _load_store_grants(store_code))


def invalidate_store(store_code: str) -> None:
    """
    Drop the store's snapshot now and again after the grant change commits.

    A reader that reloads between the two still sees the committed (old)
    grants; the second invalidation removes what it cached.
    """
    cache = grant_cache()
    key = StoreGrantsKey(store_code)
    cache.invalidate(key)
    call_after_commit(lambda: cache.invalidate(key))


def resolve_assignee(store_code: str, taxonomy: Any) -> Resolution | None:
    """
    Pick the responsible user for a product taxonomy in a store.

    Args:
        store_code: Store whose grants are evaluated
        taxonomy: Object or mapping exposing division_code, category_code,
            group_code and subgroup_code

    Returns:
        Resolution for the most specific matching grant, or None when no
        active grant of an active user covers the product.
    """
    grants = store_grants(store_code)
    for level in AssignmentType.by_specificity():
        # grants are pre-sorted newest first, so the first hit wins the tie
        for grant in grants:
            if grant.assignment_type == level and grant.matches(taxonomy):
                return Resolution(
                    user_id=grant.user_id,
                    assignment_id=grant.id,
                    assignment_type=level,
                    assignment_info=grant.label,
                )
    return None


def resolve_for_product(store_code: str, product_code: str) -> Resolution | None:
    """Resolve through the catalog's taxonomy for product_code; Dependency error if unknown."""
    info = require_product(normalize_code(product_code))
    return resolve_assignee(store_code, info)


def _active_user(user_id: int) -> User:
    user = db.session.get(User, user_id)
    if user is None or not user.is_active:
        raise NotFoundError(f"User {user_id} not found or inactive", user_id=user_id)
    return user


def _active_store(store_code: str) -> Store:
    store = db.session.query(Store).filter_by(code=store_code).first()
    if store is None or not store.is_active:
        raise NotFoundError(f"Store {store_code} not found", store_code=store_code)
    return store


def _scope_values(assignment_type: AssignmentType, scope: Mapping[str, Any] | None) -> dict[str, str | None]:
    """Codes (and names) for the grant's level and every ancestor; deeper levels are cleared."""
    scope = scope or {}
    values: dict[str, str | None] = {}
    for code_field, name_field in _NAME_FIELDS.items():
        values[code_field] = None
        values[name_field] = None

    for code_field in assignment_type.scope_fields:
        code = normalize_code(scope.get(code_field))
        if not code:
            raise ValidationError(
                f"{code_field} is required for a {assignment_type.value} assignment",
                field=code_field,
            )
        values[code_field] = code
        name_field = _NAME_FIELDS[code_field]
        name = scope.get(name_field)
        values[name_field] = str(name).strip() if name else None
    return values


def _scope_text(grant: UserProductAssignment | None) -> str | None:
    if grant is None:
        return None
    path = "/".join(getattr(grant, name) or "" for name in AssignmentType(grant.assignment_type).scope_fields)
    return f"{grant.assignment_type}:{path}"


@operation
def create_grant(
    user_id: int,
    store_code: str,
    assignment_type,
    scope: Mapping[str, Any] | None,
    actor_id: int,
) -> UserProductAssignment:
    """
    Grant user_id responsibility over a taxonomy scope in a store.

    The user's previous active grant of the same type in the store (if any)
    is deactivated, never deleted.

    Raises:
        ValidationError: unknown type, or a scope code missing for the level
            or one of its ancestors
        NotFoundError: user inactive/missing, store missing
        ConflictError: the user's profile cannot hold this level
    """
    grant_type = parse_enum(AssignmentType, assignment_type, "assignment_type")
    store_code = normalize_code(store_code)
    if not store_code:
        raise ValidationError("store_code is required", field="store_code")
    values = _scope_values(grant_type, scope)

    user = _active_user(user_id)
    _active_store(store_code)
    profile = parse_profile(user.profile)
    if not can_hold_grant(profile, grant_type):
        raise ConflictError(
            f"Profile {profile.value} cannot hold {grant_type.value} assignments",
            profile=profile.value,
        )

    now = utcnow()
    previous = (
        db.session.query(UserProductAssignment)
        .filter_by(user_id=user.id, store_code=store_code, assignment_type=grant_type.value, is_active=True)
        .order_by(UserProductAssignment.id.desc())
        .all()
    )
    for old in previous:
        old.is_active = False
        old.deactivated_by_id = actor_id
        old.deactivated_at = now
        audit_service.append_assignment_history(
            assignment_id=old.id,
            target_user_id=old.user_id,
            store_code=store_code,
            user_id=actor_id,
            action=AssignmentAction.DEACTIVATED,
            old_value=_scope_text(old),
            comment="Replaced by a new assignment",
        )

    grant = UserProductAssignment(
        user_id=user.id,
        store_code=store_code,
        assignment_type=grant_type.value,
        assigned_by_id=actor_id,
        assigned_at=now,
        is_active=True,
        **values,
    )
    db.session.add(grant)
    db.session.flush()

    audit_service.append_assignment_history(
        assignment_id=grant.id,
        target_user_id=user.id,
        store_code=store_code,
        user_id=actor_id,
        action=AssignmentAction.GRANTED,
        old_value=_scope_text(previous[0]) if previous else None,
        new_value=_scope_text(grant),
    )
    invalidate_store(store_code)
    logger.info("Granted %s to user %s in %s", grant.scope_label(), user.id, store_code)
    return grant


@operation
def remove_grant(assignment_id: int, actor_id: int) -> UserProductAssignment:
    grant = db.session.get(UserProductAssignment, assignment_id)
    if grant is None or not grant.is_active:
        raise NotFoundError(f"Assignment {assignment_id} not found or already inactive")

    grant.is_active = False
    grant.deactivated_by_id = actor_id
    grant.deactivated_at = utcnow()
    audit_service.append_assignment_history(
        assignment_id=grant.id,
        target_user_id=grant.user_id,
        store_code=grant.store_code,
        user_id=actor_id,
        action=AssignmentAction.REVOKED,
        old_value=_scope_text(grant),
    )
    invalidate_store(grant.store_code)
    return grant


@operation(transactional=False)
def list_grants(
    *,
    user_id: int | None = None,
    store_code: str | None = None,
    assignment_type=None,
    is_active: bool | None = True,
) -> list[UserProductAssignment]:
    query = db.session.query(UserProductAssignment)
    if user_id is not None:
        query = query.filter(UserProductAssignment.user_id == user_id)
    if store_code:
        query = query.filter(UserProductAssignment.store_code == normalize_code(store_code))
    if assignment_type:
        grant_type = parse_enum(AssignmentType, assignment_type, "assignment_type")
        query = query.filter(UserProductAssignment.assignment_type == grant_type.value)
    if is_active is not None:
        query = query.filter(UserProductAssignment.is_active.is_(is_active))
    return query.order_by(UserProductAssignment.assigned_at.desc(), UserProductAssignment.id.desc()).all()


@operation(transactional=False)
def list_store_grants(store_code: str) -> list[UserProductAssignment]:
    return list_grants.__wrapped_operation__(store_code=store_code, is_active=True)


@operation(transactional=False)
def get_product_hierarchy() -> list[HierarchyNode]:
    return get_catalog().list_hierarchy()


@operation(transactional=False)
def get_grant_history(assignment_id: int) -> list[AssignmentHistory]:
    return audit_service.get_assignment_history.__wrapped_operation__(assignment_id)


@operation(transactional=False)
def resolve_product(store_code: str, product_code: str) -> Resolution | None:
    return resolve_for_product(normalize_code(store_code), product_code)
