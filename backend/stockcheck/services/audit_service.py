# Overview: Append-only audit trail for tickets, codes, counts and grants.

"""
Writers add one history row to the caller's unit of work and flush it; they
never commit. There is no update or delete API, and the model listeners in
models/history.py reject any attempt to mutate a stored entry.

Readers return entries newest-first (created_at desc, then id desc so entries
written inside one transaction keep their order).
"""
from __future__ import annotations

from ..extensions import db
from ..models import (
    AssignmentHistory,
    CountHistory,
    InventoryCount,
    ProductRequest,
    RequestCode,
    RequestHistory,
    UserProductAssignment,
)
from ..time_utils import utcnow
from .errors import NotFoundError, operation


def _text(value) -> str | None:
    if value is None:
        return None
    if hasattr(value, "value"):
        value = value.value
    return str(value)


def append_request_history(
    *,
    request_id: int,
    user_id: int,
    action,
    code_id: int | None = None,
    product_code: str | None = None,
    old_value=None,
    new_value=None,
    comment: str | None = None,
) -> RequestHistory:
    entry = RequestHistory(
        request_id=request_id,
        code_id=code_id,
        product_code=product_code,
        user_id=user_id,
        action=_text(action),
        old_value=_text(old_value),
        new_value=_text(new_value),
        comment=comment,
        created_at=utcnow(),
    )
    db.session.add(entry)
    db.session.flush()
    return entry


def append_count_history(
    *,
    count_id: int,
    user_id: int,
    action,
    old_value=None,
    new_value=None,
    comment: str | None = None,
) -> CountHistory:
    entry = CountHistory(
        count_id=count_id,
        user_id=user_id,
        action=_text(action),
        old_value=_text(old_value),
        new_value=_text(new_value),
        comment=comment,
        created_at=utcnow(),
    )
    db.session.add(entry)
    db.session.flush()
    return entry


def append_assignment_history(
    *,
    assignment_id: int,
    target_user_id: int,
    store_code: str,
    user_id: int,
    action,
    old_value=None,
    new_value=None,
    comment: str | None = None,
) -> AssignmentHistory:
    entry = AssignmentHistory(
        assignment_id=assignment_id,
        target_user_id=target_user_id,
        store_code=store_code,
        user_id=user_id,
        action=_text(action),
        old_value=_text(old_value),
        new_value=_text(new_value),
        comment=comment,
        created_at=utcnow(),
    )
    db.session.add(entry)
    db.session.flush()
    return entry


def request_history_entries(request_id: int) -> list[RequestHistory]:
    return (
        db.session.query(RequestHistory)
        .filter_by(request_id=request_id)
        .order_by(RequestHistory.created_at.desc(), RequestHistory.id.desc())
        .all()
    )


def count_history_entries(count_id: int) -> list[CountHistory]:
    return (
        db.session.query(CountHistory)
        .filter_by(count_id=count_id)
        .order_by(CountHistory.created_at.desc(), CountHistory.id.desc())
        .all()
    )


@operation(transactional=False)
def get_request_history(request_id: int) -> list[RequestHistory]:
    if db.session.get(ProductRequest, request_id) is None:
        raise NotFoundError(f"Request {request_id} not found")
    return request_history_entries(request_id)


@operation(transactional=False)
def get_code_history(code_id: int) -> list[RequestHistory]:
    if db.session.get(RequestCode, code_id) is None:
        raise NotFoundError(f"Request code {code_id} not found")
    return (
        db.session.query(RequestHistory)
        .filter_by(code_id=code_id)
        .order_by(RequestHistory.created_at.desc(), RequestHistory.id.desc())
        .all()
    )


@operation(transactional=False)
def get_count_history(count_id: int) -> list[CountHistory]:
    if db.session.get(InventoryCount, count_id) is None:
        raise NotFoundError(f"Count {count_id} not found")
    return count_history_entries(count_id)


@operation(transactional=False)
def get_assignment_history(assignment_id: int) -> list[AssignmentHistory]:
    if db.session.get(UserProductAssignment, assignment_id) is None:
        raise NotFoundError(f"Assignment {assignment_id} not found")
    return (
        db.session.query(AssignmentHistory)
        .filter_by(assignment_id=assignment_id)
        .order_by(AssignmentHistory.created_at.desc(), AssignmentHistory.id.desc())
        .all()
    )
