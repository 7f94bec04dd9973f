# Overview: Service-layer operations for the count reconciliation engine.

"""
Physical count reconciliation.

WHY: Each ticket code is materialized into an InventoryCount seeded with the
catalog's calculated stock and unit cost. Counters register the physical
quantity; the variance (difference, signed cost, movement type) is derived by
compute_variance() and stored next to the raw figures.

LIFECYCLE:
1. EN_REVISION: materialized, waiting for / holding a physical quantity
2. DEVUELTO: sent back to the counter
3. FORENSE: escalated for investigation
4. AJUSTADO: variance accepted; the linked code completes as AJUSTADO when
   there is a difference, LISTO otherwise

DEVUELTO, FORENSE and AJUSTADO can be reopened to EN_REVISION.
"""
from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any

from flask import current_app
from sqlalchemy import func, or_

from ..extensions import db
from ..models import CountHistory, InventoryCount, ProductRequest, RequestCode
from ..models.enums import CodeFilterStatus, CountAction, CountStatus, RequestStatus
from ..time_utils import utcnow
from ..validation import (
    normalize_code,
    optional_text,
    parse_enum,
    parse_optional_bool,
    parse_optional_datetime,
    parse_optional_enum,
    parse_page,
    parse_quantity,
    require_list,
    require_text,
)
from ..variance import DIFFERENCE_EPSILON, compute_variance, quantize_amount
from . import audit_service
from .batch import BatchResult, run_batch
from .catalog_service import get_catalog, require_product
from .errors import ConflictError, NotFoundError, OperationResult, ValidationError, operation
from .request_service import Page, change_code_status, refresh_request

logger = logging.getLogger(__name__)

COMMENT_MAX_LENGTH = 500

COUNT_TRANSITIONS: dict[CountStatus, frozenset[CountStatus]] = {
    CountStatus.EN_REVISION: frozenset({CountStatus.DEVUELTO, CountStatus.FORENSE, CountStatus.AJUSTADO}),
    CountStatus.DEVUELTO: frozenset({CountStatus.EN_REVISION}),
    CountStatus.FORENSE: frozenset({CountStatus.EN_REVISION}),
    CountStatus.AJUSTADO: frozenset({CountStatus.EN_REVISION}),
}


def _quantity_text(value) -> str:
    if value is None:
        return "null"
    return format(Decimal(value).normalize(), "f")


def _get_count(count_id: int) -> InventoryCount:
    count = db.session.get(InventoryCount, count_id)
    if count is None or not count.is_active:
        raise NotFoundError(f"Count {count_id} not found")
    return count


def _ensure_request_open(count: InventoryCount) -> None:
    if not count.request.is_active:
        raise ConflictError(f"Request {count.request.ticket_number} is closed")


def _apply_variance(count: InventoryCount):
    # store inputs at column scale; the re-read row must derive the same variance
    count.calculated_stock = quantize_amount(count.calculated_stock or 0)
    count.unit_cost = quantize_amount(count.unit_cost or 0)
    if count.physical_quantity is not None:
        count.physical_quantity = quantize_amount(count.physical_quantity)
    variance = compute_variance(count.calculated_stock, count.physical_quantity, count.unit_cost)
    count.difference = variance.signed_difference
    count.total_cost = variance.total_cost
    count.movement_type = variance.movement_type.value
    return variance


@operation
def materialize_counts(request_id: int, actor_id: int) -> list[int]:
    """
    Create one count per ticket code that does not have one yet.

    Pending codes move to EN_REVISION. Re-invoking creates nothing and
    returns an empty list.

    Returns:
        list[int]: ids of the newly created counts

    Raises:
        NotFoundError: ticket missing or closed
        DependencyError: catalog unavailable or a code unknown to it (the
            whole operation is rolled back)
    """
    request = db.session.get(ProductRequest, request_id)
    if request is None or not request.is_active:
        raise NotFoundError(f"Request {request_id} not found or inactive")

    existing = {
        code_id
        for (code_id,) in db.session.query(InventoryCount.code_id).filter(InventoryCount.request_id == request.id)
    }
    catalog = get_catalog()
    now = utcnow()
    created: list[int] = []

    for code in list(request.codes):
        if code.id in existing or code.status == RequestStatus.CANCELADO.value:
            continue
        info = require_product(code.product_code)
        stock = catalog.get_stock(request.store_code, code.product_code)

        count = InventoryCount(
            request_id=request.id,
            code_id=code.id,
            store_code=request.store_code,
            product_code=code.product_code,
            barcode=info.barcode,
            description=info.description,
            division_code=info.division_code,
            category_code=info.category_code,
            calculated_stock=stock,
            physical_quantity=None,
            unit_cost=info.unit_cost,
            code_filter_status=CodeFilterStatus.PENDIENTE.value,
            status=CountStatus.EN_REVISION.value,
            is_active=True,
            created_by_id=actor_id,
            created_at=now,
            updated_by_id=actor_id,
            updated_at=now,
        )
        _apply_variance(count)
        db.session.add(count)
        db.session.flush()

        audit_service.append_count_history(
            count_id=count.id,
            user_id=actor_id,
            action=CountAction.CREATED,
            new_value=_quantity_text(count.calculated_stock),
            comment=f"Count created from {request.ticket_number}",
        )
        if code.status == RequestStatus.PENDIENTE.value:
            change_code_status(code, RequestStatus.EN_REVISION, actor_id)
        created.append(count.id)

    refresh_request(request, actor_id)
    logger.info("Materialized %s counts for %s", len(created), request.ticket_number)
    return created


@operation
def register_physical_count(count_id: int, quantity, comment: str | None, actor_id: int) -> InventoryCount:
    """
    Record the physical quantity and recompute the variance.

    Every call writes one COUNTED entry, even when the quantity is unchanged.

    Raises:
        ValidationError: quantity missing, non-numeric or negative; comment too long
        NotFoundError: count missing or inactive
        ConflictError: count is AJUSTADO (reopen first) or its ticket is closed
    """
    physical = parse_quantity(quantity)
    comment = optional_text(comment, "comment", max_length=COMMENT_MAX_LENGTH) or None

    count = _get_count(count_id)
    _ensure_request_open(count)
    if count.status == CountStatus.AJUSTADO.value:
        raise ConflictError("Adjusted counts must be reopened before recounting", count_id=count.id)

    old_quantity = count.physical_quantity
    count.physical_quantity = physical
    variance = _apply_variance(count)
    count.code_filter_status = CodeFilterStatus.CONTADO.value
    if comment:
        count.comment = comment
    count.updated_by_id = actor_id
    count.updated_at = utcnow()

    audit_service.append_count_history(
        count_id=count.id,
        user_id=actor_id,
        action=CountAction.COUNTED,
        old_value=_quantity_text(old_quantity),
        new_value=_quantity_text(physical),
        comment=comment,
    )
    logger.debug(
        "Count %s registered %s (difference %s, %s)",
        count.id, physical, variance.difference, variance.movement_type.value,
    )
    return count


@operation
def update_count_status(count_id: int, new_status, comment: str | None, actor_id: int) -> InventoryCount:
    """
    Move a count through its lifecycle; AJUSTADO completes the linked code.

    Raises:
        ValidationError: unknown status or comment too long
        NotFoundError: count missing or inactive
        ConflictError: transition not allowed, AJUSTADO without a physical
            quantity, ticket closed, or linked code cancelled
    """
    status = parse_enum(CountStatus, new_status, "status")
    comment = optional_text(comment, "comment", max_length=COMMENT_MAX_LENGTH) or None

    count = _get_count(count_id)
    _ensure_request_open(count)
    current = CountStatus(count.status)
    if status not in COUNT_TRANSITIONS[current]:
        raise ConflictError(
            f"Cannot change count from {current.value} to {status.value}",
            current=current.value,
            requested=status.value,
        )
    if status == CountStatus.AJUSTADO and count.physical_quantity is None:
        raise ConflictError("Register a physical quantity before adjusting", count_id=count.id)

    count.status = status.value
    if comment:
        count.comment = comment
    count.updated_by_id = actor_id
    count.updated_at = utcnow()

    audit_service.append_count_history(
        count_id=count.id,
        user_id=actor_id,
        action=CountAction.STATUS_CHANGED,
        old_value=current,
        new_value=status,
        comment=comment,
    )

    if status == CountStatus.AJUSTADO:
        code = count.code
        target = RequestStatus.AJUSTADO if count.variance().has_difference else RequestStatus.LISTO
        if code.status != target.value:
            change_code_status(code, target, actor_id, notes=comment, enforce_transitions=False)
    return count


@operation
def add_count_comment(count_id: int, text: str, actor_id: int) -> CountHistory:
    comment = require_text(text, "comment", max_length=COMMENT_MAX_LENGTH)
    count = _get_count(count_id)
    return audit_service.append_count_history(
        count_id=count.id,
        user_id=actor_id,
        action=CountAction.COMMENT_ADDED,
        comment=comment,
    )


@operation(transactional=False)
def batch_register_counts(items: list[dict[str, Any]], actor_id: int) -> BatchResult:
    """
    Register many physical counts; each item is its own unit of work.

    Item failures are reported per item and never abort the batch.
    """
    if not items:
        raise ValidationError("items cannot be empty", field="items")
    items = require_list(items, "items")

    def _register(item):
        if not isinstance(item, dict) or item.get("count_id") is None:
            return OperationResult.failure(ValidationError("count_id is required", field="count_id"))
        return register_physical_count(item["count_id"], item.get("quantity"), item.get("comment"), actor_id)

    return run_batch(
        items,
        _register,
        key=lambda item: item.get("count_id") if isinstance(item, dict) else None,
        ok_message="Count registered",
    )


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------

@operation(transactional=False)
def list_counts(
    *,
    request_id: int | None = None,
    store_code: str | None = None,
    status=None,
    code_filter_status=None,
    division_code: str | None = None,
    category_code: str | None = None,
    assigned_to_id: int | None = None,
    has_difference=None,
    date_from=None,
    date_to=None,
    search: str | None = None,
    is_active=True,
    page=None,
    page_size=None,
) -> Page:
    page_number, size = parse_page(
        page,
        page_size,
        default_size=current_app.config.get("DEFAULT_PAGE_SIZE", 20),
        max_size=current_app.config.get("MAX_PAGE_SIZE", 200),
    )
    status = parse_optional_enum(CountStatus, status, "status")
    filter_status = parse_optional_enum(CodeFilterStatus, code_filter_status, "code_filter_status")
    differs = parse_optional_bool(has_difference)
    active = parse_optional_bool(is_active)
    start = parse_optional_datetime(date_from, "date_from")
    end = parse_optional_datetime(date_to, "date_to")

    query = (
        db.session.query(InventoryCount)
        .join(ProductRequest, ProductRequest.id == InventoryCount.request_id)
        .join(RequestCode, RequestCode.id == InventoryCount.code_id)
    )
    if request_id is not None:
        query = query.filter(InventoryCount.request_id == request_id)
    if store_code:
        query = query.filter(InventoryCount.store_code == normalize_code(store_code))
    if status:
        query = query.filter(InventoryCount.status == status.value)
    if filter_status:
        query = query.filter(InventoryCount.code_filter_status == filter_status.value)
    if division_code:
        query = query.filter(InventoryCount.division_code == normalize_code(division_code))
    if category_code:
        query = query.filter(InventoryCount.category_code == normalize_code(category_code))
    if assigned_to_id is not None:
        query = query.filter(RequestCode.assigned_to_id == assigned_to_id)
    if differs is not None:
        # stored difference is written by compute_variance, so it agrees with the derived flag
        differing = (InventoryCount.physical_quantity.isnot(None)) & (
            func.abs(InventoryCount.difference) > float(DIFFERENCE_EPSILON)
        )
        query = query.filter(differing if differs else ~differing)
    if start:
        query = query.filter(InventoryCount.created_at >= start)
    if end:
        query = query.filter(InventoryCount.created_at <= end)
    if search and search.strip():
        term = f"%{search.strip()}%"
        query = query.filter(
            or_(
                InventoryCount.product_code.ilike(term),
                InventoryCount.barcode.ilike(term),
                InventoryCount.description.ilike(term),
                ProductRequest.ticket_number.ilike(term),
            )
        )
    if active is not None:
        query = query.filter(InventoryCount.is_active.is_(active))

    total = query.count()
    items = (
        query.order_by(InventoryCount.created_at.desc(), InventoryCount.id.desc())
        .offset((page_number - 1) * size)
        .limit(size)
        .all()
    )
    return Page(items=items, total=total, page=page_number, page_size=size)


@operation(transactional=False)
def get_count(count_id: int) -> InventoryCount:
    return _get_count(count_id)


@operation(transactional=False)
def get_count_history(count_id: int) -> list[CountHistory]:
    _get_count(count_id)
    return audit_service.count_history_entries(count_id)


@operation(transactional=False)
def get_pending_counts_by_request(request_id: int) -> list[InventoryCount]:
    if db.session.get(ProductRequest, request_id) is None:
        raise NotFoundError(f"Request {request_id} not found")
    return (
        db.session.query(InventoryCount)
        .filter(
            InventoryCount.request_id == request_id,
            InventoryCount.is_active.is_(True),
            InventoryCount.code_filter_status == CodeFilterStatus.PENDIENTE.value,
        )
        .order_by(InventoryCount.id)
        .all()
    )


@operation(transactional=False)
def get_my_assigned_counts(user_id: int, status=None) -> list[InventoryCount]:
    status = parse_optional_enum(CountStatus, status, "status")
    query = (
        db.session.query(InventoryCount)
        .join(RequestCode, RequestCode.id == InventoryCount.code_id)
        .filter(RequestCode.assigned_to_id == user_id, InventoryCount.is_active.is_(True))
    )
    if status:
        query = query.filter(InventoryCount.status == status.value)
    return query.order_by(InventoryCount.created_at.desc(), InventoryCount.id.desc()).all()
