# Overview: Service-layer operations for count request tickets and their product codes.

"""
Ticket lifecycle manager.

WHY: A requester asks for a set of product codes to be physically verified
in a store. Each code is routed to a counter by the assignment resolver and
moves through its own status lifecycle; the ticket's status and counters are
re-aggregated from its codes after every change.

CODE LIFECYCLE:
1. PENDIENTE: created, waiting for review
2. EN_REVISION: being counted
3. LISTO / AJUSTADO: done (processed_at stamped), ticket can close
4. DEVUELTO: sent back from review
5. CANCELADO: terminal, reachable from any other state

TICKET STATUS:
DEVUELTO and CANCELADO are explicit overrides set by set_ticket_status();
every other status is derived by aggregate_request_status().
"""
from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterable

from flask import current_app
from sqlalchemy import case, func, or_

from ..extensions import db
from ..models import InventoryCount, ProductRequest, RequestCode, RequestHistory, Store, User, UserProductAssignment
from ..models.enums import (
    MANUAL_ASSIGNMENT,
    READY_STATUSES,
    TICKET_OVERRIDE_STATUSES,
    AssignmentType,
    HistoryAction,
    RequestPriority,
    RequestStatus,
    UserProfile,
)
from ..time_utils import day_stamp, utcnow
from ..validation import (
    normalize_code,
    normalize_codes,
    optional_text,
    parse_enum,
    parse_int,
    parse_optional_bool,
    parse_optional_datetime,
    parse_optional_enum,
    parse_page,
    require_list,
    require_text,
)
from . import audit_service
from .assignment_service import resolve_assignee
from .batch import BatchResult, run_batch
from .catalog_service import get_catalog
from .errors import ConflictError, NotFoundError, OperationResult, ValidationError, operation

logger = logging.getLogger(__name__)

TICKET_PREFIX = "REQ"
TICKET_SEQUENCE_PAD = 4

DESCRIPTION_MAX_LENGTH = 1000
NOTES_MAX_LENGTH = 500
COMMENT_MAX_LENGTH = 1000

# Profiles listed in a store's counting team.
TEAM_PROFILES = (UserProfile.LIDER, UserProfile.INVENTARIO, UserProfile.GERENTE_TIENDA)

# Allowed code transitions; CANCELADO is reachable from every non-terminal state.
CODE_TRANSITIONS: dict[RequestStatus, frozenset[RequestStatus]] = {
    RequestStatus.PENDIENTE: frozenset({RequestStatus.EN_REVISION, RequestStatus.CANCELADO}),
    RequestStatus.EN_REVISION: frozenset(
        {RequestStatus.LISTO, RequestStatus.AJUSTADO, RequestStatus.DEVUELTO, RequestStatus.CANCELADO}
    ),
    RequestStatus.LISTO: frozenset({RequestStatus.CANCELADO}),
    RequestStatus.AJUSTADO: frozenset({RequestStatus.CANCELADO}),
    RequestStatus.DEVUELTO: frozenset({RequestStatus.CANCELADO}),
    RequestStatus.CANCELADO: frozenset(),
}


@dataclass(frozen=True)
class RequestStats:
    total: int
    pending: int
    in_review: int
    ready: int
    adjusted: int
    returned: int
    cancelled: int
    completion_percentage: float
    days_open: int
    is_overdue: bool

    def to_dict(self) -> dict:
        return {
            "total": self.total,
            "pending": self.pending,
            "in_review": self.in_review,
            "ready": self.ready,
            "adjusted": self.adjusted,
            "returned": self.returned,
            "cancelled": self.cancelled,
            "completion_percentage": self.completion_percentage,
            "days_open": self.days_open,
            "is_overdue": self.is_overdue,
        }


@dataclass(frozen=True)
class TicketDetail:
    request: ProductRequest
    stats: RequestStats

    def to_dict(self) -> dict:
        data = self.request.to_dict(include_codes=True)
        data["stats"] = self.stats.to_dict()
        return data


@dataclass(frozen=True)
class TeamMember:
    user: User
    assigned_codes: int
    pending_codes: int
    division_codes: tuple[str, ...]

    def to_dict(self) -> dict:
        data = self.user.to_dict()
        data["assigned_codes"] = self.assigned_codes
        data["pending_codes"] = self.pending_codes
        data["division_codes"] = list(self.division_codes)
        return data


@dataclass(frozen=True)
class Page:
    items: list
    total: int
    page: int
    page_size: int

    @property
    def pages(self) -> int:
        return (self.total + self.page_size - 1) // self.page_size if self.total else 0

    def to_dict(self, serialize=None) -> dict:
        serialize = serialize or (lambda item: item.to_dict())
        return {
            "items": [serialize(item) for item in self.items],
            "total": self.total,
            "page": self.page,
            "page_size": self.page_size,
            "pages": self.pages,
        }


# ---------------------------------------------------------------------------
# Aggregation
# ---------------------------------------------------------------------------

def aggregate_request_status(code_statuses: Iterable[str], current: str | None = None) -> RequestStatus:
    """
    Derive a ticket's status from its codes.

    Explicit overrides (DEVUELTO, CANCELADO) stick. Cancelled codes are
    ignored; a ticket whose codes are all cancelled reads CANCELADO.
    """
    if current is not None and RequestStatus(current) in TICKET_OVERRIDE_STATUSES:
        return RequestStatus(current)

    statuses = [RequestStatus(s) for s in code_statuses if RequestStatus(s) != RequestStatus.CANCELADO]
    if not statuses:
        return RequestStatus.CANCELADO if current is not None else RequestStatus.PENDIENTE
    if RequestStatus.PENDIENTE in statuses:
        return RequestStatus.PENDIENTE
    if RequestStatus.EN_REVISION in statuses or RequestStatus.DEVUELTO in statuses:
        return RequestStatus.EN_REVISION
    if RequestStatus.AJUSTADO in statuses:
        return RequestStatus.AJUSTADO
    return RequestStatus.LISTO


def refresh_request(request: ProductRequest, actor_id: int | None = None) -> ProductRequest:
    """Recompute counters and derived status in the current unit of work."""
    db.session.flush()
    statuses = [code.status for code in request.codes]
    request.completed_codes = sum(1 for s in statuses if RequestStatus(s) in READY_STATUSES)
    request.pending_codes = sum(
        1 for s in statuses if RequestStatus(s) not in READY_STATUSES and s != RequestStatus.CANCELADO.value
    )
    request.status = aggregate_request_status(statuses, request.status).value
    request.updated_at = utcnow()
    if actor_id is not None:
        request.updated_by_user_id = actor_id
    return request


def request_stats(request: ProductRequest, now: datetime | None = None) -> RequestStats:
    now = now or utcnow()
    statuses = [RequestStatus(code.status) for code in request.codes]
    total = len(statuses)
    ready = statuses.count(RequestStatus.LISTO)
    adjusted = statuses.count(RequestStatus.AJUSTADO)
    completed_at = request.completed_at or now
    is_open = request.is_active and request.status not in (
        RequestStatus.LISTO.value,
        RequestStatus.AJUSTADO.value,
        RequestStatus.CANCELADO.value,
    )
    return RequestStats(
        total=total,
        pending=statuses.count(RequestStatus.PENDIENTE),
        in_review=statuses.count(RequestStatus.EN_REVISION),
        ready=ready,
        adjusted=adjusted,
        returned=statuses.count(RequestStatus.DEVUELTO),
        cancelled=statuses.count(RequestStatus.CANCELADO),
        completion_percentage=round((ready + adjusted) * 100.0 / total, 2) if total else 0.0,
        days_open=max((completed_at - request.created_at).days, 0),
        is_overdue=bool(is_open and request.due_date and request.due_date < now),
    )


# ---------------------------------------------------------------------------
# Internal helpers (run inside the caller's unit of work)
# ---------------------------------------------------------------------------

def next_ticket_number(now: datetime | None = None) -> str:
    """
    Allocate the next REQ-YYYYMMDD-NNNN number for the current day.

    Reads the day's highest sequence and increments it. The unique index on
    ticket_number rejects a concurrent duplicate. Past 9999 the sequence grows
    a digit, so numbers are ordered by length before text.
    """
    prefix = f"{TICKET_PREFIX}-{day_stamp(now or utcnow())}-"
    last = (
        db.session.query(ProductRequest.ticket_number)
        .filter(ProductRequest.ticket_number.like(f"{prefix}%"))
        .order_by(func.length(ProductRequest.ticket_number).desc(), ProductRequest.ticket_number.desc())
        .limit(1)
        .scalar()
    )
    sequence = 1
    if last:
        tail = last[len(prefix):]
        if tail.isdigit():
            sequence = int(tail) + 1
    return f"{prefix}{str(sequence).zfill(TICKET_SEQUENCE_PAD)}"


def _get_request(request_id: int) -> ProductRequest:
    request = db.session.get(ProductRequest, request_id)
    if request is None:
        raise NotFoundError(f"Request {request_id} not found")
    return request


def _get_open_request(request_id: int) -> ProductRequest:
    request = _get_request(request_id)
    if not request.is_active:
        raise ConflictError(f"Request {request.ticket_number} is closed")
    return request


def _get_code(code_id: int) -> RequestCode:
    code = db.session.get(RequestCode, code_id)
    if code is None:
        raise NotFoundError(f"Request code {code_id} not found")
    return code


def _get_active_user(user_id: int) -> User:
    user = db.session.get(User, user_id)
    if user is None or not user.is_active:
        raise NotFoundError(f"User {user_id} not found or inactive", user_id=user_id)
    return user


def _auto_assign(code: RequestCode, store_code: str) -> bool:
    """Run the resolver for one code; unknown catalog codes stay unassigned."""
    info = get_catalog().get_product(code.product_code)
    if info is None:
        logger.warning("Product %s not in catalog; left unassigned", code.product_code)
        return False
    resolution = resolve_assignee(store_code, info)
    if resolution is None:
        return False
    code.assigned_to_id = resolution.user_id
    code.assignment_type = resolution.assignment_type.value
    code.assignment_info = resolution.assignment_info
    return True


def change_code_status(
    code: RequestCode,
    new_status: RequestStatus,
    actor_id: int,
    *,
    notes: str | None = None,
    enforce_transitions: bool = True,
) -> RequestCode:
    """
    Move a code to new_status, write STATUS_CHANGED and re-aggregate its ticket.

    enforce_transitions=False is used by the count engine cascade, which may
    complete a code that is not in review; CANCELADO stays terminal either way.
    """
    current = RequestStatus(code.status)
    if current == RequestStatus.CANCELADO:
        raise ConflictError(f"Code {code.product_code} is cancelled")
    if enforce_transitions and new_status not in CODE_TRANSITIONS[current]:
        raise ConflictError(
            f"Cannot change code {code.product_code} from {current.value} to {new_status.value}",
            current=current.value,
            requested=new_status.value,
        )

    now = utcnow()
    code.status = new_status.value
    if notes:
        code.notes = notes
    if new_status in READY_STATUSES:
        code.processed_at = now
    code.updated_at = now

    comment = f"{code.product_code}: {notes}" if notes else code.product_code
    audit_service.append_request_history(
        request_id=code.request_id,
        code_id=code.id,
        product_code=code.product_code,
        user_id=actor_id,
        action=HistoryAction.STATUS_CHANGED,
        old_value=current,
        new_value=new_status,
        comment=comment,
    )
    refresh_request(code.request, actor_id)
    return code


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

@operation
def create_ticket(
    requester_id: int,
    store_code: str,
    codes: list[str],
    priority=RequestPriority.NORMAL,
    description: str | None = None,
    due_date=None,
) -> ProductRequest:
    """
    Create a ticket with one code per distinct normalized product code.

    Args:
        requester_id: User opening the ticket
        store_code: Store where the codes are counted
        codes: Product codes; trimmed, upper-cased, blanks and duplicates dropped
        priority: BAJA, NORMAL, ALTA or URGENTE
        description: Optional, up to 1000 characters
        due_date: Optional datetime or ISO-8601 string

    Returns:
        ProductRequest: the created ticket (codes auto-assigned where a grant matches)

    Raises:
        ValidationError: no codes left after normalization, bad priority,
            description too long
        NotFoundError: requester or store missing
    """
    normalized = normalize_codes(codes)
    if not normalized:
        raise ValidationError("At least one product code is required", field="codes")
    request_priority = parse_enum(RequestPriority, priority or RequestPriority.NORMAL, "priority")
    text = optional_text(description, "description", max_length=DESCRIPTION_MAX_LENGTH)
    due = parse_optional_datetime(due_date, "due_date")
    store_code = normalize_code(store_code)
    if not store_code:
        raise ValidationError("store_code is required", field="store_code")

    _get_active_user(requester_id)
    store = db.session.query(Store).filter_by(code=store_code).first()
    if store is None or not store.is_active:
        raise NotFoundError(f"Store {store_code} not found", store_code=store_code)

    now = utcnow()
    request = ProductRequest(
        ticket_number=next_ticket_number(now),
        requester_id=requester_id,
        store_code=store_code,
        status=RequestStatus.PENDIENTE.value,
        priority=request_priority.value,
        description=text,
        due_date=due,
        total_codes=len(normalized),
        completed_codes=0,
        pending_codes=len(normalized),
        is_active=True,
        created_at=now,
        updated_at=now,
        updated_by_user_id=requester_id,
    )
    db.session.add(request)
    db.session.flush()

    assigned = 0
    for product_code in normalized:
        code = RequestCode(
            request_id=request.id,
            product_code=product_code,
            status=RequestStatus.PENDIENTE.value,
            created_at=now,
            updated_at=now,
        )
        if _auto_assign(code, store_code):
            assigned += 1
        db.session.add(code)
    db.session.flush()

    audit_service.append_request_history(
        request_id=request.id,
        user_id=requester_id,
        action=HistoryAction.CREATED,
        new_value=RequestStatus.PENDIENTE,
        comment=f"{len(normalized)} codes, {assigned} auto-assigned",
    )
    logger.info("Created %s with %s codes (%s assigned)", request.ticket_number, len(normalized), assigned)
    return request


@operation(transactional=False)
def bulk_create_tickets(items: list[dict[str, Any]], requester_id: int) -> BatchResult:
    """Create one ticket per item; each item commits or fails on its own."""
    if not items:
        raise ValidationError("items cannot be empty", field="items")
    items = require_list(items, "items")

    def _create(item):
        if not isinstance(item, dict):
            return OperationResult.failure(ValidationError("Each item must be an object"))
        return create_ticket(
            requester_id,
            item.get("store_code"),
            item.get("codes"),
            priority=item.get("priority") or RequestPriority.NORMAL,
            description=item.get("description"),
            due_date=item.get("due_date"),
        )

    return run_batch(items, _create, ok_message="Request created")


@operation
def update_code_status(code_id: int, new_status, notes: str | None, actor_id: int) -> RequestCode:
    """
    Raises:
        ValidationError: unknown status or notes too long
        NotFoundError: code missing
        ConflictError: transition not allowed or ticket closed
    """
    status = parse_enum(RequestStatus, new_status, "status")
    notes = optional_text(notes, "notes", max_length=NOTES_MAX_LENGTH) or None
    code = _get_code(code_id)
    if not code.request.is_active:
        raise ConflictError(f"Request {code.request.ticket_number} is closed")
    return change_code_status(code, status, actor_id, notes=notes)


@operation
def assign_code(code_id: int, user_id: int, notes: str | None, actor_id: int) -> RequestCode:
    """
    Manual override of a code's assignee.

    Raises:
        NotFoundError: code or user missing
        ConflictError: ticket closed or code cancelled
    """
    notes = optional_text(notes, "notes", max_length=NOTES_MAX_LENGTH) or None
    code = _get_code(code_id)
    if not code.request.is_active:
        raise ConflictError(f"Request {code.request.ticket_number} is closed")
    if code.status == RequestStatus.CANCELADO.value:
        raise ConflictError(f"Code {code.product_code} is cancelled")
    user = _get_active_user(user_id)

    previous = code.assigned_to.username if code.assigned_to else None
    code.assigned_to_id = user.id
    code.assignment_type = MANUAL_ASSIGNMENT
    code.assignment_info = f"{MANUAL_ASSIGNMENT} - {user.full_name or user.username}"
    if notes:
        code.notes = notes
    code.updated_at = utcnow()

    audit_service.append_request_history(
        request_id=code.request_id,
        code_id=code.id,
        product_code=code.product_code,
        user_id=actor_id,
        action=HistoryAction.ASSIGNED,
        old_value=previous,
        new_value=user.username,
        comment=notes,
    )
    code.request.updated_at = code.updated_at
    code.request.updated_by_user_id = actor_id
    return code


@operation(transactional=False)
def bulk_assign_codes(code_ids: list[int], user_id: int, notes: str | None, actor_id: int) -> BatchResult:
    if not code_ids:
        raise ValidationError("code_ids cannot be empty", field="code_ids")
    code_ids = require_list(code_ids, "code_ids")
    return run_batch(
        code_ids,
        lambda code_id: assign_code(code_id, user_id, notes, actor_id),
        key=lambda code_id: code_id,
        ok_message="Code assigned",
    )


@operation(transactional=False)
def bulk_update_code_status(code_ids: list[int], new_status, notes: str | None, actor_id: int) -> BatchResult:
    if not code_ids:
        raise ValidationError("code_ids cannot be empty", field="code_ids")
    code_ids = require_list(code_ids, "code_ids")
    return run_batch(
        code_ids,
        lambda code_id: update_code_status(code_id, new_status, notes, actor_id),
        key=lambda code_id: code_id,
        ok_message="Status updated",
    )


@operation
def reassign_unassigned_codes(request_id: int, actor_id: int) -> list[RequestCode]:
    """Re-run the resolver for the ticket's unassigned, non-cancelled codes (AUTO_ASSIGNED entries)."""
    request = _get_open_request(request_id)
    assigned = []
    for code in request.codes:
        if code.assigned_to_id is not None or code.status == RequestStatus.CANCELADO.value:
            continue
        if _auto_assign(code, request.store_code):
            code.updated_at = utcnow()
            audit_service.append_request_history(
                request_id=request.id,
                code_id=code.id,
                product_code=code.product_code,
                user_id=actor_id,
                action=HistoryAction.AUTO_ASSIGNED,
                new_value=code.assigned_to_id,
                comment=code.assignment_info,
            )
            assigned.append(code)
    return assigned


@operation
def add_comment(request_id: int, code_id: int | None, text: str, actor_id: int) -> RequestHistory:
    comment = require_text(text, "comment", max_length=COMMENT_MAX_LENGTH)
    request = _get_request(request_id)
    code = None
    if code_id is not None:
        code = db.session.query(RequestCode).filter_by(id=code_id, request_id=request.id).first()
        if code is None:
            raise NotFoundError(f"Code {code_id} not found in request {request.ticket_number}")
    return audit_service.append_request_history(
        request_id=request.id,
        code_id=code.id if code else None,
        product_code=code.product_code if code else None,
        user_id=actor_id,
        action=HistoryAction.COMMENT,
        comment=comment,
    )


@operation
def close_ticket(request_id: int, actor_id: int) -> ProductRequest:
    """
    Complete a ticket whose codes are all LISTO or AJUSTADO (cancelled codes ignored).

    Raises:
        NotFoundError: ticket missing
        ConflictError: ticket already closed, or any code still open
    """
    request = _get_open_request(request_id)
    live = [code for code in request.codes if code.status != RequestStatus.CANCELADO.value]
    open_codes = [code.product_code for code in live if RequestStatus(code.status) not in READY_STATUSES]
    if not live or open_codes:
        raise ConflictError(
            "All codes must be LISTO or AJUSTADO before closing",
            open_codes=open_codes,
        )

    old_status = request.status
    final = aggregate_request_status([code.status for code in live])
    now = utcnow()
    request.status = final.value
    request.completed_codes = len(live)
    request.pending_codes = 0
    request.completed_at = now
    request.is_active = False
    request.updated_at = now
    request.updated_by_user_id = actor_id

    audit_service.append_request_history(
        request_id=request.id,
        user_id=actor_id,
        action=HistoryAction.COMPLETED,
        old_value=old_status,
        new_value=final,
    )
    logger.info("Closed %s as %s", request.ticket_number, final.value)
    return request


@operation
def set_ticket_status(request_id: int, new_status, comment: str | None, actor_id: int) -> ProductRequest:
    """Apply an explicit ticket-level override; only DEVUELTO and CANCELADO are accepted."""
    status = parse_enum(RequestStatus, new_status, "status")
    comment = optional_text(comment, "comment", max_length=COMMENT_MAX_LENGTH) or None
    if status not in TICKET_OVERRIDE_STATUSES:
        raise ConflictError(f"Ticket status cannot be set to {status.value} directly")
    request = _get_open_request(request_id)
    if request.status == status.value:
        raise ConflictError(f"Request {request.ticket_number} is already {status.value}")

    old_status = request.status
    now = utcnow()
    request.status = status.value
    request.updated_at = now
    request.updated_by_user_id = actor_id
    if status == RequestStatus.CANCELADO:
        request.is_active = False

    audit_service.append_request_history(
        request_id=request.id,
        user_id=actor_id,
        action=HistoryAction.STATUS_CHANGED,
        old_value=old_status,
        new_value=status,
        comment=comment,
    )
    return request


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------

def _page_settings() -> tuple[int, int]:
    return current_app.config.get("DEFAULT_PAGE_SIZE", 20), current_app.config.get("MAX_PAGE_SIZE", 200)


@operation(transactional=False)
def list_tickets(
    *,
    store_code: str | None = None,
    status=None,
    priority=None,
    requester_id: int | None = None,
    assigned_to_id: int | None = None,
    date_from=None,
    date_to=None,
    division_codes=None,
    search: str | None = None,
    is_active=None,
    page=None,
    page_size=None,
) -> Page:
    """
    Page through tickets, newest first.

    division_codes keeps tickets with at least one count in any of the given
    divisions.
    """
    default_size, max_size = _page_settings()
    page_number, size = parse_page(page, page_size, default_size=default_size, max_size=max_size)
    status = parse_optional_enum(RequestStatus, status, "status")
    priority = parse_optional_enum(RequestPriority, priority, "priority")
    start = parse_optional_datetime(date_from, "date_from")
    end = parse_optional_datetime(date_to, "date_to")
    divisions = []
    if division_codes is not None:
        divisions = [code for code in map(normalize_code, require_list(division_codes, "division_codes")) if code]
    active = parse_optional_bool(is_active)

    query = db.session.query(ProductRequest).join(User, User.id == ProductRequest.requester_id)
    if store_code:
        query = query.filter(ProductRequest.store_code == normalize_code(store_code))
    if status:
        query = query.filter(ProductRequest.status == status.value)
    if priority:
        query = query.filter(ProductRequest.priority == priority.value)
    if requester_id is not None:
        query = query.filter(ProductRequest.requester_id == requester_id)
    if assigned_to_id is not None:
        assigned = (
            db.session.query(RequestCode.id)
            .filter(RequestCode.request_id == ProductRequest.id, RequestCode.assigned_to_id == assigned_to_id)
            .exists()
        )
        query = query.filter(assigned)
    if divisions:
        counted = (
            db.session.query(InventoryCount.id)
            .filter(InventoryCount.request_id == ProductRequest.id, InventoryCount.division_code.in_(divisions))
            .exists()
        )
        query = query.filter(counted)
    if start:
        query = query.filter(ProductRequest.created_at >= start)
    if end:
        query = query.filter(ProductRequest.created_at <= end)
    if search and search.strip():
        term = f"%{search.strip()}%"
        query = query.filter(
            or_(
                ProductRequest.ticket_number.ilike(term),
                ProductRequest.description.ilike(term),
                User.username.ilike(term),
            )
        )
    if active is not None:
        query = query.filter(ProductRequest.is_active.is_(active))

    total = query.count()
    items = (
        query.order_by(ProductRequest.created_at.desc(), ProductRequest.id.desc())
        .offset((page_number - 1) * size)
        .limit(size)
        .all()
    )
    return Page(items=items, total=total, page=page_number, page_size=size)


@operation(transactional=False)
def get_ticket(request_id: int) -> TicketDetail:
    request = _get_request(request_id)
    return TicketDetail(request=request, stats=request_stats(request))


@operation(transactional=False)
def get_ticket_by_number(ticket_number: str) -> TicketDetail:
    number = normalize_code(ticket_number)
    request = db.session.query(ProductRequest).filter_by(ticket_number=number).first()
    if request is None:
        raise NotFoundError(f"Request {number} not found")
    return TicketDetail(request=request, stats=request_stats(request))


@operation(transactional=False)
def get_my_assigned_codes(user_id: int, status=None) -> list[RequestCode]:
    status = parse_optional_enum(RequestStatus, status, "status")
    query = (
        db.session.query(RequestCode)
        .join(ProductRequest, ProductRequest.id == RequestCode.request_id)
        .filter(RequestCode.assigned_to_id == user_id, ProductRequest.is_active.is_(True))
    )
    if status:
        query = query.filter(RequestCode.status == status.value)
    return query.order_by(ProductRequest.created_at.desc(), RequestCode.id).all()


@operation(transactional=False)
def list_unassigned_codes(store_code: str | None = None) -> list[RequestCode]:
    query = (
        db.session.query(RequestCode)
        .join(ProductRequest, ProductRequest.id == RequestCode.request_id)
        .filter(
            RequestCode.assigned_to_id.is_(None),
            RequestCode.status != RequestStatus.CANCELADO.value,
            ProductRequest.is_active.is_(True),
        )
    )
    if store_code:
        query = query.filter(ProductRequest.store_code == normalize_code(store_code))
    return query.order_by(ProductRequest.created_at, RequestCode.id).all()


@operation(transactional=False)
def get_ticket_history(request_id: int) -> list[RequestHistory]:
    _get_request(request_id)
    return audit_service.request_history_entries(request_id)


@operation(transactional=False)
def get_recent_activity(limit: int = 20, store_code: str | None = None) -> list[dict]:
    limit = max(1, min(parse_int(limit, "limit"), 200))
    query = db.session.query(RequestHistory, ProductRequest).join(
        ProductRequest, ProductRequest.id == RequestHistory.request_id
    )
    if store_code:
        query = query.filter(ProductRequest.store_code == normalize_code(store_code))
    rows = query.order_by(RequestHistory.created_at.desc(), RequestHistory.id.desc()).limit(limit).all()
    return [
        {
            **entry.to_dict(),
            "ticket_number": request.ticket_number,
            "store_code": request.store_code,
        }
        for entry, request in rows
    ]


@operation(transactional=False)
def get_store_team(store_code: str) -> list[TeamMember]:
    """
    Active leaders, counters and store managers of a store with their code load.

    pending_codes counts assigned codes still PENDIENTE; division_codes are the
    member's active DIVISION grants in the store.
    """
    store_code = normalize_code(store_code)
    if not store_code:
        raise ValidationError("store_code is required", field="store_code")
    store = db.session.query(Store).filter_by(code=store_code).first()
    if store is None:
        raise NotFoundError(f"Store {store_code} not found", store_code=store_code)

    pending = func.coalesce(func.sum(case((RequestCode.status == RequestStatus.PENDIENTE.value, 1), else_=0)), 0)
    rows = (
        db.session.query(User, func.count(RequestCode.id), pending)
        .outerjoin(RequestCode, RequestCode.assigned_to_id == User.id)
        .filter(
            User.store_code == store_code,
            User.is_active.is_(True),
            User.profile.in_([profile.value for profile in TEAM_PROFILES]),
        )
        .group_by(User.id)
        .order_by(User.profile, User.full_name, User.id)
        .all()
    )

    divisions: dict[int, list[str]] = defaultdict(list)
    grants = (
        db.session.query(UserProductAssignment.user_id, UserProductAssignment.division_code)
        .filter(
            UserProductAssignment.store_code == store_code,
            UserProductAssignment.assignment_type == AssignmentType.DIVISION.value,
            UserProductAssignment.is_active.is_(True),
        )
        .order_by(UserProductAssignment.division_code)
    )
    for user_id, division_code in grants:
        divisions[user_id].append(division_code)

    return [
        TeamMember(
            user=user,
            assigned_codes=int(assigned),
            pending_codes=int(pending_count),
            division_codes=tuple(divisions[user.id]),
        )
        for user, assigned, pending_count in rows
    ]
