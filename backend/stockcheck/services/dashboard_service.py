# Overview: Read-only rollups over tickets and counts for the dashboards.

from __future__ import annotations

from collections import Counter, defaultdict
from dataclasses import asdict, dataclass
from datetime import datetime
from decimal import Decimal

from sqlalchemy import case, func

from ..extensions import db
from ..models import InventoryCount, ProductRequest, RequestCode
from ..models.enums import CodeFilterStatus, CountStatus, MovementType, RequestStatus
from ..time_utils import to_utc_z, utcnow
from ..validation import normalize_code
from ..variance import compute_variance
from .errors import operation

RECENT_REQUESTS_LIMIT = 10

_ZERO = Decimal("0")
_OPEN_STATUSES = (RequestStatus.PENDIENTE.value, RequestStatus.EN_REVISION.value, RequestStatus.DEVUELTO.value)


def _jsonable(value):
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, datetime):
        return to_utc_z(value)
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return value


class _Rollup:
    def to_dict(self) -> dict:
        return _jsonable(asdict(self))


def _percentage(part: int, whole: int) -> float:
    return round(part * 100.0 / whole, 2) if whole else 0.0


@dataclass(frozen=True)
class StoreRequestStats(_Rollup):
    store_code: str
    total: int
    open: int
    completed: int
    overdue: int


@dataclass(frozen=True)
class StatusStats(_Rollup):
    status: str
    count: int
    percentage: float


@dataclass(frozen=True)
class RecentRequest(_Rollup):
    id: int
    ticket_number: str
    store_code: str
    status: str
    priority: str
    total_codes: int
    completed_codes: int
    created_at: datetime


@dataclass(frozen=True)
class RequestDashboard(_Rollup):
    total_requests: int
    pending_requests: int
    in_review_requests: int
    ready_requests: int
    adjusted_requests: int
    returned_requests: int
    cancelled_requests: int
    overdue_requests: int
    my_assigned_codes: int
    my_pending_codes: int
    by_store: tuple[StoreRequestStats, ...]
    by_status: tuple[StatusStats, ...]
    recent_requests: tuple[RecentRequest, ...]


@dataclass(frozen=True)
class StoreCountStats(_Rollup):
    store_code: str
    total: int
    counted: int
    with_difference: int
    total_cost: Decimal
    completion_percentage: float


@dataclass(frozen=True)
class DivisionCountStats(_Rollup):
    division_code: str | None
    total: int
    with_difference: int
    total_cost: Decimal


@dataclass(frozen=True)
class CountStatusStats(_Rollup):
    status: str
    count: int
    percentage: float


@dataclass(frozen=True)
class MovementTypeStats(_Rollup):
    movement_type: str
    count: int
    total_cost: Decimal


@dataclass(frozen=True)
class CountDashboard(_Rollup):
    total_counts: int
    in_review: int
    returned: int
    forensic: int
    adjusted: int
    uncounted: int
    counted: int
    with_difference: int
    without_difference: int
    total_variance_cost: Decimal
    positive_cost: Decimal
    negative_cost: Decimal
    by_store: tuple[StoreCountStats, ...]
    by_division: tuple[DivisionCountStats, ...]
    by_status: tuple[CountStatusStats, ...]
    by_movement_type: tuple[MovementTypeStats, ...]



def _tally(condition):
    """SUM of a boolean condition, 0 on an empty group."""
    return func.coalesce(func.sum(case((condition, 1), else_=0)), 0)


def _status_counts(column, query) -> Counter:
    return Counter({status: int(n) for status, n in query.group_by(column).all()})


@operation(transactional=False)
def get_request_dashboard(user_id: int, store_code: str | None = None) -> RequestDashboard:
    now = utcnow()
    store = normalize_code(store_code) if store_code else None

    def _scoped(query):
        return query.filter(ProductRequest.store_code == store) if store else query

    is_open = ProductRequest.status.in_(_OPEN_STATUSES)
    is_completed = ProductRequest.status.in_((RequestStatus.LISTO.value, RequestStatus.AJUSTADO.value))
    is_overdue = (
        ProductRequest.is_active.is_(True)
        & is_open
        & ProductRequest.due_date.isnot(None)
        & (ProductRequest.due_date < now)
    )

    status_counts = _status_counts(
        ProductRequest.status,
        _scoped(db.session.query(ProductRequest.status, func.count(ProductRequest.id))),
    )
    total = sum(status_counts.values())

    store_rows = (
        _scoped(
            db.session.query(
                ProductRequest.store_code,
                func.count(ProductRequest.id),
                _tally(is_open),
                _tally(is_completed),
                _tally(is_overdue),
            )
        )
        .group_by(ProductRequest.store_code)
        .order_by(ProductRequest.store_code)
        .all()
    )
    by_store = tuple(
        StoreRequestStats(store_code=code, total=int(n), open=int(o), completed=int(c), overdue=int(d))
        for code, n, o, c, d in store_rows
    )
    by_status = tuple(
        StatusStats(status=status.value, count=status_counts[status.value], percentage=_percentage(status_counts[status.value], total))
        for status in RequestStatus
        if status_counts[status.value]
    )

    my_pending = RequestCode.status.in_((RequestStatus.PENDIENTE.value, RequestStatus.EN_REVISION.value))
    my_assigned, my_pending_count = _scoped(
        db.session.query(func.count(RequestCode.id), _tally(my_pending))
        .join(ProductRequest, ProductRequest.id == RequestCode.request_id)
        .filter(RequestCode.assigned_to_id == user_id, ProductRequest.is_active.is_(True))
    ).one()

    recent_rows = (
        _scoped(db.session.query(ProductRequest))
        .order_by(ProductRequest.created_at.desc(), ProductRequest.id.desc())
        .limit(RECENT_REQUESTS_LIMIT)
        .all()
    )
    recent = tuple(
        RecentRequest(
            id=r.id,
            ticket_number=r.ticket_number,
            store_code=r.store_code,
            status=r.status,
            priority=r.priority,
            total_codes=r.total_codes,
            completed_codes=r.completed_codes,
            created_at=r.created_at,
        )
        for r in recent_rows
    )

    return RequestDashboard(
        total_requests=total,
        pending_requests=status_counts[RequestStatus.PENDIENTE.value],
        in_review_requests=status_counts[RequestStatus.EN_REVISION.value],
        ready_requests=status_counts[RequestStatus.LISTO.value],
        adjusted_requests=status_counts[RequestStatus.AJUSTADO.value],
        returned_requests=status_counts[RequestStatus.DEVUELTO.value],
        cancelled_requests=status_counts[RequestStatus.CANCELADO.value],
        overdue_requests=sum(s.overdue for s in by_store),
        my_assigned_codes=int(my_assigned or 0),
        my_pending_codes=int(my_pending_count or 0),
        by_store=by_store,
        by_status=by_status,
        recent_requests=recent,
    )


@operation(transactional=False)
def get_count_dashboard(store_code: str | None = None) -> CountDashboard:
    """
    Count rollups.

    Status, store and division totals are grouped in SQL. Differences and
    costs are recomputed from the raw figures with compute_variance, never
    read from the stored columns.
    """
    store = normalize_code(store_code) if store_code else None

    def _scoped(query):
        query = query.filter(InventoryCount.is_active.is_(True))
        return query.filter(InventoryCount.store_code == store) if store else query

    is_counted = InventoryCount.physical_quantity.isnot(None)

    status_counts = _status_counts(
        InventoryCount.status,
        _scoped(db.session.query(InventoryCount.status, func.count(InventoryCount.id))),
    )
    total = sum(status_counts.values())
    uncounted = _scoped(
        db.session.query(func.count(InventoryCount.id)).filter(
            InventoryCount.code_filter_status == CodeFilterStatus.PENDIENTE.value
        )
    ).scalar()
    store_totals = (
        _scoped(db.session.query(InventoryCount.store_code, func.count(InventoryCount.id), _tally(is_counted)))
        .group_by(InventoryCount.store_code)
        .order_by(InventoryCount.store_code)
        .all()
    )
    division_totals = (
        _scoped(db.session.query(InventoryCount.division_code, func.count(InventoryCount.id)))
        .group_by(InventoryCount.division_code)
        .all()
    )

    # variance pass over the counted rows only
    figures = _scoped(
        db.session.query(
            InventoryCount.store_code,
            InventoryCount.division_code,
            InventoryCount.calculated_stock,
            InventoryCount.physical_quantity,
            InventoryCount.unit_cost,
        ).filter(is_counted)
    ).all()

    store_differences: Counter = Counter()
    store_costs: dict[str, Decimal] = defaultdict(lambda: _ZERO)
    division_differences: Counter = Counter()
    division_costs: dict[str | None, Decimal] = defaultdict(lambda: _ZERO)
    movement_counts: Counter = Counter()
    movement_costs: dict[str, Decimal] = defaultdict(lambda: _ZERO)
    positive = negative = _ZERO
    for row_store, division_code, stock, physical, cost in figures:
        variance = compute_variance(stock, physical, cost)
        if variance.has_difference:
            store_differences[row_store] += 1
            division_differences[division_code] += 1
        store_costs[row_store] += variance.total_cost
        division_costs[division_code] += variance.total_cost
        movement_counts[variance.movement_type.value] += 1
        movement_costs[variance.movement_type.value] += variance.total_cost
        if variance.total_cost > 0:
            positive += variance.total_cost
        elif variance.total_cost < 0:
            negative += variance.total_cost

    counted = len(figures)
    with_difference = sum(store_differences.values())

    by_store = tuple(
        StoreCountStats(
            store_code=code,
            total=int(n),
            counted=int(done),
            with_difference=store_differences[code],
            total_cost=store_costs[code],
            completion_percentage=_percentage(int(done), int(n)),
        )
        for code, n, done in store_totals
    )
    by_division = tuple(
        DivisionCountStats(
            division_code=code,
            total=int(n),
            with_difference=division_differences[code],
            total_cost=division_costs[code],
        )
        for code, n in sorted(division_totals, key=lambda row: row[0] or "")
    )
    by_status = tuple(
        CountStatusStats(status=status.value, count=status_counts[status.value], percentage=_percentage(status_counts[status.value], total))
        for status in CountStatus
        if status_counts[status.value]
    )
    by_movement_type = tuple(
        MovementTypeStats(
            movement_type=movement.value,
            count=movement_counts[movement.value],
            total_cost=movement_costs[movement.value],
        )
        for movement in MovementType
        if movement_counts[movement.value]
    )

    return CountDashboard(
        total_counts=total,
        in_review=status_counts[CountStatus.EN_REVISION.value],
        returned=status_counts[CountStatus.DEVUELTO.value],
        forensic=status_counts[CountStatus.FORENSE.value],
        adjusted=status_counts[CountStatus.AJUSTADO.value],
        uncounted=int(uncounted or 0),
        counted=counted,
        with_difference=with_difference,
        without_difference=counted - with_difference,
        total_variance_cost=positive + negative,
        positive_cost=positive,
        negative_cost=negative,
        by_store=by_store,
        by_division=by_division,
        by_status=by_status,
        by_movement_type=by_movement_type,
    )
