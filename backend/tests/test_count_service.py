"""
Count reconciliation engine tests.

Verifies:
- Materialization is idempotent and seeds stock/cost from the catalog
- Variance derivation with the 0.01 tolerance
- Every physical registration writes a COUNTED entry
- Batch registration reports per-item outcomes
- AJUSTADO completes the linked code (AJUSTADO with difference, LISTO without)
- Catalog failures roll back the whole materialization
"""

from decimal import Decimal

import pytest

from stockcheck.extensions import db
from stockcheck.models import InventoryCount, RequestCode
from stockcheck.services import assignment_service, count_service, request_service
from stockcheck.services.catalog_service import set_catalog
from stockcheck.services.errors import DependencyError, ErrorKind


class FailingCatalog:
    """Catalog double whose every lookup fails like an unreachable service."""

    def get_product(self, product_code):
        raise DependencyError("Product catalog unavailable")

    def get_stock(self, store_code, product_code):
        raise DependencyError("Product catalog unavailable")

    def list_hierarchy(self):
        raise DependencyError("Product catalog unavailable")


def open_ticket(requester, codes):
    return request_service.create_ticket(requester.id, "T01", codes).unwrap()


def materialize(ticket, actor):
    result = count_service.materialize_counts(ticket.id, actor.id)
    assert result.ok, result.error
    return [db.session.get(InventoryCount, count_id) for count_id in result.value]


def register(count, quantity, actor, comment=None):
    result = count_service.register_physical_count(count.id, quantity, comment, actor.id)
    assert result.ok, result.error
    return result.value


def set_status(count, status, actor, comment=None):
    return count_service.update_count_status(count.id, status, comment, actor.id)


# =============================================================================
# MATERIALIZATION
# =============================================================================


class TestMaterialize:
    def test_one_count_per_code_seeded_from_catalog(self, db_session, requester, catalog):
        ticket = open_ticket(requester, ["ABC", "DEF"])

        abc, def_ = materialize(ticket, requester)

        assert abc.calculated_stock == Decimal("10")
        assert abc.unit_cost == Decimal("2.5")
        assert abc.division_code == "01"
        assert abc.physical_quantity is None
        assert abc.status == "EN_REVISION"
        assert abc.code_filter_status == "PENDIENTE"
        # no stock row means zero stock
        assert def_.calculated_stock == Decimal("0")

    def test_pending_codes_move_to_review(self, db_session, requester, catalog):
        ticket = open_ticket(requester, ["ABC"])
        materialize(ticket, requester)

        assert ticket.codes[0].status == "EN_REVISION"
        assert ticket.status == "EN_REVISION"

    def test_second_call_creates_nothing(self, db_session, requester, catalog):
        ticket = open_ticket(requester, ["ABC", "XYZ"])
        first = materialize(ticket, requester)

        second = count_service.materialize_counts(ticket.id, requester.id).unwrap()

        assert len(first) == 2
        assert second == []
        assert db_session.query(InventoryCount).count() == 2

    def test_cancelled_codes_are_skipped(self, db_session, requester, catalog):
        ticket = open_ticket(requester, ["ABC", "XYZ"])
        xyz = db_session.query(RequestCode).filter_by(product_code="XYZ").one()
        request_service.update_code_status(xyz.id, "CANCELADO", None, requester.id).unwrap()

        counts = materialize(ticket, requester)
        assert [c.product_code for c in counts] == ["ABC"]

    def test_created_entry_records_stock(self, db_session, requester, catalog):
        (count,) = materialize(open_ticket(requester, ["ABC"]), requester)

        history = count_service.get_count_history(count.id).unwrap()
        assert [h.action for h in history] == ["CREATED"]
        assert history[0].new_value == "10"

    def test_unknown_code_is_dependency_error_and_rolls_back(self, db_session, requester, catalog):
        ticket = open_ticket(requester, ["ABC", "NOPE"])

        result = count_service.materialize_counts(ticket.id, requester.id)

        assert result.error.kind == ErrorKind.DEPENDENCY
        assert db_session.query(InventoryCount).count() == 0
        assert {c.status for c in ticket.codes} == {"PENDIENTE"}

    def test_catalog_outage_is_dependency_error(self, app, db_session, requester, catalog):
        ticket = open_ticket(requester, ["ABC"])
        set_catalog(app, FailingCatalog())

        result = count_service.materialize_counts(ticket.id, requester.id)

        assert result.error.kind == ErrorKind.DEPENDENCY
        assert db_session.query(InventoryCount).count() == 0
        assert ticket.codes[0].status == "PENDIENTE"

    def test_missing_ticket_is_not_found(self, db_session, requester):
        assert count_service.materialize_counts(424242, requester.id).error.kind == ErrorKind.NOT_FOUND


# =============================================================================
# PHYSICAL COUNTS AND VARIANCE
# =============================================================================


class TestRegisterPhysicalCount:
    def test_difference_within_tolerance_is_not_flagged(self, db_session, counter, catalog):
        (count,) = materialize(open_ticket(counter, ["ABC"]), counter)

        register(count, "10.005", counter)

        variance = count.variance()
        assert variance.has_difference is False
        assert count.code_filter_status == "CONTADO"
        assert count.movement_type == "AJUSTE_POSITIVO"

    def test_positive_difference(self, db_session, counter, catalog):
        (count,) = materialize(open_ticket(counter, ["ABC"]), counter)

        register(count, "10.02", counter)

        assert count.variance().has_difference is True
        assert count.difference == Decimal("0.02")
        assert count.total_cost == Decimal("0.05")
        assert count.movement_type == "AJUSTE_POSITIVO"

    def test_negative_difference(self, db_session, counter, catalog):
        (count,) = materialize(open_ticket(counter, ["ABC"]), counter)

        register(count, 7, counter)

        assert count.difference == Decimal("-3")
        assert count.total_cost == Decimal("-7.5")
        assert count.movement_type == "AJUSTE_NEGATIVO"

    def test_every_registration_is_recorded(self, db_session, counter, catalog):
        (count,) = materialize(open_ticket(counter, ["ABC"]), counter)

        register(count, 8, counter)
        register(count, 8, counter, comment="recounted")

        history = count_service.get_count_history(count.id).unwrap()
        counted = [h for h in history if h.action == "COUNTED"]
        assert len(counted) == 2
        assert (counted[0].old_value, counted[0].new_value) == ("8", "8")
        assert (counted[1].old_value, counted[1].new_value) == ("null", "8")

    def test_quantity_is_stored_at_column_scale(self, db_session, counter, catalog):
        (count,) = materialize(open_ticket(counter, ["ABC"]), counter)

        register(count, "10.01001", counter)
        assert count.physical_quantity == Decimal("10.0100")
        assert count.variance().has_difference is False

        db_session.expire_all()
        reloaded = db_session.get(InventoryCount, count.id)

        assert reloaded.physical_quantity == Decimal("10.0100")
        assert reloaded.difference == Decimal("0.01")
        assert reloaded.to_dict()["has_difference"] is False
        assert count_service.list_counts(has_difference=True).unwrap().total == 0
        assert count_service.list_counts(has_difference=False).unwrap().total == 1

    def test_rounding_up_to_scale_can_cross_the_tolerance(self, db_session, counter, catalog):
        (count,) = materialize(open_ticket(counter, ["ABC"]), counter)

        register(count, "10.01005", counter)

        assert count.physical_quantity == Decimal("10.0101")
        assert count.variance().has_difference is True
        assert [c.id for c in count_service.list_counts(has_difference=True).unwrap().items] == [count.id]

    @pytest.mark.parametrize("quantity", [None, "-1", "abc", "NaN", "Infinity", "1e20", True])
    def test_invalid_quantity(self, db_session, counter, catalog, quantity):
        (count,) = materialize(open_ticket(counter, ["ABC"]), counter)

        result = count_service.register_physical_count(count.id, quantity, None, counter.id)

        assert result.error.kind == ErrorKind.VALIDATION
        assert count.physical_quantity is None

    def test_adjusted_count_must_be_reopened(self, db_session, counter, catalog):
        (count,) = materialize(open_ticket(counter, ["ABC"]), counter)
        register(count, 12, counter)
        set_status(count, "AJUSTADO", counter).unwrap()

        assert count_service.register_physical_count(count.id, 11, None, counter.id).error.kind == ErrorKind.CONFLICT

        set_status(count, "EN_REVISION", counter).unwrap()
        register(count, 11, counter)
        assert count.difference == Decimal("1")


class TestBatchRegister:
    def test_failed_item_does_not_stop_the_batch(self, db_session, counter, catalog):
        abc, xyz, def_ = materialize(open_ticket(counter, ["ABC", "XYZ", "DEF"]), counter)
        items = [
            {"count_id": abc.id, "quantity": 12},
            {"count_id": xyz.id, "quantity": -1},
            {"count_id": def_.id, "quantity": 0},
        ]

        batch = count_service.batch_register_counts(items, counter.id).unwrap()

        assert batch.success_count == 2
        assert batch.fail_count == 1
        assert batch.results[1].item_id == xyz.id
        assert batch.results[1].error_kind == "VALIDATION"
        assert abc.physical_quantity == Decimal("12")
        assert xyz.physical_quantity is None
        assert def_.physical_quantity == Decimal("0")

    def test_item_without_count_id(self, db_session, counter, catalog):
        batch = count_service.batch_register_counts([{"quantity": 1}], counter.id).unwrap()
        assert batch.results[0].success is False
        assert batch.results[0].error_kind == "VALIDATION"

    def test_empty_batch_is_rejected(self, db_session, counter):
        assert count_service.batch_register_counts([], counter.id).error.kind == ErrorKind.VALIDATION

    @pytest.mark.parametrize("items", [7, "12", {"count_id": 1, "quantity": 3}])
    def test_items_must_be_a_list(self, db_session, counter, items):
        result = count_service.batch_register_counts(items, counter.id)

        assert result.error.kind == ErrorKind.VALIDATION
        assert result.error.details["field"] == "items"


# =============================================================================
# STATUS LIFECYCLE
# =============================================================================


class TestCountStatus:
    def test_adjusting_completes_codes_and_ticket_closes(self, db_session, counter, catalog):
        ticket = open_ticket(counter, ["ABC", "XYZ"])
        abc, xyz = materialize(ticket, counter)
        register(abc, 12, counter)
        register(xyz, 5, counter)

        set_status(abc, "AJUSTADO", counter, "shelf recount").unwrap()
        set_status(xyz, "AJUSTADO", counter).unwrap()

        assert abc.code.status == "AJUSTADO"
        assert abc.code.processed_at is not None
        assert xyz.code.status == "LISTO"
        assert ticket.status == "AJUSTADO"

        closed = request_service.close_ticket(ticket.id, counter.id).unwrap()
        assert closed.is_active is False

        frozen = count_service.register_physical_count(abc.id, 1, None, counter.id)
        assert frozen.error.kind == ErrorKind.CONFLICT

    def test_failed_cascade_rolls_back_the_count_change(self, db_session, counter, catalog):
        ticket = open_ticket(counter, ["ABC", "XYZ"])
        abc, _ = materialize(ticket, counter)
        register(abc, 12, counter)
        request_service.update_code_status(abc.code_id, "CANCELADO", None, counter.id).unwrap()
        entries_before = len(count_service.get_count_history(abc.id).unwrap())

        result = set_status(abc, "AJUSTADO", counter, "accept")

        assert result.error.kind == ErrorKind.CONFLICT
        db_session.expire_all()
        count = db_session.get(InventoryCount, abc.id)
        assert count.status == "EN_REVISION"
        assert count.comment is None
        assert len(count_service.get_count_history(abc.id).unwrap()) == entries_before
        assert count.code.status == "CANCELADO"

    def test_adjust_requires_physical_quantity(self, db_session, counter, catalog):
        (count,) = materialize(open_ticket(counter, ["ABC"]), counter)

        result = set_status(count, "AJUSTADO", counter)
        assert result.error.kind == ErrorKind.CONFLICT

    @pytest.mark.parametrize("status", ["EN_REVISION", "CONTADO"])
    def test_invalid_status_changes(self, db_session, counter, catalog, status):
        (count,) = materialize(open_ticket(counter, ["ABC"]), counter)

        result = set_status(count, status, counter)
        assert result.error.kind in (ErrorKind.CONFLICT, ErrorKind.VALIDATION)

    def test_returned_and_forensic_reopen_to_review(self, db_session, counter, catalog):
        (count,) = materialize(open_ticket(counter, ["ABC"]), counter)

        set_status(count, "DEVUELTO", counter).unwrap()
        assert set_status(count, "FORENSE", counter).error.kind == ErrorKind.CONFLICT
        set_status(count, "EN_REVISION", counter).unwrap()
        set_status(count, "FORENSE", counter, "missing pallet").unwrap()

        history = count_service.get_count_history(count.id).unwrap()
        assert [(h.old_value, h.new_value) for h in history if h.action == "STATUS_CHANGED"] == [
            ("EN_REVISION", "FORENSE"),
            ("DEVUELTO", "EN_REVISION"),
            ("EN_REVISION", "DEVUELTO"),
        ]

    def test_comment_appends_history(self, db_session, counter, catalog):
        (count,) = materialize(open_ticket(counter, ["ABC"]), counter)

        count_service.add_count_comment(count.id, "label torn", counter.id).unwrap()
        blank = count_service.add_count_comment(count.id, " ", counter.id)

        assert blank.error.kind == ErrorKind.VALIDATION
        assert count_service.get_count_history(count.id).unwrap()[0].comment == "label torn"


# =============================================================================
# QUERIES
# =============================================================================


class TestCountQueries:
    def test_difference_filter(self, db_session, counter, catalog):
        abc, xyz, def_ = materialize(open_ticket(counter, ["ABC", "XYZ", "DEF"]), counter)
        register(abc, 12, counter)
        register(def_, 0, counter)

        differing = count_service.list_counts(has_difference=True).unwrap()
        square = count_service.list_counts(has_difference="false").unwrap()

        assert [c.product_code for c in differing.items] == ["ABC"]
        assert {c.product_code for c in square.items} == {"XYZ", "DEF"}

    def test_filters_by_division_and_search(self, db_session, counter, catalog):
        materialize(open_ticket(counter, ["ABC", "XYZ", "DEF"]), counter)

        assert count_service.list_counts(division_code="02").unwrap().total == 1
        assert count_service.list_counts(search="product x").unwrap().total == 1
        assert count_service.list_counts(code_filter_status="PENDIENTE").unwrap().total == 3

    def test_pending_and_assigned(self, db_session, admin, leader, counter, catalog):
        assignment_service.create_grant(leader.id, "T01", "DIVISION", {"division_code": "01"}, admin.id)
        ticket = open_ticket(counter, ["ABC", "DEF"])
        abc, _ = materialize(ticket, counter)
        register(abc, 10, counter)

        pending = count_service.get_pending_counts_by_request(ticket.id).unwrap()
        mine = count_service.get_my_assigned_counts(leader.id).unwrap()

        assert [c.product_code for c in pending] == ["DEF"]
        assert [c.product_code for c in mine] == ["ABC"]

    def test_missing_count(self, db_session):
        assert count_service.get_count(999).error.kind == ErrorKind.NOT_FOUND
