"""
Dashboard rollup tests.
"""

from decimal import Decimal

from stockcheck.extensions import db
from stockcheck.models import InventoryCount
from stockcheck.services import assignment_service, count_service, dashboard_service, request_service


def counted_ticket(user, quantities):
    ticket = request_service.create_ticket(user.id, "T01", list(quantities)).unwrap()
    ids = count_service.materialize_counts(ticket.id, user.id).unwrap()
    counts = {db.session.get(InventoryCount, i).product_code: i for i in ids}
    for code, quantity in quantities.items():
        if quantity is not None:
            count_service.register_physical_count(counts[code], quantity, None, user.id).unwrap()
    return ticket, counts


class TestCountDashboard:
    def test_costs_are_signed_and_summed(self, db_session, counter, catalog):
        counted_ticket(counter, {"ABC": 12, "XYZ": 3, "DEF": None})

        dashboard = dashboard_service.get_count_dashboard().unwrap()

        assert dashboard.total_counts == 3
        assert dashboard.counted == 2
        assert dashboard.uncounted == 1
        assert dashboard.with_difference == 2
        assert dashboard.without_difference == 0
        assert dashboard.positive_cost == Decimal("5")
        assert dashboard.negative_cost == Decimal("-2")
        assert dashboard.total_variance_cost == Decimal("3")
        assert dashboard.in_review == 3

        movements = {m.movement_type: m for m in dashboard.by_movement_type}
        assert movements["AJUSTE_POSITIVO"].total_cost == Decimal("5")
        assert movements["AJUSTE_NEGATIVO"].count == 1

        divisions = {d.division_code: d for d in dashboard.by_division}
        assert divisions["01"].total == 2
        assert divisions["02"].with_difference == 0

        (store,) = dashboard.by_store
        assert store.completion_percentage == 66.67
        assert (store.total, store.counted, store.with_difference, store.total_cost) == (3, 2, 2, Decimal("3"))

    def test_readers_recompute_instead_of_trusting_stored_columns(self, db_session, counter, catalog):
        _, counts = counted_ticket(counter, {"ABC": 12})
        # corrupt the stored figures; the dashboard must not read them
        db_session.query(InventoryCount).filter_by(id=counts["ABC"]).update({"total_cost": Decimal("999")})
        db_session.commit()

        dashboard = dashboard_service.get_count_dashboard().unwrap()
        assert dashboard.total_variance_cost == Decimal("5")

    def test_to_dict_is_json_ready(self, db_session, counter, catalog):
        counted_ticket(counter, {"ABC": 12})

        data = dashboard_service.get_count_dashboard("t01").unwrap().to_dict()

        assert data["total_variance_cost"] == 5.0
        assert data["by_store"][0]["store_code"] == "T01"

    def test_empty(self, db_session):
        dashboard = dashboard_service.get_count_dashboard().unwrap()
        assert dashboard.total_counts == 0
        assert dashboard.total_variance_cost == Decimal("0")


class TestRequestDashboard:
    def test_status_breakdown_and_my_codes(self, db_session, admin, leader, requester, catalog):
        assignment_service.create_grant(leader.id, "T01", "DIVISION", {"division_code": "01"}, admin.id)
        request_service.create_ticket(requester.id, "T01", ["ABC", "XYZ"]).unwrap()
        overdue = request_service.create_ticket(
            requester.id, "T01", ["DEF"], due_date="2001-01-01T00:00:00Z"
        ).unwrap()
        request_service.set_ticket_status(overdue.id, "DEVUELTO", None, admin.id).unwrap()

        dashboard = dashboard_service.get_request_dashboard(leader.id).unwrap()

        assert dashboard.total_requests == 2
        assert dashboard.pending_requests == 1
        assert dashboard.returned_requests == 1
        assert dashboard.overdue_requests == 1
        assert [(s.store_code, s.total, s.open, s.completed, s.overdue) for s in dashboard.by_store] == [("T01", 2, 2, 0, 1)]
        assert dashboard.my_assigned_codes == 2
        assert dashboard.my_pending_codes == 2
        assert {s.status: s.percentage for s in dashboard.by_status} == {"PENDIENTE": 50.0, "DEVUELTO": 50.0}
        assert dashboard.recent_requests[0].ticket_number == overdue.ticket_number
        assert dashboard.to_dict()["recent_requests"][0]["created_at"].endswith("Z")

    def test_store_filter(self, db_session, requester, catalog):
        request_service.create_ticket(requester.id, "T01", ["ABC"]).unwrap()

        assert dashboard_service.get_request_dashboard(requester.id, "T02").unwrap().total_requests == 0
        assert dashboard_service.get_request_dashboard(requester.id, "T01").unwrap().total_requests == 1
