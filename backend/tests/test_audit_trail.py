"""
Audit trail tests.

Verifies:
- History rows cannot be updated or deleted through the ORM
- Readers return entries newest first
- Each read operation reports a missing parent as NOT_FOUND
"""

import pytest

from stockcheck.models import CountHistory, RequestHistory
from stockcheck.models.history import ImmutableRecordError
from stockcheck.services import audit_service, count_service, request_service
from stockcheck.services.errors import ErrorKind


@pytest.fixture
def ticket(db_session, requester, catalog):
    return request_service.create_ticket(requester.id, "T01", ["ABC"]).unwrap()


class TestImmutability:
    def test_request_history_update_is_rejected(self, db_session, ticket):
        entry = db_session.query(RequestHistory).filter_by(request_id=ticket.id).one()
        entry.comment = "rewritten"

        with pytest.raises(ImmutableRecordError):
            db_session.flush()
        db_session.rollback()

        assert db_session.query(RequestHistory).filter_by(request_id=ticket.id).one().comment != "rewritten"

    def test_request_history_delete_is_rejected(self, db_session, ticket):
        entry = db_session.query(RequestHistory).filter_by(request_id=ticket.id).one()
        db_session.delete(entry)

        with pytest.raises(ImmutableRecordError):
            db_session.flush()
        db_session.rollback()

        assert db_session.query(RequestHistory).filter_by(request_id=ticket.id).count() == 1

    def test_count_history_update_is_rejected(self, db_session, requester, ticket):
        (count_id,) = count_service.materialize_counts(ticket.id, requester.id).unwrap()
        entry = db_session.query(CountHistory).filter_by(count_id=count_id).one()
        entry.new_value = "0"

        with pytest.raises(ImmutableRecordError):
            db_session.commit()
        db_session.rollback()


class TestReaders:
    def test_code_history_only_has_that_code(self, db_session, requester, catalog):
        ticket = request_service.create_ticket(requester.id, "T01", ["ABC", "XYZ"]).unwrap()
        abc, xyz = ticket.codes
        request_service.update_code_status(abc.id, "EN_REVISION", None, requester.id).unwrap()
        request_service.update_code_status(xyz.id, "CANCELADO", None, requester.id).unwrap()
        request_service.update_code_status(abc.id, "LISTO", "ok", requester.id).unwrap()

        history = audit_service.get_code_history(abc.id).unwrap()

        assert [h.new_value for h in history] == ["LISTO", "EN_REVISION"]
        assert history[0].to_dict()["created_at"].endswith("Z")

    def test_request_history_matches_ticket_history(self, db_session, requester, ticket):
        request_service.add_comment(ticket.id, None, "checked", requester.id).unwrap()

        direct = audit_service.get_request_history(ticket.id).unwrap()
        assert [h.action for h in direct] == ["COMMENT", "CREATED"]

    @pytest.mark.parametrize(
        "reader",
        [
            audit_service.get_request_history,
            audit_service.get_code_history,
            audit_service.get_count_history,
            audit_service.get_assignment_history,
        ],
    )
    def test_missing_parent_is_not_found(self, db_session, reader):
        assert reader(31337).error.kind == ErrorKind.NOT_FOUND
