"""
Assignment grant and resolver tests.

Verifies:
- One active grant per (user, store, type); replacing deactivates the old one
- Most specific matching grant wins; ties go to the newest grant
- Inactive users are skipped
- Profile eligibility and scope validation
- Every grant change is recorded in assignment history
"""

import pytest

from stockcheck.extensions import db
from stockcheck.models import AssignmentHistory, Store, UserProductAssignment
from stockcheck.models.enums import AssignmentType
from stockcheck.services import assignment_service
from stockcheck.services.cache import StoreGrantsKey
from stockcheck.services.concurrency import unit_of_work
from stockcheck.services.errors import ErrorKind

from conftest import make_user


SUBGROUP_SCOPE = {
    "division_code": "01",
    "division": "Ferreteria",
    "category_code": "0101",
    "category": "Tornilleria",
    "group_code": "010101",
    "group_name": "Tornillos",
    "subgroup_code": "01010101",
    "subgroup": "Tornillos madera",
}


def grant(user, assignment_type, scope, actor, store_code="T01"):
    result = assignment_service.create_grant(user.id, store_code, assignment_type, scope, actor.id)
    assert result.ok, result.error
    return result.value


# =============================================================================
# GRANT MANAGEMENT
# =============================================================================


class TestCreateGrant:
    def test_second_division_grant_deactivates_first(self, db_session, admin, leader):
        first = grant(leader, "DIVISION", {"division_code": "10"}, admin)
        second = grant(leader, "DIVISION", {"division_code": "20"}, admin)

        active = assignment_service.list_grants(user_id=leader.id, store_code="T01").unwrap()
        assert [g.id for g in active] == [second.id]
        assert active[0].division_code == "20"

        old = db.session.get(UserProductAssignment, first.id)
        assert old.is_active is False
        assert old.deactivated_by_id == admin.id
        assert old.deactivated_at is not None

    def test_grants_of_different_levels_coexist(self, db_session, admin, leader):
        grant(leader, "DIVISION", {"division_code": "01"}, admin)
        grant(leader, "SUBGRUPO", SUBGROUP_SCOPE, admin)

        active = assignment_service.list_grants(user_id=leader.id).unwrap()
        assert {g.assignment_type for g in active} == {"DIVISION", "SUBGRUPO"}

    def test_deeper_scope_fields_are_cleared(self, db_session, admin, counter):
        created = grant(counter, "CATEGORIA", SUBGROUP_SCOPE, admin)
        assert created.category_code == "0101"
        assert created.division == "Ferreteria"
        assert created.group_code is None
        assert created.subgroup_code is None

    def test_missing_ancestor_code_is_validation_error(self, db_session, admin, counter):
        result = assignment_service.create_grant(
            counter.id, "T01", "GRUPO", {"division_code": "01", "group_code": "010101"}, admin.id
        )
        assert not result.ok
        assert result.error.kind == ErrorKind.VALIDATION
        assert result.error.details["field"] == "category_code"
        assert db_session.query(UserProductAssignment).count() == 0

    def test_only_leaders_hold_division_grants(self, db_session, admin, counter):
        result = assignment_service.create_grant(counter.id, "T01", "DIVISION", {"division_code": "01"}, admin.id)
        assert result.error.kind == ErrorKind.CONFLICT

    def test_administrators_hold_no_grants(self, db_session, admin):
        result = assignment_service.create_grant(admin.id, "T01", "SUBGRUPO", SUBGROUP_SCOPE, admin.id)
        assert result.error.kind == ErrorKind.CONFLICT

    def test_unknown_user_or_store_is_not_found(self, db_session, admin, leader):
        missing_user = assignment_service.create_grant(9999, "T01", "DIVISION", {"division_code": "01"}, admin.id)
        missing_store = assignment_service.create_grant(leader.id, "T99", "DIVISION", {"division_code": "01"}, admin.id)
        assert missing_user.error.kind == ErrorKind.NOT_FOUND
        assert missing_store.error.kind == ErrorKind.NOT_FOUND

    def test_unknown_assignment_type_is_validation_error(self, db_session, admin, leader):
        result = assignment_service.create_grant(leader.id, "T01", "PASILLO", {"division_code": "01"}, admin.id)
        assert result.error.kind == ErrorKind.VALIDATION


class TestRemoveGrant:
    def test_remove_soft_deactivates_and_records_history(self, db_session, admin, leader):
        created = grant(leader, "DIVISION", {"division_code": "01"}, admin)

        result = assignment_service.remove_grant(created.id, admin.id)
        assert result.ok
        assert db.session.get(UserProductAssignment, created.id).is_active is False

        history = assignment_service.get_grant_history(created.id).unwrap()
        assert [entry.action for entry in history] == ["REVOKED", "GRANTED"]

    def test_remove_twice_is_not_found(self, db_session, admin, leader):
        created = grant(leader, "DIVISION", {"division_code": "01"}, admin)
        assignment_service.remove_grant(created.id, admin.id)

        result = assignment_service.remove_grant(created.id, admin.id)
        assert result.error.kind == ErrorKind.NOT_FOUND


class TestGrantHistory:
    def test_replacement_writes_deactivated_and_granted_entries(self, db_session, admin, leader):
        first = grant(leader, "DIVISION", {"division_code": "10"}, admin)
        second = grant(leader, "DIVISION", {"division_code": "20"}, admin)

        first_history = assignment_service.get_grant_history(first.id).unwrap()
        assert [entry.action for entry in first_history] == ["DEACTIVATED", "GRANTED"]

        second_history = assignment_service.get_grant_history(second.id).unwrap()
        assert len(second_history) == 1
        assert second_history[0].old_value == "DIVISION:10"
        assert second_history[0].new_value == "DIVISION:20"
        assert second_history[0].user_id == admin.id

        assert db_session.query(AssignmentHistory).count() == 3


# =============================================================================
# RESOLVER
# =============================================================================


class TestResolveAssignee:
    def test_subgroup_grant_beats_division_grant(self, db_session, admin, leader, counter, catalog):
        grant(leader, "DIVISION", {"division_code": "01"}, admin)
        grant(counter, "SUBGRUPO", SUBGROUP_SCOPE, admin)

        resolution = assignment_service.resolve_for_product("T01", "ABC")
        assert resolution.user_id == counter.id
        assert resolution.assignment_type == AssignmentType.SUBGRUPO
        assert resolution.assignment_info == "SUBGRUPO 01010101 - Tornillos madera"

    def test_falls_back_to_division(self, db_session, admin, leader, counter, catalog):
        grant(leader, "DIVISION", {"division_code": "01"}, admin)
        grant(counter, "SUBGRUPO", SUBGROUP_SCOPE, admin)

        # XYZ is in division 01 but another category
        resolution = assignment_service.resolve_for_product("T01", "XYZ")
        assert resolution.user_id == leader.id
        assert resolution.assignment_type == AssignmentType.DIVISION

    def test_no_matching_grant_returns_none(self, db_session, admin, leader, catalog):
        grant(leader, "DIVISION", {"division_code": "01"}, admin)
        assert assignment_service.resolve_for_product("T01", "DEF") is None

    def test_grants_are_scoped_to_store(self, db_session, admin, leader, catalog):
        db_session.add(Store(code="T02", name="Tienda Norte", is_active=True))
        db_session.commit()
        grant(leader, "DIVISION", {"division_code": "01"}, admin, store_code="T02")

        assert assignment_service.resolve_for_product("T01", "ABC") is None
        assert assignment_service.resolve_for_product("T02", "ABC").user_id == leader.id

    def test_newest_grant_wins_a_tie(self, db_session, admin, counter, catalog):
        other = make_user("other", "INVENTARIO")
        grant(counter, "SUBGRUPO", SUBGROUP_SCOPE, admin)
        newer = grant(other, "SUBGRUPO", SUBGROUP_SCOPE, admin)

        resolution = assignment_service.resolve_for_product("T01", "ABC")
        assert resolution.assignment_id == newer.id
        assert resolution.user_id == other.id

    def test_inactive_users_are_skipped(self, db_session, admin, leader, counter, catalog):
        grant(leader, "DIVISION", {"division_code": "01"}, admin)
        grant(counter, "SUBGRUPO", SUBGROUP_SCOPE, admin)
        counter.is_active = False
        db_session.commit()

        resolution = assignment_service.resolve_for_product("T01", "ABC")
        assert resolution.user_id == leader.id

    def test_removed_grant_no_longer_resolves(self, db_session, admin, leader, catalog):
        created = grant(leader, "DIVISION", {"division_code": "01"}, admin)
        assert assignment_service.resolve_for_product("T01", "ABC") is not None

        assignment_service.remove_grant(created.id, admin.id)
        assert assignment_service.resolve_for_product("T01", "ABC") is None

    def test_snapshot_cached_before_commit_is_dropped_after_commit(self, db_session, admin, leader, counter, catalog):
        grant(leader, "DIVISION", {"division_code": "01"}, admin)
        stale = assignment_service.store_grants("T01")

        with unit_of_work():
            create_grant = assignment_service.create_grant.__wrapped_operation__
            create_grant(counter.id, "T01", "SUBGRUPO", SUBGROUP_SCOPE, admin.id)
            # another request reloads the committed grants before this commit lands
            assignment_service.grant_cache().set(StoreGrantsKey("T01"), stale)

        resolution = assignment_service.resolve_for_product("T01", "ABC")
        assert resolution.user_id == counter.id

    def test_rolled_back_grant_change_keeps_cache_consistent(self, db_session, admin, leader, counter, catalog):
        grant(leader, "DIVISION", {"division_code": "01"}, admin)

        with pytest.raises(RuntimeError):
            with unit_of_work():
                create_grant = assignment_service.create_grant.__wrapped_operation__
                create_grant(counter.id, "T01", "SUBGRUPO", SUBGROUP_SCOPE, admin.id)
                raise RuntimeError("abort")

        assert assignment_service.resolve_for_product("T01", "ABC").user_id == leader.id

    def test_resolve_accepts_plain_mapping(self, db_session, admin, counter):
        grant(counter, "GRUPO", SUBGROUP_SCOPE, admin)
        taxonomy = {"division_code": "01", "category_code": "0101", "group_code": "010101", "subgroup_code": "X"}

        resolution = assignment_service.resolve_assignee("T01", taxonomy)
        assert resolution.assignment_type == AssignmentType.GRUPO

    def test_unknown_product_is_dependency_error(self, db_session, catalog):
        result = assignment_service.resolve_product("T01", "NOPE")
        assert result.error.kind == ErrorKind.DEPENDENCY


class TestProductHierarchy:
    def test_hierarchy_lists_distinct_paths(self, db_session, catalog):
        nodes = assignment_service.get_product_hierarchy().unwrap()
        assert len(nodes) == 3
        assert {node.division_code for node in nodes} == {"01", "02"}


@pytest.mark.parametrize(
    "assignment_type,expected",
    [
        ("DIVISION", ("division_code",)),
        ("CATEGORIA", ("division_code", "category_code")),
        ("SUBGRUPO", ("division_code", "category_code", "group_code", "subgroup_code")),
    ],
)
def test_scope_fields_follow_rank(assignment_type, expected):
    assert AssignmentType(assignment_type).scope_fields == expected


def test_by_specificity_orders_most_specific_first():
    assert AssignmentType.by_specificity() == [
        AssignmentType.SUBGRUPO,
        AssignmentType.GRUPO,
        AssignmentType.CATEGORIA,
        AssignmentType.DIVISION,
    ]
