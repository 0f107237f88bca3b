import pytest

from errors import ValidationError
from membership import normalize_club_type
from permissions import has_permission, permission_table, permissions_for


def test_student_capabilities():
    assert has_permission("student", "mark:attendance")
    assert has_permission("student", "add:subjects")
    assert not has_permission("student", "crud:curriculum")
    assert not has_permission("student", "crud:clubs")


def test_coordinator_is_superset_of_teacher():
    assert permissions_for("teacher") <= permissions_for("coordinator")
    assert has_permission("coordinator", "crud:events")
    assert not has_permission("teacher", "crud:events")


def test_unknown_role_has_nothing():
    assert permissions_for("janitor") == frozenset()
    assert not has_permission("janitor", "view:events")


def test_permission_table_is_sorted_per_role():
    table = permission_table()
    assert set(table) == {"student", "teacher", "coordinator"}
    for perms in table.values():
        assert perms == sorted(perms)


@pytest.mark.parametrize("raw", ["technical", "TECHNICAL", " Technical ", "tEcHnIcAl"])
def test_normalize_club_type_accepts_any_case(raw):
    assert normalize_club_type(raw) == "Technical"


@pytest.mark.parametrize("raw", ["", "   ", None, "Chess"])
def test_normalize_club_type_rejects_unknown(raw):
    with pytest.raises(ValidationError):
        normalize_club_type(raw)
