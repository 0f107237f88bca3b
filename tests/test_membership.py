from datetime import datetime

import pytest

from errors import AlreadyExists, AlreadyMember, NotFound, NotMember, ValidationError
from membership import MembershipService
from memory_store import MemoryClubRepository, MemoryDatabase, MemoryEventRepository, MemoryUserRepository
from schemas import User


class FlakyUserRepository(MemoryUserRepository):
    """Fails the first sub-club summary write."""

    def __init__(self, db):
        super().__init__(db)
        self.failed = False

    def add_subclub_membership(self, user_id, club_type, subclub_name):
        if not self.failed:
            self.failed = True
            raise RuntimeError("connection reset")
        super().add_subclub_membership(user_id, club_type, subclub_name)


@pytest.fixture
def db():
    return MemoryDatabase()


@pytest.fixture
def users(db):
    return MemoryUserRepository(db)


@pytest.fixture
def service(db, users):
    return MembershipService(MemoryClubRepository(db), users, MemoryEventRepository(db))


def _user(users, name, role="student"):
    email = f"{name.lower()}@college.edu"
    return users.create(User(name=name, email=email, password_hash="x", role=role).model_dump())


def _assert_consistent(service, users, user_id):
    """Club member lists and the user's summary describe the same memberships."""

    user = users.get(user_id)
    clubs = service._clubs.list_all()
    assert sorted(user["joined_clubs"]) == sorted(c["type"] for c in clubs if user_id in c["members"])
    for club in clubs:
        in_subclubs = sorted(s["name"] for s in club["subclubs"] if user_id in s["members"])
        listed = [m["subclubs"] for m in user["club_memberships"] if m["club_type"] == club["type"]]
        assert sorted(listed[0] if listed else []) == in_subclubs
        if in_subclubs:
            assert user_id in club["members"]


def test_join_normalizes_type_and_is_single(service, users):
    alice = _user(users, "Alice")
    service.create_club("Sports", "Games")

    club = service.join_club(alice["id"], "sports")

    assert club["members"] == [alice["id"]]
    assert users.get(alice["id"])["joined_clubs"] == ["Sports"]
    with pytest.raises(AlreadyMember):
        service.join_club(alice["id"], "SPORTS")


def test_join_unknown_type_is_rejected(service, users):
    alice = _user(users, "Alice")
    with pytest.raises(ValidationError):
        service.join_club(alice["id"], "Chess")


def test_known_club_is_created_on_first_reference(service):
    club = service.get_club("cultural")
    assert club["type"] == "Cultural"
    assert club["members"] == []
    assert len(service.list_clubs()) == 1


def test_create_club_twice_fails(service):
    service.create_club("Technical")
    with pytest.raises(AlreadyExists):
        service.create_club("technical")


def test_join_default_subclub_joins_parent(service, users):
    alice = _user(users, "Alice")

    subclub = service.join_subclub(alice["id"], "technical", "ai/ml")

    assert subclub["name"] == "AI/ML"
    assert subclub["members"] == [alice["id"]]
    assert service.is_member(alice["id"], "Technical")["is_member"] is True
    assert users.get(alice["id"])["club_memberships"] == [{"club_type": "Technical", "subclubs": ["AI/ML"]}]
    _assert_consistent(service, users, alice["id"])


def test_join_unknown_subclub_is_not_found(service, users):
    alice = _user(users, "Alice")
    with pytest.raises(NotFound):
        service.join_subclub(alice["id"], "Technical", "Underwater Basket Weaving")


def test_leave_club_drops_subclubs(service, users):
    alice = _user(users, "Alice")
    service.join_subclub(alice["id"], "Sports", "Cricket")

    service.leave_club(alice["id"], "Sports")

    assert service.is_subclub_member(alice["id"], "Sports", "Cricket")["is_member"] is False
    user = users.get(alice["id"])
    assert user["joined_clubs"] == []
    assert user["club_memberships"] == []
    with pytest.raises(NotMember):
        service.leave_club(alice["id"], "Sports")


def test_delete_subclub_strips_user_summaries(service, users):
    alice = _user(users, "Alice")
    service.join_subclub(alice["id"], "Cultural", "Dance")
    service.join_subclub(alice["id"], "Cultural", "Music")

    result = service.delete_subclub("Cultural", "dance")

    assert result["users_updated"] == 1
    assert [s["name"] for s in service.list_subclubs("Cultural")] == ["Music"]
    assert users.get(alice["id"])["club_memberships"] == [{"club_type": "Cultural", "subclubs": ["Music"]}]
    _assert_consistent(service, users, alice["id"])


def test_remove_subclub_member(service, users):
    alice = _user(users, "Alice")
    bob = _user(users, "Bob")
    service.join_subclub(alice["id"], "Sports", "Football")

    service.remove_subclub_member("Sports", "Football", alice["id"])

    assert service.subclub_members("Sports", "Football") == []
    assert service.is_member(alice["id"], "Sports")["is_member"] is True
    with pytest.raises(NotMember):
        service.remove_subclub_member("Sports", "Football", bob["id"])
    _assert_consistent(service, users, alice["id"])


def test_delete_club_cascades(service, users):
    service.create_club("Cultural")
    members = [_user(users, name) for name in ("Ann", "Ben", "Cat")]
    for member in members:
        service.join_club(member["id"], "Cultural")
    events = service._events
    for title in ("Fest", "Open Mic"):
        events.create(
            {"title": title, "club_type": "Cultural", "date": datetime(2024, 5, 1), "organizer": members[0]["id"]}
        )

    result = service.delete_club("cultural")

    assert result["events_deleted"] == 2
    assert result["users_updated"] == 3
    assert events.list("Cultural") == []
    for member in members:
        assert "Cultural" not in users.get(member["id"])["joined_clubs"]
    with pytest.raises(NotFound):
        service.delete_club("Cultural")


def test_add_student_is_idempotent_unless_strict(service, users):
    alice = _user(users, "Alice")

    first = service.add_student("alice@college.edu", "technical", "Quantum")
    second = service.add_student("alice@college.edu", "Technical", "Quantum")

    assert first["message"] == "Student Alice added to Technical club (Quantum)"
    assert second["student"]["club_memberships"] == [{"club_type": "Technical", "subclubs": ["Quantum"]}]
    assert service.club_members("Technical")[0]["id"] == alice["id"]
    assert len(service.subclub_members("Technical", "quantum")) == 1
    with pytest.raises(AlreadyMember):
        service.add_student("alice@college.edu", "Technical", strict=True)
    _assert_consistent(service, users, alice["id"])


def test_add_student_unknown_email(service):
    with pytest.raises(NotFound):
        service.add_student("nobody@college.edu", "Sports")


def test_reconcile_repairs_user_side(service, users):
    alice = _user(users, "Alice")
    service.join_subclub(alice["id"], "Technical", "Coding")
    service.join_club(alice["id"], "Sports")
    users.set_memberships(alice["id"], ["Cultural"], [{"club_type": "Cultural", "subclubs": ["Art"]}])

    repaired = service.reconcile_member(alice["id"])

    assert sorted(repaired["joined_clubs"]) == ["Sports", "Technical"]
    assert repaired["club_memberships"] == [{"club_type": "Technical", "subclubs": ["Coding"]}]
    _assert_consistent(service, users, alice["id"])


def test_partial_write_is_compensated(db):
    users = FlakyUserRepository(db)
    service = MembershipService(MemoryClubRepository(db), users, MemoryEventRepository(db))
    alice = _user(users, "Alice")

    with pytest.raises(RuntimeError):
        service.join_subclub(alice["id"], "Sports", "Basketball")

    user = users.get(alice["id"])
    assert user["joined_clubs"] == ["Sports"]
    assert user["club_memberships"] == [{"club_type": "Sports", "subclubs": ["Basketball"]}]


def test_deleting_only_subclub_prunes_entry(service, users):
    alice = _user(users, "Alice")
    bob = _user(users, "Bob")
    service.join_subclub(alice["id"], "Cultural", "Dance")
    service.add_student("bob@college.edu", "Cultural")

    result = service.delete_subclub("Cultural", "Dance")

    assert result["users_updated"] == 1
    assert users.get(alice["id"])["club_memberships"] == []
    assert users.get(alice["id"])["joined_clubs"] == ["Cultural"]
    # untouched users keep their club-level entry
    assert users.get(bob["id"])["club_memberships"] == [{"club_type": "Cultural", "subclubs": []}]
    _assert_consistent(service, users, alice["id"])
