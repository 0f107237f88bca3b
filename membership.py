"""Club and sub-club membership.

Every membership lives in two places: the member list on the club (or
embedded sub-club) and the summary on the user (``joined_clubs`` and
``club_memberships``). The club side is authoritative. Writes go club side
first, then user side; when the second write fails the user summary is
rebuilt from the club side by :meth:`MembershipService.reconcile_member`.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Dict, List, Optional

from accounts import member_summary, public_user
from errors import AlreadyExists, AlreadyMember, DomainError, NotFound, NotMember, ValidationError
from repository import ClubRepository, Document, EventRepository, UserRepository
from schemas import CLUB_TYPES, Club, SubClub

logger = logging.getLogger(__name__)

DEFAULT_SUBCLUBS: Dict[str, List[Dict[str, str]]] = {
    "Technical": [
        {"name": "Coding", "description": "Programming and software development"},
        {"name": "Web Development", "description": "Frontend and backend web technologies"},
        {"name": "Robotics", "description": "Building and programming robots"},
        {"name": "AI/ML", "description": "Artificial Intelligence and Machine Learning"},
    ],
    "Cultural": [
        {"name": "Dance", "description": "All dance forms and choreography"},
        {"name": "Music", "description": "Singing, instruments, and composition"},
        {"name": "Drama", "description": "Theater and performing arts"},
        {"name": "Art", "description": "Drawing, painting, and visual arts"},
    ],
    "Sports": [
        {"name": "Cricket", "description": "Cricket team and practice"},
        {"name": "Football", "description": "Football/soccer team and training"},
        {"name": "Basketball", "description": "Basketball team and practice"},
        {"name": "Table Tennis", "description": "Table tennis matches and practice"},
    ],
}


def normalize_club_type(value: Optional[str]) -> str:
    """``"technical"``, ``"TECHNICAL"`` and ``" Technical "`` all become ``"Technical"``."""

    raw = (value or "").strip()
    if not raw:
        raise ValidationError("Club type is required")
    normalized = raw[:1].upper() + raw[1:].lower()
    if normalized not in CLUB_TYPES:
        raise ValidationError(f"Invalid club type '{raw}'. Must be one of: {', '.join(CLUB_TYPES)}")
    return normalized


def find_subclub(club: Document, name: str) -> Optional[Document]:
    wanted = name.strip().lower()
    for sub in club.get("subclubs", []):
        if sub["name"].lower() == wanted:
            return sub
    return None


def _summary_key(joined: List[str], memberships: List[Document]) -> tuple:
    return (
        sorted(joined),
        sorted((m["club_type"], tuple(sorted(m.get("subclubs", [])))) for m in memberships),
    )


class MembershipService:
    def __init__(self, clubs: ClubRepository, users: UserRepository, events: EventRepository):
        self._clubs = clubs
        self._users = users
        self._events = events

    # ----------------------- Clubs -----------------------
    def list_clubs(self) -> List[Dict[str, Any]]:
        return [self._with_members(c) for c in self._clubs.list_all()]

    def ensure_club(self, club_type: str, description: Optional[str] = None) -> Document:
        """Return the club, creating a known club type on first reference."""

        normalized = normalize_club_type(club_type)
        club = self._clubs.get(normalized)
        if club:
            return club
        doc = Club(
            type=normalized,
            description=description if description is not None else f"{normalized} Club - Automatically created",
        ).model_dump()
        try:
            club = self._clubs.create(doc)
            logger.info("Club %s created on first reference", normalized)
        except AlreadyExists:
            # Lost the race to a concurrent creator.
            club = self._clubs.get(normalized)
        return club

    def get_club(self, club_type: str) -> Dict[str, Any]:
        return self._with_members(self.ensure_club(club_type))

    def create_club(self, club_type: str, description: str = "") -> Document:
        normalized = normalize_club_type(club_type)
        if self._clubs.get(normalized):
            raise AlreadyExists(f"Club with type {normalized} already exists")
        club = self._clubs.create(Club(type=normalized, description=description or "").model_dump())
        logger.info("Club %s created", normalized)
        return club

    def club_members(self, club_type: str) -> List[Dict[str, Any]]:
        club = self.ensure_club(club_type)
        return [public_user(u) for u in self._users.get_many(club["members"])]

    def is_member(self, user_id: str, club_type: str) -> Dict[str, Any]:
        club = self.ensure_club(club_type)
        return {"is_member": user_id in club["members"], "club_type": club["type"]}

    def join_club(self, user_id: str, club_type: str) -> Document:
        club = self.ensure_club(club_type)
        if user_id in club["members"]:
            raise AlreadyMember("You are already a member of this club")
        with self._repair_on_failure(user_id):
            self._clubs.add_member(club["type"], user_id)
            self._users.add_joined_club(user_id, club["type"])
        logger.info("User %s joined club %s", user_id, club["type"])
        return self._clubs.get(club["type"])

    def leave_club(self, user_id: str, club_type: str) -> Document:
        club = self.ensure_club(club_type)
        if user_id not in club["members"]:
            raise NotMember("You are not a member of this club")
        with self._repair_on_failure(user_id):
            self._clubs.remove_member(club["type"], user_id)
            self._users.remove_joined_club(user_id, club["type"])
            self._users.remove_club_membership(user_id, club["type"])
        logger.info("User %s left club %s", user_id, club["type"])
        return self._clubs.get(club["type"])

    def delete_club(self, club_type: str) -> Dict[str, Any]:
        normalized = normalize_club_type(club_type)
        club = self._clubs.get(normalized)
        if not club:
            raise NotFound(f"No club found with type: {club_type}")
        events_deleted = self._events.delete_by_club_type(normalized)
        users_updated = self._users.strip_club_from_all(normalized)
        self._clubs.delete(normalized)
        logger.info(
            "Deleted club %s with %d events; stripped from %d users", normalized, events_deleted, users_updated
        )
        return {
            "message": f"Club {normalized} and all associated data successfully deleted",
            "events_deleted": events_deleted,
            "users_updated": users_updated,
        }

    # ----------------------- Sub-clubs -----------------------
    def list_subclubs(self, club_type: str) -> List[Document]:
        return self.ensure_club(club_type)["subclubs"]

    def create_subclub(self, club_type: str, name: str, description: str = "") -> Document:
        name = (name or "").strip()
        if not name:
            raise ValidationError("Subclub name is required")
        club = self.ensure_club(club_type)
        if find_subclub(club, name):
            raise AlreadyExists(f"Subclub with name '{name}' already exists in {club['type']} club")
        self._add_subclub(club["type"], name, description or "")
        logger.info("Created subclub '%s' in %s club", name, club["type"])
        return find_subclub(self._clubs.get(club["type"]), name)

    def resolve_subclub(self, club_type: str, name: str, *, create_default: bool = False) -> tuple:
        """Return ``(club, subclub)``; a default sub-club is created on demand when asked."""

        club = self.ensure_club(club_type)
        subclub = find_subclub(club, name)
        if subclub is None and create_default:
            default = next(
                (d for d in DEFAULT_SUBCLUBS[club["type"]] if d["name"].lower() == name.strip().lower()),
                None,
            )
            if default is not None:
                self._add_subclub(club["type"], default["name"], default["description"])
                logger.info("Created default subclub '%s' in %s club", default["name"], club["type"])
                club = self._clubs.get(club["type"])
                subclub = find_subclub(club, name)
        if subclub is None:
            raise NotFound(f"Subclub '{name}' not found in {club['type']} club")
        return club, subclub

    def join_subclub(self, user_id: str, club_type: str, subclub_name: str) -> Document:
        club, subclub = self.resolve_subclub(club_type, subclub_name, create_default=True)
        if user_id in subclub["members"]:
            raise AlreadyMember(f"You are already a member of the '{subclub['name']}' subclub")
        with self._repair_on_failure(user_id):
            if user_id not in club["members"]:
                self._clubs.add_member(club["type"], user_id)
                self._users.add_joined_club(user_id, club["type"])
                logger.info("User %s automatically joined parent club %s", user_id, club["type"])
            self._clubs.add_subclub_member(club["type"], subclub["name"], user_id)
            self._users.add_subclub_membership(user_id, club["type"], subclub["name"])
        logger.info("User %s joined subclub '%s' in %s club", user_id, subclub["name"], club["type"])
        return find_subclub(self._clubs.get(club["type"]), subclub["name"])

    def subclub_members(self, club_type: str, subclub_name: str) -> List[Dict[str, Any]]:
        _, subclub = self.resolve_subclub(club_type, subclub_name)
        return [public_user(u) for u in self._users.get_many(subclub["members"])]

    def is_subclub_member(self, user_id: str, club_type: str, subclub_name: str) -> Dict[str, Any]:
        club, subclub = self.resolve_subclub(club_type, subclub_name)
        return {
            "is_member": user_id in subclub["members"],
            "club_type": club["type"],
            "subclub_name": subclub["name"],
        }

    def delete_subclub(self, club_type: str, subclub_name: str) -> Dict[str, Any]:
        club, subclub = self.resolve_subclub(club_type, subclub_name)
        self._clubs.remove_subclub(club["type"], subclub["name"])
        users_updated = self._users.strip_subclub_from_all(club["type"], subclub["name"])
        logger.info(
            "Deleted subclub '%s' from %s club; stripped from %d users", subclub["name"], club["type"], users_updated
        )
        return {"message": f"Successfully deleted '{subclub['name']}' subclub", "users_updated": users_updated}

    def remove_subclub_member(self, club_type: str, subclub_name: str, student_id: str) -> Dict[str, Any]:
        club, subclub = self.resolve_subclub(club_type, subclub_name)
        if not self._users.get(student_id):
            raise NotFound("Student not found")
        if student_id not in subclub["members"]:
            raise NotMember(f"Student is not a member of the '{subclub['name']}' subclub")
        with self._repair_on_failure(student_id):
            self._clubs.remove_subclub_member(club["type"], subclub["name"], student_id)
            self._users.remove_subclub_membership(student_id, club["type"], subclub["name"])
        logger.info("Removed %s from subclub '%s' in %s club", student_id, subclub["name"], club["type"])
        return {"student_id": student_id, "subclub_name": subclub["name"], "club_type": club["type"]}

    # ----------------------- Coordinator tools -----------------------
    def add_student(
        self,
        email: str,
        club_type: str,
        subclub_name: Optional[str] = None,
        *,
        strict: bool = False,
    ) -> Dict[str, Any]:
        """Add a student by email; re-running it is a no-op unless ``strict``."""

        normalized = normalize_club_type(club_type)
        student = self._users.get_by_email(email)
        if not student:
            raise NotFound("Student not found with this email")
        club = self.ensure_club(normalized, description=f"{normalized} Club")
        if strict and student["id"] in club["members"]:
            raise AlreadyMember("Student is already a member of this club")

        subclub = None
        subclub_name = (subclub_name or "").strip() or None
        if subclub_name:
            subclub = find_subclub(club, subclub_name)
            if subclub is None:
                self._add_subclub(normalized, subclub_name, f"{subclub_name} subclub")
                logger.info("Created subclub '%s' in %s club", subclub_name, normalized)
                subclub = find_subclub(self._clubs.get(normalized), subclub_name)

        student_id = student["id"]
        with self._repair_on_failure(student_id):
            if student_id not in club["members"]:
                self._clubs.add_member(normalized, student_id)
            self._users.add_joined_club(student_id, normalized)
            if subclub is not None:
                if student_id not in subclub["members"]:
                    self._clubs.add_subclub_member(normalized, subclub["name"], student_id)
                self._users.add_subclub_membership(student_id, normalized, subclub["name"])
            else:
                self._users.add_subclub_membership(student_id, normalized, None)

        suffix = f" ({subclub['name']})" if subclub is not None else ""
        logger.info("Student %s added to %s club%s", email, normalized, suffix)
        return {
            "message": f"Student {student['name']} added to {normalized} club{suffix}",
            "student": public_user(self._users.get(student_id)),
        }

    def reconcile_member(self, user_id: str) -> Dict[str, Any]:
        """Rebuild a user's membership summary from the club member lists."""

        user = self._users.get(user_id)
        if not user:
            raise NotFound("Student not found")
        joined: List[str] = []
        memberships: List[Dict[str, Any]] = []
        for club in self._clubs.list_all():
            subclubs = [s["name"] for s in club["subclubs"] if user_id in s["members"]]
            if user_id in club["members"]:
                joined.append(club["type"])
            if subclubs:
                memberships.append({"club_type": club["type"], "subclubs": subclubs})
            elif user_id in club["members"] and any(
                m["club_type"] == club["type"] for m in user.get("club_memberships", [])
            ):
                # Keep an existing empty entry for a club the user still belongs to.
                memberships.append({"club_type": club["type"], "subclubs": []})
        if _summary_key(joined, memberships) != _summary_key(
            user.get("joined_clubs", []), user.get("club_memberships", [])
        ):
            logger.warning("Repaired membership summary for user %s", user_id)
            self._users.set_memberships(user_id, joined, memberships)
        return public_user(self._users.get(user_id))

    # ----------------------- Helpers -----------------------
    def _add_subclub(self, club_type: str, name: str, description: str) -> None:
        self._clubs.add_subclub(club_type, SubClub(name=name, description=description).model_dump())

    def _with_members(self, club: Document) -> Dict[str, Any]:
        out = dict(club)
        out["members"] = [member_summary(u) for u in self._users.get_many(club["members"])]
        return out

    @contextmanager
    def _repair_on_failure(self, user_id: str):
        try:
            yield
        except DomainError:
            raise
        except Exception:
            logger.exception("Membership write for user %s failed part-way; reconciling", user_id)
            try:
                self.reconcile_member(user_id)
            except Exception:
                logger.exception("Reconciling user %s failed", user_id)
            raise
