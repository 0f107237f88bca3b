from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional, Protocol, Sequence

Document = Dict[str, Any]


class UserRepository(Protocol):
    def create(self, doc: Document) -> Document:
        """Insert a user; raises AlreadyExists when the email is taken."""

        raise NotImplementedError

    def get(self, user_id: str) -> Optional[Document]:
        raise NotImplementedError

    def get_by_email(self, email: str) -> Optional[Document]:
        raise NotImplementedError

    def get_many(self, user_ids: Sequence[str]) -> List[Document]:
        raise NotImplementedError

    def list_all(self) -> List[Document]:
        raise NotImplementedError

    def add_joined_club(self, user_id: str, club_type: str) -> None:
        raise NotImplementedError

    def remove_joined_club(self, user_id: str, club_type: str) -> None:
        raise NotImplementedError

    def add_subclub_membership(self, user_id: str, club_type: str, subclub_name: Optional[str]) -> None:
        """Upsert the ``club_type`` entry; ``subclub_name=None`` only ensures the entry."""

        raise NotImplementedError

    def remove_subclub_membership(self, user_id: str, club_type: str, subclub_name: str) -> None:
        """Drop the name and prune the entry once it has no sub-clubs left."""

        raise NotImplementedError

    def remove_club_membership(self, user_id: str, club_type: str) -> None:
        raise NotImplementedError

    def set_memberships(self, user_id: str, joined_clubs: List[str], club_memberships: List[Document]) -> None:
        raise NotImplementedError

    def strip_club_from_all(self, club_type: str) -> int:
        raise NotImplementedError

    def strip_subclub_from_all(self, club_type: str, subclub_name: str) -> int:
        """Drop the name from every user holding it; entries it leaves empty are pruned."""

        raise NotImplementedError


class ClubRepository(Protocol):
    def get(self, club_type: str) -> Optional[Document]:
        raise NotImplementedError

    def list_all(self) -> List[Document]:
        raise NotImplementedError

    def create(self, doc: Document) -> Document:
        """Insert a club; raises AlreadyExists when the type is taken."""

        raise NotImplementedError

    def delete(self, club_type: str) -> bool:
        raise NotImplementedError

    def add_member(self, club_type: str, user_id: str) -> None:
        raise NotImplementedError

    def remove_member(self, club_type: str, user_id: str) -> None:
        """Remove from the club and from every one of its sub-clubs."""

        raise NotImplementedError

    def add_subclub(self, club_type: str, subclub: Document) -> bool:
        raise NotImplementedError

    def remove_subclub(self, club_type: str, subclub_name: str) -> None:
        raise NotImplementedError

    def add_subclub_member(self, club_type: str, subclub_name: str, user_id: str) -> None:
        raise NotImplementedError

    def remove_subclub_member(self, club_type: str, subclub_name: str, user_id: str) -> None:
        raise NotImplementedError


class EventRepository(Protocol):
    def create(self, doc: Document) -> Document:
        raise NotImplementedError

    def get(self, event_id: str) -> Optional[Document]:
        raise NotImplementedError

    def list(self, club_type: Optional[str] = None) -> List[Document]:
        raise NotImplementedError

    def update(self, event_id: str, fields: Document) -> Optional[Document]:
        raise NotImplementedError

    def delete(self, event_id: str) -> bool:
        raise NotImplementedError

    def delete_by_club_type(self, club_type: str) -> int:
        """Case-insensitive match on the event's club type."""

        raise NotImplementedError


class SubjectRepository(Protocol):
    def create(self, doc: Document) -> Document:
        """Insert a subject; raises AlreadyExists on a duplicate (name, student)."""

        raise NotImplementedError

    def get(self, subject_id: str) -> Optional[Document]:
        raise NotImplementedError

    def find_by_name(self, student_id: str, name: str) -> Optional[Document]:
        raise NotImplementedError

    def list_for_student(self, student_id: str) -> List[Document]:
        raise NotImplementedError

    def delete(self, subject_id: str) -> bool:
        raise NotImplementedError


class AttendanceRepository(Protocol):
    def create(self, doc: Document) -> Document:
        """Insert a record; raises Conflict on a duplicate (subject, student, date)."""

        raise NotImplementedError

    def get(self, record_id: str) -> Optional[Document]:
        raise NotImplementedError

    def find_for_day(self, subject_id: str, student_id: str, day: datetime) -> Optional[Document]:
        raise NotImplementedError

    def update_status(self, record_id: str, status: str) -> Optional[Document]:
        raise NotImplementedError

    def update_status_for_day(self, subject_id: str, student_id: str, day: datetime, status: str) -> Optional[Document]:
        raise NotImplementedError

    def list_for(self, subject_id: str, student_id: str) -> List[Document]:
        raise NotImplementedError

    def delete(self, record_id: str) -> bool:
        raise NotImplementedError

    def delete_for_subject(self, subject_id: str) -> int:
        raise NotImplementedError


class CatalogRepository(Protocol):
    """Curriculum and library items share one shape of storage."""

    def create(self, doc: Document) -> Document:
        raise NotImplementedError

    def get(self, item_id: str) -> Optional[Document]:
        raise NotImplementedError

    def list(
        self,
        *,
        semester: Optional[int] = None,
        search: Optional[str] = None,
        added_by: Optional[str] = None,
    ) -> List[Document]:
        raise NotImplementedError

    def update(self, item_id: str, fields: Document) -> Optional[Document]:
        raise NotImplementedError

    def delete(self, item_id: str) -> bool:
        raise NotImplementedError
