"""In-memory repositories with the same contracts as the Mongo ones.

Selected with ``STORAGE_BACKEND=memory``. Data lives for the life of the
process; every read and write copies, so callers never share state with the
store.
"""

import copy
import threading
from collections import defaultdict
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from bson import ObjectId

from errors import AlreadyExists, Conflict
from repository import Document


class MemoryDatabase:
    def __init__(self):
        self.lock = threading.RLock()
        self.collections: Dict[str, Dict[str, Document]] = defaultdict(dict)

    def insert(self, name: str, doc: Document) -> Document:
        stored = copy.deepcopy(doc)
        stored["id"] = str(ObjectId())
        self.collections[name][stored["id"]] = stored
        return copy.deepcopy(stored)

    def find(self, name: str, predicate: Callable[[Document], bool] = lambda d: True) -> List[Document]:
        return [d for d in self.collections[name].values() if predicate(d)]


def _copy(doc: Optional[Document]) -> Optional[Document]:
    return copy.deepcopy(doc) if doc is not None else None


def _in_day(value: datetime, day: datetime) -> bool:
    return day <= value < day + timedelta(days=1)


class MemoryUserRepository:
    def __init__(self, db: MemoryDatabase):
        self._db = db
        self._users = db.collections["user"]

    def create(self, doc: Document) -> Document:
        with self._db.lock:
            if self._db.find("user", lambda u: u["email"] == doc["email"]):
                raise AlreadyExists("Student with that email already exists")
            return self._db.insert("user", doc)

    def get(self, user_id: str) -> Optional[Document]:
        with self._db.lock:
            return _copy(self._users.get(user_id))

    def get_by_email(self, email: str) -> Optional[Document]:
        with self._db.lock:
            found = self._db.find("user", lambda u: u["email"] == email)
            return _copy(found[0]) if found else None

    def get_many(self, user_ids: Sequence[str]) -> List[Document]:
        wanted = set(user_ids)
        with self._db.lock:
            found = self._db.find("user", lambda u: u["id"] in wanted)
            return [_copy(u) for u in sorted(found, key=lambda u: u["name"])]

    def list_all(self) -> List[Document]:
        with self._db.lock:
            return [_copy(u) for u in sorted(self._users.values(), key=lambda u: u["name"])]

    def add_joined_club(self, user_id: str, club_type: str) -> None:
        with self._db.lock:
            user = self._users.get(user_id)
            if user is not None and club_type not in user["joined_clubs"]:
                user["joined_clubs"].append(club_type)

    def remove_joined_club(self, user_id: str, club_type: str) -> None:
        with self._db.lock:
            user = self._users.get(user_id)
            if user is not None:
                user["joined_clubs"] = [c for c in user["joined_clubs"] if c != club_type]

    def add_subclub_membership(self, user_id: str, club_type: str, subclub_name: Optional[str]) -> None:
        with self._db.lock:
            user = self._users.get(user_id)
            if user is None:
                return
            for entry in user["club_memberships"]:
                if entry["club_type"] == club_type:
                    if subclub_name and subclub_name not in entry["subclubs"]:
                        entry["subclubs"].append(subclub_name)
                    return
            user["club_memberships"].append(
                {"club_type": club_type, "subclubs": [subclub_name] if subclub_name else []}
            )

    def remove_subclub_membership(self, user_id: str, club_type: str, subclub_name: str) -> None:
        with self._db.lock:
            user = self._users.get(user_id)
            if user is None:
                return
            for entry in user["club_memberships"]:
                if entry["club_type"] == club_type:
                    entry["subclubs"] = [s for s in entry["subclubs"] if s != subclub_name]
            user["club_memberships"] = [
                e for e in user["club_memberships"]
                if not (e["club_type"] == club_type and not e["subclubs"])
            ]

    def remove_club_membership(self, user_id: str, club_type: str) -> None:
        with self._db.lock:
            user = self._users.get(user_id)
            if user is not None:
                user["club_memberships"] = [e for e in user["club_memberships"] if e["club_type"] != club_type]

    def set_memberships(self, user_id: str, joined_clubs: List[str], club_memberships: List[Document]) -> None:
        with self._db.lock:
            user = self._users.get(user_id)
            if user is not None:
                user["joined_clubs"] = list(joined_clubs)
                user["club_memberships"] = copy.deepcopy(club_memberships)

    def strip_club_from_all(self, club_type: str) -> int:
        modified = 0
        with self._db.lock:
            for user in self._users.values():
                touched = club_type in user["joined_clubs"] or any(
                    e["club_type"] == club_type for e in user["club_memberships"]
                )
                if touched:
                    user["joined_clubs"] = [c for c in user["joined_clubs"] if c != club_type]
                    user["club_memberships"] = [e for e in user["club_memberships"] if e["club_type"] != club_type]
                    modified += 1
        return modified

    def strip_subclub_from_all(self, club_type: str, subclub_name: str) -> int:
        modified = 0
        with self._db.lock:
            for user in self._users.values():
                entries = user["club_memberships"]
                if not any(e["club_type"] == club_type and subclub_name in e["subclubs"] for e in entries):
                    continue
                for entry in entries:
                    if entry["club_type"] == club_type:
                        entry["subclubs"] = [s for s in entry["subclubs"] if s != subclub_name]
                user["club_memberships"] = [e for e in entries if e["club_type"] != club_type or e["subclubs"]]
                modified += 1
        return modified


class MemoryClubRepository:
    def __init__(self, db: MemoryDatabase):
        self._db = db

    def _find(self, club_type: str) -> Optional[Document]:
        found = self._db.find("club", lambda c: c["type"] == club_type)
        return found[0] if found else None

    @staticmethod
    def _subclub(club: Document, name: str) -> Optional[Document]:
        for sub in club["subclubs"]:
            if sub["name"] == name:
                return sub
        return None

    def get(self, club_type: str) -> Optional[Document]:
        with self._db.lock:
            return _copy(self._find(club_type))

    def list_all(self) -> List[Document]:
        with self._db.lock:
            return [_copy(c) for c in sorted(self._db.find("club"), key=lambda c: c["type"])]

    def create(self, doc: Document) -> Document:
        with self._db.lock:
            if self._find(doc["type"]) is not None:
                raise AlreadyExists(f"Club with type {doc['type']} already exists")
            return self._db.insert("club", doc)

    def delete(self, club_type: str) -> bool:
        with self._db.lock:
            club = self._find(club_type)
            if club is None:
                return False
            del self._db.collections["club"][club["id"]]
            return True

    def add_member(self, club_type: str, user_id: str) -> None:
        with self._db.lock:
            club = self._find(club_type)
            if club is not None and user_id not in club["members"]:
                club["members"].append(user_id)

    def remove_member(self, club_type: str, user_id: str) -> None:
        with self._db.lock:
            club = self._find(club_type)
            if club is None:
                return
            club["members"] = [m for m in club["members"] if m != user_id]
            for sub in club["subclubs"]:
                sub["members"] = [m for m in sub["members"] if m != user_id]

    def add_subclub(self, club_type: str, subclub: Document) -> bool:
        with self._db.lock:
            club = self._find(club_type)
            if club is None or self._subclub(club, subclub["name"]) is not None:
                return False
            club["subclubs"].append(copy.deepcopy(subclub))
            return True

    def remove_subclub(self, club_type: str, subclub_name: str) -> None:
        with self._db.lock:
            club = self._find(club_type)
            if club is not None:
                club["subclubs"] = [s for s in club["subclubs"] if s["name"] != subclub_name]

    def add_subclub_member(self, club_type: str, subclub_name: str, user_id: str) -> None:
        with self._db.lock:
            club = self._find(club_type)
            sub = self._subclub(club, subclub_name) if club is not None else None
            if sub is not None and user_id not in sub["members"]:
                sub["members"].append(user_id)

    def remove_subclub_member(self, club_type: str, subclub_name: str, user_id: str) -> None:
        with self._db.lock:
            club = self._find(club_type)
            sub = self._subclub(club, subclub_name) if club is not None else None
            if sub is not None:
                sub["members"] = [m for m in sub["members"] if m != user_id]


class MemoryEventRepository:
    def __init__(self, db: MemoryDatabase):
        self._db = db
        self._events = db.collections["event"]

    def create(self, doc: Document) -> Document:
        with self._db.lock:
            return self._db.insert("event", doc)

    def get(self, event_id: str) -> Optional[Document]:
        with self._db.lock:
            return _copy(self._events.get(event_id))

    def list(self, club_type: Optional[str] = None) -> List[Document]:
        with self._db.lock:
            found = self._db.find("event", lambda e: not club_type or e["club_type"] == club_type)
            return [_copy(e) for e in sorted(found, key=lambda e: e["date"])]

    def update(self, event_id: str, fields: Document) -> Optional[Document]:
        with self._db.lock:
            event = self._events.get(event_id)
            if event is None:
                return None
            event.update(copy.deepcopy(fields))
            return _copy(event)

    def delete(self, event_id: str) -> bool:
        with self._db.lock:
            return self._events.pop(event_id, None) is not None

    def delete_by_club_type(self, club_type: str) -> int:
        with self._db.lock:
            doomed = [e["id"] for e in self._events.values() if e["club_type"].lower() == club_type.lower()]
            for event_id in doomed:
                del self._events[event_id]
            return len(doomed)


class MemorySubjectRepository:
    def __init__(self, db: MemoryDatabase):
        self._db = db
        self._subjects = db.collections["subject"]

    def create(self, doc: Document) -> Document:
        with self._db.lock:
            if self._db.find("subject", lambda s: s["student"] == doc["student"] and s["name"] == doc["name"]):
                raise AlreadyExists("Subject already exists")
            return self._db.insert("subject", doc)

    def get(self, subject_id: str) -> Optional[Document]:
        with self._db.lock:
            return _copy(self._subjects.get(subject_id))

    def find_by_name(self, student_id: str, name: str) -> Optional[Document]:
        with self._db.lock:
            found = self._db.find(
                "subject", lambda s: s["student"] == student_id and s["name"].lower() == name.lower()
            )
            return _copy(found[0]) if found else None

    def list_for_student(self, student_id: str) -> List[Document]:
        with self._db.lock:
            found = self._db.find("subject", lambda s: s["student"] == student_id)
            return [_copy(s) for s in sorted(found, key=lambda s: s["name"])]

    def delete(self, subject_id: str) -> bool:
        with self._db.lock:
            return self._subjects.pop(subject_id, None) is not None


class MemoryAttendanceRepository:
    def __init__(self, db: MemoryDatabase):
        self._db = db
        self._records = db.collections["attendance"]

    def _for_day(self, subject_id: str, student_id: str, day: datetime) -> Optional[Document]:
        found = self._db.find(
            "attendance",
            lambda r: r["subject"] == subject_id and r["student"] == student_id and _in_day(r["date"], day),
        )
        return found[0] if found else None

    def create(self, doc: Document) -> Document:
        with self._db.lock:
            if self._db.find(
                "attendance",
                lambda r: (r["subject"], r["student"], r["date"]) == (doc["subject"], doc["student"], doc["date"]),
            ):
                raise Conflict("Attendance already marked for this day")
            return self._db.insert("attendance", doc)

    def get(self, record_id: str) -> Optional[Document]:
        with self._db.lock:
            return _copy(self._records.get(record_id))

    def find_for_day(self, subject_id: str, student_id: str, day: datetime) -> Optional[Document]:
        with self._db.lock:
            return _copy(self._for_day(subject_id, student_id, day))

    def update_status(self, record_id: str, status: str) -> Optional[Document]:
        with self._db.lock:
            record = self._records.get(record_id)
            if record is None:
                return None
            record["status"] = status
            return _copy(record)

    def update_status_for_day(self, subject_id: str, student_id: str, day: datetime, status: str) -> Optional[Document]:
        with self._db.lock:
            record = self._for_day(subject_id, student_id, day)
            if record is None:
                return None
            record["status"] = status
            return _copy(record)

    def list_for(self, subject_id: str, student_id: str) -> List[Document]:
        with self._db.lock:
            found = self._db.find("attendance", lambda r: r["subject"] == subject_id and r["student"] == student_id)
            return [_copy(r) for r in sorted(found, key=lambda r: r["date"], reverse=True)]

    def delete(self, record_id: str) -> bool:
        with self._db.lock:
            return self._records.pop(record_id, None) is not None

    def delete_for_subject(self, subject_id: str) -> int:
        with self._db.lock:
            doomed = [r["id"] for r in self._records.values() if r["subject"] == subject_id]
            for record_id in doomed:
                del self._records[record_id]
            return len(doomed)


class MemoryCatalogRepository:
    def __init__(
        self,
        db: MemoryDatabase,
        collection: str,
        *,
        sort: Sequence[Tuple[str, int]],
        search_fields: Sequence[str],
    ):
        self._db = db
        self._name = collection
        self._items = db.collections[collection]
        self._sort = list(sort)
        self._search_fields = list(search_fields)

    def create(self, doc: Document) -> Document:
        with self._db.lock:
            return self._db.insert(self._name, doc)

    def get(self, item_id: str) -> Optional[Document]:
        with self._db.lock:
            return _copy(self._items.get(item_id))

    def list(
        self,
        *,
        semester: Optional[int] = None,
        search: Optional[str] = None,
        added_by: Optional[str] = None,
    ) -> List[Document]:
        needle = search.lower() if search and self._search_fields else None

        def matches(item: Document) -> bool:
            if semester is not None and item.get("semester") != semester:
                return False
            if added_by and item.get("added_by") != added_by:
                return False
            if needle:
                return any(needle in str(item.get(f) or "").lower() for f in self._search_fields)
            return True

        with self._db.lock:
            found = self._db.find(self._name, matches)
            # Stable sorts applied last key first reproduce a compound sort.
            for field, direction in reversed(self._sort):
                found.sort(key=lambda d: d[field], reverse=direction < 0)
            return [_copy(d) for d in found]

    def update(self, item_id: str, fields: Document) -> Optional[Document]:
        with self._db.lock:
            item = self._items.get(item_id)
            if item is None:
                return None
            item.update(copy.deepcopy(fields))
            return _copy(item)

    def delete(self, item_id: str) -> bool:
        with self._db.lock:
            return self._items.pop(item_id, None) is not None
