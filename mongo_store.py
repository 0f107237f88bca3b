import re
from datetime import datetime, timedelta
from typing import List, Optional, Sequence, Tuple

from bson import ObjectId
from bson.errors import InvalidId
from pymongo import ReturnDocument
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from errors import AlreadyExists, Conflict
from repository import Document


def _oid(value: str) -> Optional[ObjectId]:
    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        return None


def _serialize(doc: Optional[Document]) -> Optional[Document]:
    if not doc:
        return None
    doc["id"] = str(doc.pop("_id"))
    return doc


def _exact_ci(value: str) -> dict:
    return {"$regex": f"^{re.escape(value)}$", "$options": "i"}


def _day_window(day: datetime) -> dict:
    return {"$gte": day, "$lt": day + timedelta(days=1)}


class MongoUserRepository:
    def __init__(self, db: Database):
        self._col = db["user"]

    def create(self, doc: Document) -> Document:
        try:
            res = self._col.insert_one(dict(doc))
        except DuplicateKeyError:
            raise AlreadyExists("Student with that email already exists")
        return self.get(str(res.inserted_id))

    def get(self, user_id: str) -> Optional[Document]:
        oid = _oid(user_id)
        if oid is None:
            return None
        return _serialize(self._col.find_one({"_id": oid}))

    def get_by_email(self, email: str) -> Optional[Document]:
        return _serialize(self._col.find_one({"email": email}))

    def get_many(self, user_ids: Sequence[str]) -> List[Document]:
        oids = [o for o in (_oid(u) for u in user_ids) if o is not None]
        if not oids:
            return []
        return [_serialize(d) for d in self._col.find({"_id": {"$in": oids}}).sort("name", 1)]

    def list_all(self) -> List[Document]:
        return [_serialize(d) for d in self._col.find({}).sort("name", 1)]

    def add_joined_club(self, user_id: str, club_type: str) -> None:
        self._col.update_one({"_id": _oid(user_id)}, {"$addToSet": {"joined_clubs": club_type}})

    def remove_joined_club(self, user_id: str, club_type: str) -> None:
        self._col.update_one({"_id": _oid(user_id)}, {"$pull": {"joined_clubs": club_type}})

    def add_subclub_membership(self, user_id: str, club_type: str, subclub_name: Optional[str]) -> None:
        oid = _oid(user_id)
        entry = {"club_type": club_type, "subclubs": [subclub_name] if subclub_name else []}
        # Two tries: a concurrent request may create the entry between our update and push.
        for _ in range(2):
            if subclub_name:
                res = self._col.update_one(
                    {"_id": oid, "club_memberships.club_type": club_type},
                    {"$addToSet": {"club_memberships.$.subclubs": subclub_name}},
                )
                if res.matched_count:
                    return
            res = self._col.update_one(
                {"_id": oid, "club_memberships.club_type": {"$ne": club_type}},
                {"$push": {"club_memberships": entry}},
            )
            if res.matched_count or not subclub_name:
                return

    def remove_subclub_membership(self, user_id: str, club_type: str, subclub_name: str) -> None:
        oid = _oid(user_id)
        self._col.update_one(
            {"_id": oid, "club_memberships.club_type": club_type},
            {"$pull": {"club_memberships.$.subclubs": subclub_name}},
        )
        self._col.update_one(
            {"_id": oid},
            {"$pull": {"club_memberships": {"club_type": club_type, "subclubs": {"$size": 0}}}},
        )

    def remove_club_membership(self, user_id: str, club_type: str) -> None:
        self._col.update_one({"_id": _oid(user_id)}, {"$pull": {"club_memberships": {"club_type": club_type}}})

    def set_memberships(self, user_id: str, joined_clubs: List[str], club_memberships: List[Document]) -> None:
        self._col.update_one(
            {"_id": _oid(user_id)},
            {"$set": {"joined_clubs": joined_clubs, "club_memberships": club_memberships}},
        )

    def strip_club_from_all(self, club_type: str) -> int:
        res = self._col.update_many(
            {"$or": [{"joined_clubs": club_type}, {"club_memberships.club_type": club_type}]},
            {"$pull": {"joined_clubs": club_type, "club_memberships": {"club_type": club_type}}},
        )
        return res.modified_count

    def strip_subclub_from_all(self, club_type: str, subclub_name: str) -> int:
        affected = self._col.distinct(
            "_id", {"club_memberships": {"$elemMatch": {"club_type": club_type, "subclubs": subclub_name}}}
        )
        if not affected:
            return 0
        res = self._col.update_many(
            {"_id": {"$in": affected}},
            {"$pull": {"club_memberships.$[m].subclubs": subclub_name}},
            array_filters=[{"m.club_type": club_type}],
        )
        # Only entries emptied by this deletion are pruned.
        self._col.update_many(
            {"_id": {"$in": affected}},
            {"$pull": {"club_memberships": {"club_type": club_type, "subclubs": {"$size": 0}}}},
        )
        return res.modified_count


class MongoClubRepository:
    def __init__(self, db: Database):
        self._col = db["club"]

    def get(self, club_type: str) -> Optional[Document]:
        return _serialize(self._col.find_one({"type": club_type}))

    def list_all(self) -> List[Document]:
        return [_serialize(d) for d in self._col.find({}).sort("type", 1)]

    def create(self, doc: Document) -> Document:
        try:
            self._col.insert_one(dict(doc))
        except DuplicateKeyError:
            raise AlreadyExists(f"Club with type {doc['type']} already exists")
        return self.get(doc["type"])

    def delete(self, club_type: str) -> bool:
        return self._col.delete_one({"type": club_type}).deleted_count > 0

    def add_member(self, club_type: str, user_id: str) -> None:
        self._col.update_one({"type": club_type}, {"$addToSet": {"members": user_id}})

    def remove_member(self, club_type: str, user_id: str) -> None:
        self._col.update_one(
            {"type": club_type},
            {"$pull": {"members": user_id, "subclubs.$[].members": user_id}},
        )

    def add_subclub(self, club_type: str, subclub: Document) -> bool:
        res = self._col.update_one(
            {"type": club_type, "subclubs.name": {"$ne": subclub["name"]}},
            {"$push": {"subclubs": subclub}},
        )
        return res.modified_count > 0

    def remove_subclub(self, club_type: str, subclub_name: str) -> None:
        self._col.update_one({"type": club_type}, {"$pull": {"subclubs": {"name": subclub_name}}})

    def add_subclub_member(self, club_type: str, subclub_name: str, user_id: str) -> None:
        self._col.update_one(
            {"type": club_type, "subclubs.name": subclub_name},
            {"$addToSet": {"subclubs.$.members": user_id}},
        )

    def remove_subclub_member(self, club_type: str, subclub_name: str, user_id: str) -> None:
        self._col.update_one(
            {"type": club_type, "subclubs.name": subclub_name},
            {"$pull": {"subclubs.$.members": user_id}},
        )


class MongoEventRepository:
    def __init__(self, db: Database):
        self._col = db["event"]

    def create(self, doc: Document) -> Document:
        res = self._col.insert_one(dict(doc))
        return self.get(str(res.inserted_id))

    def get(self, event_id: str) -> Optional[Document]:
        oid = _oid(event_id)
        if oid is None:
            return None
        return _serialize(self._col.find_one({"_id": oid}))

    def list(self, club_type: Optional[str] = None) -> List[Document]:
        query = {"club_type": club_type} if club_type else {}
        return [_serialize(d) for d in self._col.find(query).sort("date", 1)]

    def update(self, event_id: str, fields: Document) -> Optional[Document]:
        oid = _oid(event_id)
        if oid is None:
            return None
        doc = self._col.find_one_and_update({"_id": oid}, {"$set": fields}, return_document=ReturnDocument.AFTER)
        return _serialize(doc)

    def delete(self, event_id: str) -> bool:
        oid = _oid(event_id)
        return oid is not None and self._col.delete_one({"_id": oid}).deleted_count > 0

    def delete_by_club_type(self, club_type: str) -> int:
        return self._col.delete_many({"club_type": _exact_ci(club_type)}).deleted_count


class MongoSubjectRepository:
    def __init__(self, db: Database):
        self._col = db["subject"]

    def create(self, doc: Document) -> Document:
        try:
            res = self._col.insert_one(dict(doc))
        except DuplicateKeyError:
            raise AlreadyExists("Subject already exists")
        return self.get(str(res.inserted_id))

    def get(self, subject_id: str) -> Optional[Document]:
        oid = _oid(subject_id)
        if oid is None:
            return None
        return _serialize(self._col.find_one({"_id": oid}))

    def find_by_name(self, student_id: str, name: str) -> Optional[Document]:
        return _serialize(self._col.find_one({"student": student_id, "name": _exact_ci(name)}))

    def list_for_student(self, student_id: str) -> List[Document]:
        return [_serialize(d) for d in self._col.find({"student": student_id}).sort("name", 1)]

    def delete(self, subject_id: str) -> bool:
        oid = _oid(subject_id)
        return oid is not None and self._col.delete_one({"_id": oid}).deleted_count > 0


class MongoAttendanceRepository:
    def __init__(self, db: Database):
        self._col = db["attendance"]

    def create(self, doc: Document) -> Document:
        try:
            res = self._col.insert_one(dict(doc))
        except DuplicateKeyError:
            raise Conflict("Attendance already marked for this day")
        return self.get(str(res.inserted_id))

    def get(self, record_id: str) -> Optional[Document]:
        oid = _oid(record_id)
        if oid is None:
            return None
        return _serialize(self._col.find_one({"_id": oid}))

    def find_for_day(self, subject_id: str, student_id: str, day: datetime) -> Optional[Document]:
        return _serialize(self._col.find_one(
            {"subject": subject_id, "student": student_id, "date": _day_window(day)}
        ))

    def update_status(self, record_id: str, status: str) -> Optional[Document]:
        doc = self._col.find_one_and_update(
            {"_id": _oid(record_id)},
            {"$set": {"status": status}},
            return_document=ReturnDocument.AFTER,
        )
        return _serialize(doc)

    def update_status_for_day(self, subject_id: str, student_id: str, day: datetime, status: str) -> Optional[Document]:
        doc = self._col.find_one_and_update(
            {"subject": subject_id, "student": student_id, "date": _day_window(day)},
            {"$set": {"status": status}},
            return_document=ReturnDocument.AFTER,
        )
        return _serialize(doc)

    def list_for(self, subject_id: str, student_id: str) -> List[Document]:
        cursor = self._col.find({"subject": subject_id, "student": student_id}).sort("date", -1)
        return [_serialize(d) for d in cursor]

    def delete(self, record_id: str) -> bool:
        oid = _oid(record_id)
        return oid is not None and self._col.delete_one({"_id": oid}).deleted_count > 0

    def delete_for_subject(self, subject_id: str) -> int:
        return self._col.delete_many({"subject": subject_id}).deleted_count


class MongoCatalogRepository:
    def __init__(
        self,
        db: Database,
        collection: str,
        *,
        sort: Sequence[Tuple[str, int]],
        search_fields: Sequence[str],
    ):
        self._col = db[collection]
        self._sort = list(sort)
        self._search_fields = list(search_fields)

    def create(self, doc: Document) -> Document:
        res = self._col.insert_one(dict(doc))
        return self.get(str(res.inserted_id))

    def get(self, item_id: str) -> Optional[Document]:
        oid = _oid(item_id)
        if oid is None:
            return None
        return _serialize(self._col.find_one({"_id": oid}))

    def list(
        self,
        *,
        semester: Optional[int] = None,
        search: Optional[str] = None,
        added_by: Optional[str] = None,
    ) -> List[Document]:
        query: dict = {}
        if semester is not None:
            query["semester"] = semester
        if added_by:
            query["added_by"] = added_by
        if search and self._search_fields:
            pattern = {"$regex": re.escape(search), "$options": "i"}
            query["$or"] = [{field: pattern} for field in self._search_fields]
        return [_serialize(d) for d in self._col.find(query).sort(self._sort)]

    def update(self, item_id: str, fields: Document) -> Optional[Document]:
        oid = _oid(item_id)
        if oid is None:
            return None
        doc = self._col.find_one_and_update({"_id": oid}, {"$set": fields}, return_document=ReturnDocument.AFTER)
        return _serialize(doc)

    def delete(self, item_id: str) -> bool:
        oid = _oid(item_id)
        return oid is not None and self._col.delete_one({"_id": oid}).deleted_count > 0
