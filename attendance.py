import logging
import math
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from errors import AlreadyExists, Conflict, Forbidden, NotFound, ValidationError
from repository import AttendanceRepository, Document, SubjectRepository
from schemas import AttendanceRecord, Subject, utcnow

logger = logging.getLogger(__name__)

STATUSES = ("Present", "Absent")


def day_start(value: Optional[datetime] = None) -> datetime:
    """Truncate to midnight; aware values are converted to naive UTC first."""

    value = value or utcnow()
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value.replace(hour=0, minute=0, second=0, microsecond=0)


def compute_percentage(records: Iterable[Document]) -> Dict[str, int]:
    statuses = [r["status"] for r in records]
    total = len(statuses)
    present = statuses.count("Present")
    # Halves round up.
    percentage = math.floor(100 * present / total + 0.5) if total else 0
    return {"present": present, "total": total, "percentage": percentage}


class AttendanceService:
    def __init__(self, subjects: SubjectRepository, records: AttendanceRepository):
        self._subjects = subjects
        self._records = records

    # ----------------------- Subjects -----------------------
    def list_subjects(self, student_id: str) -> List[Document]:
        return self._subjects.list_for_student(student_id)

    def create_subject(self, student_id: str, name: str) -> Document:
        name = (name or "").strip()
        if not name:
            raise ValidationError("Subject name is required")
        if self._subjects.find_by_name(student_id, name):
            raise AlreadyExists("Subject already exists")
        return self._subjects.create(Subject(name=name, student=student_id).model_dump())

    def delete_subject(self, student_id: str, subject_id: str) -> int:
        subject = self._owned_subject(student_id, subject_id)
        removed = self._records.delete_for_subject(subject["id"])
        self._subjects.delete(subject["id"])
        logger.info("Deleted subject %s and %d attendance records", subject["id"], removed)
        return removed

    # ----------------------- Records -----------------------
    def list_records(self, student_id: str, subject_id: str) -> List[Document]:
        subject = self._owned_subject(student_id, subject_id)
        return self._records.list_for(subject["id"], student_id)

    def mark(self, student_id: str, subject_id: str, status: str, date: Optional[datetime] = None) -> Document:
        """Record one status per subject, student and day; re-marking overwrites."""

        if status not in STATUSES:
            raise ValidationError("Please provide a valid status (Present/Absent)")
        subject = self._owned_subject(student_id, subject_id)
        day = day_start(date)

        existing = self._records.find_for_day(subject["id"], student_id, day)
        if existing:
            return self._records.update_status(existing["id"], status)

        doc = AttendanceRecord(subject=subject["id"], student=student_id, date=day, status=status).model_dump()
        try:
            return self._records.create(doc)
        except Conflict:
            # A concurrent request inserted the same day first.
            logger.warning("Duplicate attendance for subject %s on %s; updating instead", subject["id"], day.date())
            record = self._records.update_status_for_day(subject["id"], student_id, day, status)
            if record is None:
                raise
            return record

    def delete_record(self, student_id: str, record_id: str) -> None:
        record = self._records.get(record_id)
        if not record:
            raise NotFound("Record not found")
        if record["student"] != student_id:
            raise Forbidden("Not authorized to delete this attendance record")
        self._records.delete(record_id)

    # ----------------------- Percentages -----------------------
    def subject_percentage(self, student_id: str, subject_id: str) -> Dict[str, Any]:
        subject = self._owned_subject(student_id, subject_id)
        stats = compute_percentage(self._records.list_for(subject["id"], student_id))
        return {"subject_id": subject["id"], "subject": subject["name"], **stats}

    def all_percentages(self, student_id: str) -> List[Dict[str, Any]]:
        result = []
        for subject in self._subjects.list_for_student(student_id):
            stats = compute_percentage(self._records.list_for(subject["id"], student_id))
            result.append({"subject_id": subject["id"], "subject": subject["name"], **stats})
        return result

    def _owned_subject(self, student_id: str, subject_id: str) -> Document:
        subject = self._subjects.get(subject_id)
        if not subject:
            raise NotFound("Subject not found")
        if subject["student"] != student_id:
            raise Forbidden("Not authorized")
        return subject
