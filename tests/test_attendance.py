from datetime import datetime, timedelta, timezone

import pytest

from attendance import AttendanceService, compute_percentage, day_start
from errors import AlreadyExists, Forbidden, NotFound, ValidationError
from memory_store import MemoryAttendanceRepository, MemoryDatabase, MemorySubjectRepository


class RacingAttendanceRepository(MemoryAttendanceRepository):
    """Misses the existing record once, as if another request inserted it meanwhile."""

    def __init__(self, db):
        super().__init__(db)
        self.missed = False

    def find_for_day(self, subject_id, student_id, day):
        if not self.missed:
            self.missed = True
            return None
        return super().find_for_day(subject_id, student_id, day)


def _service(records_cls=MemoryAttendanceRepository):
    db = MemoryDatabase()
    return AttendanceService(MemorySubjectRepository(db), records_cls(db))


def _records(*statuses):
    return [{"status": s} for s in statuses]


def test_percentage_of_no_records_is_zero():
    assert compute_percentage([]) == {"present": 0, "total": 0, "percentage": 0}


def test_percentage_rounds_to_nearest():
    # 2 of 3 is 66.67
    assert compute_percentage(_records("Present", "Present", "Absent"))["percentage"] == 67
    # 1 of 3 is 33.33
    assert compute_percentage(_records("Present", "Absent", "Absent"))["percentage"] == 33


def test_percentage_half_rounds_up():
    # 1 of 8 is 12.5
    stats = compute_percentage(_records("Present", *["Absent"] * 7))
    assert stats == {"present": 1, "total": 8, "percentage": 13}


def test_day_start_truncates_and_converts_to_utc():
    assert day_start(datetime(2024, 3, 5, 17, 45, 12)) == datetime(2024, 3, 5)
    aware = datetime(2024, 3, 5, 1, 30, tzinfo=timezone(timedelta(hours=5)))
    assert day_start(aware) == datetime(2024, 3, 4)


def test_create_subject_rejects_duplicates_case_insensitively():
    service = _service()
    service.create_subject("s1", "Physics")
    with pytest.raises(AlreadyExists):
        service.create_subject("s1", "physics")
    # other students may reuse the name
    assert service.create_subject("s2", "Physics")["student"] == "s2"


def test_create_subject_requires_name():
    with pytest.raises(ValidationError):
        _service().create_subject("s1", "   ")


def test_marking_same_day_twice_overwrites():
    service = _service()
    subject = service.create_subject("s1", "Math")
    morning = datetime(2024, 1, 10, 9, 0)
    service.mark("s1", subject["id"], "Present", morning)
    service.mark("s1", subject["id"], "Absent", morning + timedelta(hours=6))

    records = service.list_records("s1", subject["id"])
    assert len(records) == 1
    assert records[0]["status"] == "Absent"
    assert records[0]["date"] == datetime(2024, 1, 10)


def test_concurrent_insert_falls_back_to_update():
    service = _service(RacingAttendanceRepository)
    subject = service.create_subject("s1", "Math")
    day = datetime(2024, 1, 10, 9, 0)
    service._records.create(
        {"subject": subject["id"], "student": "s1", "date": datetime(2024, 1, 10), "status": "Present"}
    )

    record = service.mark("s1", subject["id"], "Absent", day)

    assert record["status"] == "Absent"
    assert len(service.list_records("s1", subject["id"])) == 1


def test_scenario_two_present_one_absent():
    service = _service()
    subject = service.create_subject("s1", "Chemistry")
    start = datetime(2024, 2, 1, 10, 0)
    for offset, status in enumerate(["Present", "Present", "Absent"]):
        service.mark("s1", subject["id"], status, start + timedelta(days=offset))

    result = service.subject_percentage("s1", subject["id"])
    assert result["present"] == 2
    assert result["total"] == 3
    assert result["percentage"] == 67
    assert result["subject"] == "Chemistry"


def test_mark_rejects_unknown_status():
    service = _service()
    subject = service.create_subject("s1", "Math")
    with pytest.raises(ValidationError):
        service.mark("s1", subject["id"], "Late")


def test_subjects_are_private_to_their_student():
    service = _service()
    subject = service.create_subject("s1", "Math")
    with pytest.raises(Forbidden):
        service.mark("s2", subject["id"], "Present")
    with pytest.raises(NotFound):
        service.list_records("s1", "missing")


def test_delete_subject_cascades_to_records():
    service = _service()
    subject = service.create_subject("s1", "Math")
    service.mark("s1", subject["id"], "Present", datetime(2024, 1, 1))
    service.mark("s1", subject["id"], "Absent", datetime(2024, 1, 2))

    assert service.delete_subject("s1", subject["id"]) == 2
    assert service.list_subjects("s1") == []
    assert service.all_percentages("s1") == []


def test_delete_record_checks_owner():
    service = _service()
    subject = service.create_subject("s1", "Math")
    record = service.mark("s1", subject["id"], "Present")
    with pytest.raises(Forbidden):
        service.delete_record("s2", record["id"])
    service.delete_record("s1", record["id"])
    with pytest.raises(NotFound):
        service.delete_record("s1", record["id"])
