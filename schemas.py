"""
Database Schemas for the College Management API (MongoDB via Pydantic models)
Each Pydantic model describes one stored record; references to other records
are kept as id strings.
"""

from pydantic import BaseModel, Field, EmailStr
from typing import Optional, List, Literal
from datetime import datetime, timezone

Role = Literal["student", "teacher", "coordinator"]
ClubType = Literal["Technical", "Cultural", "Sports"]
AttendanceStatus = Literal["Present", "Absent"]

CLUB_TYPES = ("Technical", "Cultural", "Sports")


def utcnow() -> datetime:
    # Mongo hands back naive UTC datetimes; keep both backends alike.
    return datetime.now(timezone.utc).replace(tzinfo=None)


# Identity
class ClubMembership(BaseModel):
    club_type: ClubType
    subclubs: List[str] = Field(default_factory=list)


class User(BaseModel):
    name: str = Field(..., description="Full name")
    email: EmailStr
    password_hash: str = Field(..., description="bcrypt hash")
    role: Role = "student"
    joined_clubs: List[str] = Field(default_factory=list)
    club_memberships: List[ClubMembership] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utcnow)


# Clubs
class SubClub(BaseModel):
    name: str
    description: str = ""
    members: List[str] = Field(default_factory=list)  # user ids
    created_at: datetime = Field(default_factory=utcnow)


class Club(BaseModel):
    type: ClubType
    description: str = ""
    members: List[str] = Field(default_factory=list)  # user ids
    subclubs: List[SubClub] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utcnow)


class Event(BaseModel):
    title: str
    description: str
    date: datetime
    club_type: ClubType
    location: str = "TBD"
    organizer: str  # user id
    created_at: datetime = Field(default_factory=utcnow)


# Attendance
class Subject(BaseModel):
    name: str
    student: str  # user id
    created_at: datetime = Field(default_factory=utcnow)


class AttendanceRecord(BaseModel):
    subject: str  # subject id
    student: str  # user id
    date: datetime = Field(..., description="Start of the marked day (UTC)")
    status: AttendanceStatus
    created_at: datetime = Field(default_factory=utcnow)


# Catalogs
class Curriculum(BaseModel):
    title: str
    description: str
    semester: int = Field(..., ge=1, le=8)
    file_link: str
    added_by: str  # user id
    created_at: datetime = Field(default_factory=utcnow)


class Library(BaseModel):
    title: str
    author: str
    description: str = ""
    semester: int = Field(1, ge=1, le=8)
    file_link: str
    added_by: str  # user id
    created_at: datetime = Field(default_factory=utcnow)
