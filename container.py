from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Optional

from accounts import AuthService
from attendance import AttendanceService
from catalog import CURRICULUM_EXTENSIONS, LIBRARY_EXTENSIONS, CatalogService
from config import Settings
from events import EventService
from membership import MembershipService
from repository import (
    AttendanceRepository,
    CatalogRepository,
    ClubRepository,
    EventRepository,
    SubjectRepository,
    UserRepository,
)
from schemas import Curriculum, Library
from security import PasswordHasher, TokenIssuer
from uploads import UploadStore

logger = logging.getLogger(__name__)

CURRICULUM_SORT = [("semester", 1), ("created_at", -1)]
LIBRARY_SORT = [("created_at", -1)]
LIBRARY_SEARCH = ["title", "author", "description"]


@dataclass(frozen=True)
class Container:
    settings: Settings

    users_repo: UserRepository
    clubs_repo: ClubRepository
    events_repo: EventRepository
    subjects_repo: SubjectRepository
    attendance_repo: AttendanceRepository
    curriculum_repo: CatalogRepository
    library_repo: CatalogRepository

    uploads: UploadStore
    auth_service: AuthService
    membership_service: MembershipService
    event_service: EventService
    attendance_service: AttendanceService
    curriculum_service: CatalogService
    library_service: CatalogService

    startup: Optional[Callable[[], None]] = None

    def prepare(self) -> None:
        self.uploads.prepare(self.curriculum_service.feature, self.library_service.feature)
        if self.startup is not None:
            self.startup()


def _mongo_repositories(settings: Settings):
    from database import connect, ensure_indexes
    from mongo_store import (
        MongoAttendanceRepository,
        MongoCatalogRepository,
        MongoClubRepository,
        MongoEventRepository,
        MongoSubjectRepository,
        MongoUserRepository,
    )

    db = connect(settings.database_url, settings.database_name)
    repos = dict(
        users_repo=MongoUserRepository(db),
        clubs_repo=MongoClubRepository(db),
        events_repo=MongoEventRepository(db),
        subjects_repo=MongoSubjectRepository(db),
        attendance_repo=MongoAttendanceRepository(db),
        curriculum_repo=MongoCatalogRepository(db, "curriculum", sort=CURRICULUM_SORT, search_fields=[]),
        library_repo=MongoCatalogRepository(db, "library", sort=LIBRARY_SORT, search_fields=LIBRARY_SEARCH),
    )
    return repos, lambda: ensure_indexes(db)


def _memory_repositories():
    from memory_store import (
        MemoryAttendanceRepository,
        MemoryCatalogRepository,
        MemoryClubRepository,
        MemoryDatabase,
        MemoryEventRepository,
        MemorySubjectRepository,
        MemoryUserRepository,
    )

    db = MemoryDatabase()
    logger.warning("Using the in-memory store; data is lost when the process exits")
    repos = dict(
        users_repo=MemoryUserRepository(db),
        clubs_repo=MemoryClubRepository(db),
        events_repo=MemoryEventRepository(db),
        subjects_repo=MemorySubjectRepository(db),
        attendance_repo=MemoryAttendanceRepository(db),
        curriculum_repo=MemoryCatalogRepository(db, "curriculum", sort=CURRICULUM_SORT, search_fields=[]),
        library_repo=MemoryCatalogRepository(db, "library", sort=LIBRARY_SORT, search_fields=LIBRARY_SEARCH),
    )
    return repos, None


def build_container(settings: Settings) -> Container:
    if settings.storage_backend == "mongo":
        repos, startup = _mongo_repositories(settings)
    elif settings.storage_backend == "memory":
        repos, startup = _memory_repositories()
    else:
        raise ValueError(f"Unsupported storage backend: {settings.storage_backend}")

    users = repos["users_repo"]
    uploads = UploadStore(settings.upload_dir, settings.max_upload_bytes)
    tokens = TokenIssuer(settings.secret_key, settings.algorithm, settings.access_token_expire_minutes)

    return Container(
        settings=settings,
        **repos,
        uploads=uploads,
        auth_service=AuthService(users, PasswordHasher(settings.bcrypt_rounds), tokens),
        membership_service=MembershipService(repos["clubs_repo"], users, repos["events_repo"]),
        event_service=EventService(repos["events_repo"], repos["clubs_repo"]),
        attendance_service=AttendanceService(repos["subjects_repo"], repos["attendance_repo"]),
        curriculum_service=CatalogService(
            repos["curriculum_repo"],
            users,
            uploads,
            feature="curriculum",
            model=Curriculum,
            allowed_extensions=CURRICULUM_EXTENSIONS,
            any_item_roles=("teacher", "coordinator"),
            label="Curriculum",
        ),
        library_service=CatalogService(
            repos["library_repo"],
            users,
            uploads,
            feature="library",
            model=Library,
            allowed_extensions=LIBRARY_EXTENSIONS,
            any_item_roles=("coordinator",),
            label="Library",
        ),
        startup=startup,
    )
