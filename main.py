import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from functools import lru_cache
from typing import List, Optional, Literal

from fastapi import FastAPI, Depends, File, Form, Path, Query, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.security import OAuth2PasswordBearer
from fastapi.staticfiles import StaticFiles
from pydantic import BaseModel, EmailStr, Field

from catalog import Upload
from config import load_settings
from container import Container, build_container
from errors import DomainError, Forbidden, ValidationError
from permissions import has_permission, permission_table, permissions_for

# Environment & Security setup
settings = load_settings()

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("college_api")

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login")


@lru_cache(maxsize=1)
def get_container() -> Container:
    return build_container(settings)


@asynccontextmanager
async def lifespan(app: FastAPI):
    container = app.dependency_overrides.get(get_container, get_container)()
    container.prepare()
    logger.info("Started with %s storage", container.settings.storage_backend)
    yield


app = FastAPI(title="College Management API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.mount("/uploads", StaticFiles(directory=settings.upload_dir, check_dir=False), name="uploads")


@app.exception_handler(DomainError)
async def domain_error_handler(request: Request, exc: DomainError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"detail": "Server error"})


# ----------------------- Schemas -----------------------
Role = Literal["student", "teacher", "coordinator"]
ROLE_PATTERN = "^(student|teacher|coordinator)$"


class RegisterRequest(BaseModel):
    name: str = Field(min_length=1)
    email: EmailStr
    password: str = Field(min_length=6)
    role: Optional[Role] = None


class LoginRequest(BaseModel):
    email: EmailStr
    password: str
    role: Optional[Role] = None


class ClubMembershipOut(BaseModel):
    club_type: str
    subclubs: List[str] = []


class PublicUser(BaseModel):
    id: str
    name: str
    email: EmailStr
    role: str
    joined_clubs: List[str] = []
    club_memberships: List[ClubMembershipOut] = []
    created_at: Optional[datetime] = None


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: PublicUser


# ----------------------- Auth Helpers -----------------------
def get_current_user(token: str = Depends(oauth2_scheme), container: Container = Depends(get_container)):
    return container.auth_service.authenticate(token)


def require_permission(capability: str):
    def checker(current=Depends(get_current_user)):
        role = current.get("role")
        if not has_permission(role, capability):
            raise Forbidden(f"User role {role} is not authorized to access this route")
        return current

    return checker


def _upload(document: Optional[UploadFile]) -> Optional[Upload]:
    if document is None or not document.filename:
        return None
    return Upload(document.filename, document.file)


# ----------------------- Health -----------------------
@app.get("/")
def read_root():
    return {"message": "Welcome to College Management System API"}


@app.get("/health")
def health(container: Container = Depends(get_container)):
    return {
        "ok": True,
        "storage": container.settings.storage_backend,
        "time": datetime.now(timezone.utc).isoformat(),
    }


# ----------------------- Auth Endpoints -----------------------
@app.post("/auth/register", response_model=Token, status_code=201)
def register(req: RegisterRequest, container: Container = Depends(get_container)):
    return container.auth_service.register(
        name=req.name, email=str(req.email), password=req.password, role=req.role or "student"
    )


@app.post("/auth/{role}/register", response_model=Token, status_code=201)
def register_as(
    req: RegisterRequest,
    role: str = Path(..., pattern=ROLE_PATTERN),
    container: Container = Depends(get_container),
):
    if req.role and req.role != role:
        raise ValidationError(f"This route registers {role} accounts; the request asked for {req.role}")
    return container.auth_service.register(name=req.name, email=str(req.email), password=req.password, role=role)


@app.post("/auth/login", response_model=Token)
def login(payload: LoginRequest, container: Container = Depends(get_container)):
    return container.auth_service.login(email=str(payload.email), password=payload.password, role=payload.role)


@app.post("/auth/{role}/login", response_model=Token)
def login_as(
    payload: LoginRequest,
    role: str = Path(..., pattern=ROLE_PATTERN),
    container: Container = Depends(get_container),
):
    return container.auth_service.login(email=str(payload.email), password=payload.password, role=role)


@app.get("/auth/me", response_model=PublicUser)
def me(current=Depends(get_current_user)):
    return current


@app.get("/auth/permissions")
def my_permissions(current=Depends(get_current_user)):
    return {"role": current["role"], "permissions": sorted(permissions_for(current["role"]))}


@app.get("/auth/permissions/table")
def role_permissions():
    return permission_table()


# ----------------------- Clubs -----------------------
class ClubIn(BaseModel):
    type: str
    description: str = ""


class SubClubIn(BaseModel):
    name: str
    description: str = ""


class AddStudentIn(BaseModel):
    email: EmailStr


@app.get("/clubs")
def list_clubs(current=Depends(get_current_user), container: Container = Depends(get_container)):
    return container.membership_service.list_clubs()


@app.post("/clubs", status_code=201)
def create_club(
    payload: ClubIn,
    current=Depends(require_permission("crud:clubs")),
    container: Container = Depends(get_container),
):
    return container.membership_service.create_club(payload.type, payload.description)


@app.get("/clubs/{club_type}")
def get_club(club_type: str, current=Depends(get_current_user), container: Container = Depends(get_container)):
    return container.membership_service.get_club(club_type)


@app.delete("/clubs/{club_type}")
def delete_club(
    club_type: str,
    current=Depends(require_permission("crud:clubs")),
    container: Container = Depends(get_container),
):
    return container.membership_service.delete_club(club_type)


@app.put("/clubs/{club_type}/join")
def join_club(club_type: str, current=Depends(get_current_user), container: Container = Depends(get_container)):
    return container.membership_service.join_club(current["id"], club_type)


@app.put("/clubs/{club_type}/leave")
def leave_club(club_type: str, current=Depends(get_current_user), container: Container = Depends(get_container)):
    return container.membership_service.leave_club(current["id"], club_type)


@app.get("/clubs/{club_type}/members")
def club_members(club_type: str, current=Depends(get_current_user), container: Container = Depends(get_container)):
    return container.membership_service.club_members(club_type)


@app.get("/clubs/{club_type}/is-member")
def is_club_member(club_type: str, current=Depends(get_current_user), container: Container = Depends(get_container)):
    return container.membership_service.is_member(current["id"], club_type)


@app.post("/clubs/{club_type}/add-student")
def add_student_to_club(
    club_type: str,
    payload: AddStudentIn,
    current=Depends(require_permission("add:students")),
    container: Container = Depends(get_container),
):
    return container.membership_service.add_student(str(payload.email), club_type, strict=True)


@app.get("/clubs/{club_type}/subclubs")
def list_subclubs(club_type: str, current=Depends(get_current_user), container: Container = Depends(get_container)):
    return container.membership_service.list_subclubs(club_type)


@app.post("/clubs/{club_type}/subclubs", status_code=201)
def create_subclub(
    club_type: str,
    payload: SubClubIn,
    current=Depends(require_permission("crud:clubs")),
    container: Container = Depends(get_container),
):
    return container.membership_service.create_subclub(club_type, payload.name, payload.description)


# Sub-club names may contain "/" (AI/ML), hence the path converters.
@app.put("/clubs/{club_type}/subclubs/{subclub_name:path}/join")
def join_subclub(
    club_type: str,
    subclub_name: str,
    current=Depends(get_current_user),
    container: Container = Depends(get_container),
):
    return container.membership_service.join_subclub(current["id"], club_type, subclub_name)


@app.get("/clubs/{club_type}/subclubs/{subclub_name:path}/members")
def subclub_members(
    club_type: str,
    subclub_name: str,
    current=Depends(get_current_user),
    container: Container = Depends(get_container),
):
    return container.membership_service.subclub_members(club_type, subclub_name)


@app.get("/clubs/{club_type}/subclubs/{subclub_name:path}/is-member")
def is_subclub_member(
    club_type: str,
    subclub_name: str,
    current=Depends(get_current_user),
    container: Container = Depends(get_container),
):
    return container.membership_service.is_subclub_member(current["id"], club_type, subclub_name)


@app.delete("/clubs/{club_type}/subclubs/{subclub_name:path}/members/{student_id}")
def remove_subclub_member(
    club_type: str,
    subclub_name: str,
    student_id: str,
    current=Depends(require_permission("crud:clubs")),
    container: Container = Depends(get_container),
):
    return container.membership_service.remove_subclub_member(club_type, subclub_name, student_id)


@app.delete("/clubs/{club_type}/subclubs/{subclub_name:path}")
def delete_subclub(
    club_type: str,
    subclub_name: str,
    current=Depends(require_permission("crud:clubs")),
    container: Container = Depends(get_container),
):
    return container.membership_service.delete_subclub(club_type, subclub_name)


# ----------------------- Events -----------------------
class EventIn(BaseModel):
    title: str = Field(min_length=1)
    description: str = Field(min_length=1)
    date: datetime
    club_type: str
    location: Optional[str] = None


class EventUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    date: Optional[datetime] = None
    club_type: Optional[str] = None
    location: Optional[str] = None


@app.get("/events")
def list_events(
    club_type: Optional[str] = None,
    current=Depends(get_current_user),
    container: Container = Depends(get_container),
):
    return container.event_service.list(club_type)


@app.post("/events", status_code=201)
def create_event(payload: EventIn, current=Depends(get_current_user), container: Container = Depends(get_container)):
    return container.event_service.create(current, **payload.model_dump())


@app.get("/events/{event_id}")
def get_event(event_id: str, current=Depends(get_current_user), container: Container = Depends(get_container)):
    return container.event_service.get(event_id)


@app.put("/events/{event_id}")
def update_event(
    event_id: str,
    payload: EventUpdate,
    current=Depends(get_current_user),
    container: Container = Depends(get_container),
):
    return container.event_service.update(current, event_id, payload.model_dump(exclude_unset=True))


@app.delete("/events/{event_id}")
def delete_event(event_id: str, current=Depends(get_current_user), container: Container = Depends(get_container)):
    container.event_service.delete(current, event_id)
    return {"message": "Event deleted"}


# ----------------------- Curriculum -----------------------
@app.get("/curriculum")
def list_curriculum(
    semester: Optional[int] = Query(None, ge=1, le=8),
    container: Container = Depends(get_container),
):
    return container.curriculum_service.list(semester=semester)


@app.get("/curriculum/{item_id}")
def get_curriculum_item(item_id: str, container: Container = Depends(get_container)):
    return container.curriculum_service.get(item_id)


@app.post("/curriculum", status_code=201)
def create_curriculum_item(
    title: str = Form(..., min_length=1),
    description: str = Form(..., min_length=1),
    semester: int = Form(..., ge=1, le=8),
    file_link: Optional[str] = Form(None),
    document: Optional[UploadFile] = File(None),
    current=Depends(require_permission("crud:curriculum")),
    container: Container = Depends(get_container),
):
    fields = {"title": title, "description": description, "semester": semester, "file_link": file_link}
    return container.curriculum_service.create(current, fields, _upload(document))


@app.put("/curriculum/{item_id}")
def update_curriculum_item(
    item_id: str,
    title: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    semester: Optional[int] = Form(None, ge=1, le=8),
    file_link: Optional[str] = Form(None),
    document: Optional[UploadFile] = File(None),
    current=Depends(require_permission("crud:curriculum")),
    container: Container = Depends(get_container),
):
    fields = {"title": title, "description": description, "semester": semester, "file_link": file_link}
    return container.curriculum_service.update(current, item_id, fields, _upload(document))


@app.delete("/curriculum/{item_id}")
def delete_curriculum_item(
    item_id: str,
    current=Depends(require_permission("crud:curriculum")),
    container: Container = Depends(get_container),
):
    container.curriculum_service.delete(current, item_id)
    return {"message": "Curriculum item deleted successfully"}


# ----------------------- Library -----------------------
@app.get("/library")
def list_library(search: Optional[str] = None, container: Container = Depends(get_container)):
    return container.library_service.list(search=search)


@app.get("/library/my-uploads")
def my_library_uploads(
    current=Depends(require_permission("crud:library")),
    container: Container = Depends(get_container),
):
    return container.library_service.list(added_by=current["id"])


@app.get("/library/{item_id}")
def get_library_item(item_id: str, container: Container = Depends(get_container)):
    return container.library_service.get(item_id)


@app.post("/library", status_code=201)
def create_library_item(
    title: str = Form(..., min_length=1),
    author: str = Form(..., min_length=1),
    description: str = Form(""),
    semester: int = Form(1, ge=1, le=8),
    file_link: Optional[str] = Form(None),
    document: Optional[UploadFile] = File(None),
    current=Depends(require_permission("crud:library")),
    container: Container = Depends(get_container),
):
    fields = {
        "title": title,
        "author": author,
        "description": description,
        "semester": semester,
        "file_link": file_link,
    }
    return container.library_service.create(current, fields, _upload(document))


@app.put("/library/{item_id}")
def update_library_item(
    item_id: str,
    title: Optional[str] = Form(None),
    author: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    semester: Optional[int] = Form(None, ge=1, le=8),
    file_link: Optional[str] = Form(None),
    document: Optional[UploadFile] = File(None),
    current=Depends(require_permission("crud:library")),
    container: Container = Depends(get_container),
):
    fields = {
        "title": title,
        "author": author,
        "description": description,
        "semester": semester,
        "file_link": file_link,
    }
    return container.library_service.update(current, item_id, fields, _upload(document))


@app.delete("/library/{item_id}")
def delete_library_item(
    item_id: str,
    current=Depends(require_permission("crud:library")),
    container: Container = Depends(get_container),
):
    container.library_service.delete(current, item_id)
    return {"message": "Library item deleted successfully"}


# ----------------------- Attendance -----------------------
class SubjectIn(BaseModel):
    name: str


class MarkAttendanceIn(BaseModel):
    status: Literal["Present", "Absent"]
    date: Optional[datetime] = None


@app.get("/attendance/subjects")
def list_subjects(
    current=Depends(require_permission("mark:attendance")),
    container: Container = Depends(get_container),
):
    return container.attendance_service.list_subjects(current["id"])


@app.post("/attendance/subjects", status_code=201)
def create_subject(
    payload: SubjectIn,
    current=Depends(require_permission("add:subjects")),
    container: Container = Depends(get_container),
):
    return container.attendance_service.create_subject(current["id"], payload.name)


@app.delete("/attendance/subjects/{subject_id}")
def delete_subject(
    subject_id: str,
    current=Depends(require_permission("mark:attendance")),
    container: Container = Depends(get_container),
):
    removed = container.attendance_service.delete_subject(current["id"], subject_id)
    return {"message": "Subject deleted", "records_deleted": removed}


@app.get("/attendance/subjects/{subject_id}/records")
def list_attendance_records(
    subject_id: str,
    current=Depends(require_permission("mark:attendance")),
    container: Container = Depends(get_container),
):
    return container.attendance_service.list_records(current["id"], subject_id)


@app.post("/attendance/subjects/{subject_id}/records")
def mark_attendance(
    subject_id: str,
    payload: MarkAttendanceIn,
    current=Depends(require_permission("mark:attendance")),
    container: Container = Depends(get_container),
):
    return container.attendance_service.mark(current["id"], subject_id, payload.status, payload.date)


@app.get("/attendance/subjects/{subject_id}/percentage")
def subject_percentage(
    subject_id: str,
    current=Depends(require_permission("mark:attendance")),
    container: Container = Depends(get_container),
):
    return container.attendance_service.subject_percentage(current["id"], subject_id)


@app.get("/attendance/percentage")
def all_percentages(
    current=Depends(require_permission("mark:attendance")),
    container: Container = Depends(get_container),
):
    return container.attendance_service.all_percentages(current["id"])


@app.delete("/attendance/records/{record_id}")
def delete_attendance_record(
    record_id: str,
    current=Depends(require_permission("mark:attendance")),
    container: Container = Depends(get_container),
):
    container.attendance_service.delete_record(current["id"], record_id)
    return {"message": "Record deleted"}


# ----------------------- Admin -----------------------
class AdminAddStudentIn(BaseModel):
    email: EmailStr
    club_type: str
    subclub_name: Optional[str] = None


@app.post("/admin/club/add-student")
def admin_add_student(
    payload: AdminAddStudentIn,
    current=Depends(require_permission("add:students")),
    container: Container = Depends(get_container),
):
    return container.membership_service.add_student(str(payload.email), payload.club_type, payload.subclub_name)


@app.get("/admin/students")
def admin_list_students(
    current=Depends(require_permission("add:students")),
    container: Container = Depends(get_container),
):
    return container.auth_service.list_students()


@app.post("/admin/students/{student_id}/reconcile")
def admin_reconcile_student(
    student_id: str,
    current=Depends(require_permission("add:students")),
    container: Container = Depends(get_container),
):
    return container.membership_service.reconcile_member(student_id)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=settings.port)
