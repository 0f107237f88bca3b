import logging
from typing import Any, Dict, List, Optional

from errors import AlreadyExists, Unauthorized
from repository import Document, UserRepository
from schemas import User
from security import PasswordHasher, TokenIssuer

logger = logging.getLogger(__name__)

PUBLIC_FIELDS = ("id", "name", "email", "role", "joined_clubs", "club_memberships", "created_at")


def public_user(doc: Document) -> Dict[str, Any]:
    return {k: doc.get(k) for k in PUBLIC_FIELDS}


def member_summary(doc: Document) -> Dict[str, Any]:
    return {"id": doc["id"], "name": doc.get("name"), "email": doc.get("email")}


class AuthService:
    def __init__(self, users: UserRepository, hasher: PasswordHasher, tokens: TokenIssuer):
        self._users = users
        self._hasher = hasher
        self._tokens = tokens

    def register(self, *, name: str, email: str, password: str, role: str = "student") -> Dict[str, Any]:
        if self._users.get_by_email(email):
            raise AlreadyExists("Student with that email already exists")
        doc = User(
            name=name,
            email=email,
            password_hash=self._hasher.hash(password),
            role=role,
        ).model_dump()
        user = self._users.create(doc)
        logger.info("Registered %s as %s", email, role)
        return self._token_response(user)

    def login(self, *, email: str, password: str, role: Optional[str] = None) -> Dict[str, Any]:
        user = self._users.get_by_email(email)
        if not user or not self._hasher.verify(password, user.get("password_hash", "")):
            logger.info("Login failed for %s", email)
            raise Unauthorized("Invalid credentials")
        if role and user.get("role") != role:
            logger.info("Login role mismatch for %s: has %s, asked %s", email, user.get("role"), role)
            raise Unauthorized(f"Account exists but not as a {role}. Please login with the correct role.")
        return self._token_response(user)

    def authenticate(self, token: str) -> Document:
        user_id = self._tokens.decode_user_id(token)
        user = self._users.get(user_id)
        if not user:
            raise Unauthorized("User not found")
        return user

    def list_students(self) -> List[Dict[str, Any]]:
        return [public_user(u) for u in self._users.list_all()]

    def _token_response(self, user: Document) -> Dict[str, Any]:
        return {
            "access_token": self._tokens.create_access_token(user["id"]),
            "token_type": "bearer",
            "user": public_user(user),
        }
