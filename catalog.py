import logging
from typing import Any, BinaryIO, Dict, List, Optional, Sequence, Type

from pydantic import BaseModel
from pydantic import ValidationError as ModelValidationError

from errors import Forbidden, NotFound, ValidationError
from repository import CatalogRepository, Document, UserRepository
from uploads import UploadStore

logger = logging.getLogger(__name__)

CURRICULUM_EXTENSIONS = (".pdf", ".doc", ".docx", ".ppt", ".pptx")
LIBRARY_EXTENSIONS = (".pdf", ".doc", ".docx")


class Upload:
    """A file received in a multipart form."""

    def __init__(self, filename: Optional[str], stream: BinaryIO):
        self.filename = filename
        self.stream = stream


class CatalogService:
    """Curriculum and library documents: a record plus an uploaded file or an external link.

    ``any_item_roles`` may change items added by someone else; everyone else
    is limited to their own uploads.
    """

    def __init__(
        self,
        items: CatalogRepository,
        users: UserRepository,
        uploads: UploadStore,
        *,
        feature: str,
        model: Type[BaseModel],
        allowed_extensions: Sequence[str],
        any_item_roles: Sequence[str],
        label: str,
    ):
        self._items = items
        self._users = users
        self._uploads = uploads
        self._feature = feature
        self._model = model
        self._allowed = tuple(allowed_extensions)
        self._any_item_roles = tuple(any_item_roles)
        self._label = label

    @property
    def feature(self) -> str:
        return self._feature

    def list(
        self,
        *,
        semester: Optional[int] = None,
        search: Optional[str] = None,
        added_by: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        return self._with_authors(self._items.list(semester=semester, search=search, added_by=added_by))

    def get(self, item_id: str) -> Dict[str, Any]:
        return self._with_authors([self._get(item_id)])[0]

    def create(self, user: Document, fields: Dict[str, Any], upload: Optional[Upload] = None) -> Document:
        fields = {k: v for k, v in fields.items() if v is not None}
        link = (fields.pop("file_link", None) or "").strip()
        if upload is not None:
            link = self._uploads.save(self._feature, upload.filename, upload.stream, self._allowed)
        if not link:
            raise ValidationError("Please provide a file or link")
        try:
            doc = self._model(**fields, file_link=link, added_by=user["id"]).model_dump()
        except ModelValidationError as exc:
            if upload is not None:
                self._uploads.remove(link)
            raise ValidationError(exc.errors()[0]["msg"])
        item = self._items.create(doc)
        logger.info("%s item %s added by %s", self._label, item["id"], user["id"])
        return item

    def update(
        self,
        user: Document,
        item_id: str,
        fields: Dict[str, Any],
        upload: Optional[Upload] = None,
    ) -> Document:
        item = self._check_owner(user, item_id, "update")
        changes = {k: v for k, v in fields.items() if v not in (None, "")}
        if upload is not None:
            changes["file_link"] = self._uploads.save(self._feature, upload.filename, upload.stream, self._allowed)
        if "file_link" in changes and changes["file_link"] != item.get("file_link"):
            self._uploads.remove(item.get("file_link"))
        if not changes:
            return item
        return self._items.update(item["id"], changes)

    def delete(self, user: Document, item_id: str) -> None:
        item = self._check_owner(user, item_id, "delete")
        self._uploads.remove(item.get("file_link"))
        self._items.delete(item["id"])
        logger.info("%s item %s deleted by %s", self._label, item["id"], user["id"])

    def _get(self, item_id: str) -> Document:
        item = self._items.get(item_id)
        if not item:
            raise NotFound(f"{self._label} item not found")
        return item

    def _check_owner(self, user: Document, item_id: str, action: str) -> Document:
        item = self._get(item_id)
        if item.get("added_by") != user["id"] and user["role"] not in self._any_item_roles:
            raise Forbidden(f"Not authorized to {action} this item. You can only {action} your own uploads.")
        return item

    def _with_authors(self, items: List[Document]) -> List[Dict[str, Any]]:
        authors = {u["id"]: u["name"] for u in self._users.get_many([i.get("added_by") for i in items])}
        out = []
        for item in items:
            item = dict(item)
            author_id = item.get("added_by")
            item["added_by"] = {"id": author_id, "name": authors.get(author_id)}
            out.append(item)
        return out
