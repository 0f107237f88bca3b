import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from errors import Forbidden, NotFound
from membership import normalize_club_type
from permissions import has_permission
from repository import ClubRepository, Document, EventRepository
from schemas import Event

logger = logging.getLogger(__name__)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


class EventService:
    def __init__(self, events: EventRepository, clubs: ClubRepository):
        self._events = events
        self._clubs = clubs

    def list(self, club_type: Optional[str] = None) -> List[Document]:
        normalized = normalize_club_type(club_type) if club_type else None
        return self._events.list(normalized)

    def get(self, event_id: str) -> Document:
        event = self._events.get(event_id)
        if not event:
            raise NotFound("Event not found")
        return event

    def create(
        self,
        user: Document,
        *,
        title: str,
        description: str,
        date: datetime,
        club_type: str,
        location: Optional[str] = None,
    ) -> Document:
        normalized = normalize_club_type(club_type)
        club = self._clubs.get(normalized)
        if not club:
            raise NotFound("Club not found")
        if user["id"] not in club["members"] and not has_permission(user["role"], "crud:events"):
            raise Forbidden("You need to be a member of this club or a coordinator to create events")
        doc = Event(
            title=title,
            description=description,
            date=_as_utc(date),
            club_type=club["type"],
            location=location or "TBD",
            organizer=user["id"],
        ).model_dump()
        event = self._events.create(doc)
        logger.info("Event %s created for %s club by %s", event["id"], club["type"], user["id"])
        return event

    def update(self, user: Document, event_id: str, fields: Dict[str, Any]) -> Document:
        event = self._check_organizer(user, event_id, "update")
        changes = {k: v for k, v in fields.items() if v is not None}
        if "club_type" in changes:
            changes["club_type"] = normalize_club_type(changes["club_type"])
            if not self._clubs.get(changes["club_type"]):
                raise NotFound("Club not found")
        if "date" in changes:
            changes["date"] = _as_utc(changes["date"])
        if not changes:
            return event
        return self._events.update(event["id"], changes)

    def delete(self, user: Document, event_id: str) -> None:
        event = self._check_organizer(user, event_id, "delete")
        self._events.delete(event["id"])
        logger.info("Event %s deleted by %s", event["id"], user["id"])

    def _check_organizer(self, user: Document, event_id: str, action: str) -> Document:
        event = self.get(event_id)
        if event["organizer"] != user["id"] and not has_permission(user["role"], "crud:events"):
            raise Forbidden(
                f"Not authorized to {action} this event. You must be the event organizer or a coordinator."
            )
        return event
