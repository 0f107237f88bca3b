import logging

from pymongo import MongoClient, ASCENDING
from pymongo.database import Database

logger = logging.getLogger(__name__)


def connect(database_url: str, database_name: str) -> Database:
    # MongoClient connects lazily; the first command surfaces connection errors.
    client = MongoClient(database_url)
    logger.info("Using MongoDB database %s", database_name)
    return client[database_name]


def ensure_indexes(db: Database) -> None:
    db["user"].create_index([("email", ASCENDING)], unique=True)
    db["club"].create_index([("type", ASCENDING)], unique=True)
    db["event"].create_index([("club_type", ASCENDING), ("date", ASCENDING)])
    db["subject"].create_index([("name", ASCENDING), ("student", ASCENDING)], unique=True)
    db["attendance"].create_index(
        [("subject", ASCENDING), ("student", ASCENDING), ("date", ASCENDING)],
        unique=True,
    )
    db["curriculum"].create_index([("semester", ASCENDING), ("created_at", ASCENDING)])
    db["library"].create_index([("added_by", ASCENDING)])
    logger.info("MongoDB indexes ensured")
