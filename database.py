"""
Database connection and helpers

The MongoDB client is created once at import time from DATABASE_URL and
DATABASE_NAME. When either is missing `db` stays None and the API answers
with a 500 on routes that need it.
"""
import os
import logging
from datetime import datetime, timezone
from typing import Optional

from pymongo import MongoClient, ASCENDING

logger = logging.getLogger(__name__)

DATABASE_URL = os.getenv("DATABASE_URL")
DATABASE_NAME = os.getenv("DATABASE_NAME")

db = None

if DATABASE_URL and DATABASE_NAME:
    client = MongoClient(DATABASE_URL)
    db = client[DATABASE_NAME]


def get_db():
    """FastAPI dependency returning the configured database."""
    return db


def ensure_indexes(database) -> None:
    database["user"].create_index([("email", ASCENDING)], unique=True)
    database["category"].create_index([("name", ASCENDING)], unique=True)
    database["review"].create_index([("product_id", ASCENDING), ("user_id", ASCENDING)], unique=True)
    database["review"].create_index([("product_id", ASCENDING), ("status", ASCENDING)])
    logger.info("Indexes ensured on %s", getattr(database, "name", "database"))


def create_document(collection_name: str, data: dict, database=None) -> str:
    """Insert a document with created_at/updated_at stamps and return its id."""
    database = database if database is not None else db
    if database is None:
        raise Exception("Database not available. Check DATABASE_URL and DATABASE_NAME environment variables.")
    now = datetime.now(timezone.utc)
    doc = {**data, "created_at": now, "updated_at": now}
    result = database[collection_name].insert_one(doc)
    return str(result.inserted_id)


def get_documents(collection_name: str, filter_dict: Optional[dict] = None, limit: Optional[int] = None, database=None) -> list:
    database = database if database is not None else db
    if database is None:
        raise Exception("Database not available. Check DATABASE_URL and DATABASE_NAME environment variables.")
    cursor = database[collection_name].find(filter_dict or {})
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)
