"""
Database connection for the shoe store.

A single ``Database`` object owns the MongoDB client. It is opened at startup,
handed to the services that need it and closed on shutdown. Collection names
follow the schema class names in lowercase: Product -> "product",
Order -> "order".
"""

import logging
import os
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from bson import ObjectId
from bson.errors import InvalidId
from dotenv import load_dotenv
from pydantic import BaseModel
from pymongo import MongoClient
from pymongo.errors import PyMongoError

from errors import StorageError

load_dotenv()

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_object_id(value: Union[str, ObjectId]) -> Optional[ObjectId]:
    """Parse a string id; malformed ids yield None so callers report not-found."""
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        return None


def to_str_id(doc: dict):
    if not doc:
        return doc
    d = doc.copy()
    if "_id" in d:
        d["id"] = str(d.pop("_id"))
    return d


class Database:
    def __init__(self, client: MongoClient, name: str):
        self.client = client
        self.name = name
        self.db = client[name]

    @classmethod
    def from_env(cls) -> Optional["Database"]:
        database_url = os.getenv("DATABASE_URL")
        database_name = os.getenv("DATABASE_NAME")
        if not database_url or not database_name:
            logger.warning("DATABASE_URL / DATABASE_NAME not set; running without a database")
            return None
        client = MongoClient(
            database_url,
            tz_aware=True,
            maxPoolSize=10,
            serverSelectionTimeoutMS=5000,
            socketTimeoutMS=45000,
        )
        logger.info("MongoDB client created for database %s", database_name)
        return cls(client, database_name)

    def collection(self, name: str):
        return self.db[name]

    def ping(self) -> bool:
        try:
            self.client.admin.command("ping")
            return True
        except PyMongoError as e:
            logger.warning("MongoDB ping failed: %s", e)
            return False

    def list_collection_names(self) -> List[str]:
        return self.db.list_collection_names()

    def create_document(self, collection_name: str, data: Union[BaseModel, dict]) -> str:
        """Insert a document stamped with created_at/updated_at and return its id."""
        if isinstance(data, BaseModel):
            data_dict = data.model_dump()
        else:
            data_dict = data.copy()
        now = utcnow()
        data_dict["created_at"] = now
        data_dict["updated_at"] = now
        try:
            result = self.db[collection_name].insert_one(data_dict)
        except PyMongoError as e:
            logger.exception("Insert into %s failed", collection_name)
            raise StorageError(f"Could not save {collection_name}") from e
        return str(result.inserted_id)

    def get_documents(
        self,
        collection_name: str,
        filter_dict: Optional[Dict[str, Any]] = None,
        limit: Optional[int] = None,
        sort: Optional[List[tuple]] = None,
        skip: int = 0,
    ) -> List[dict]:
        try:
            cursor = self.db[collection_name].find(filter_dict or {})
            if sort:
                cursor = cursor.sort(sort)
            if skip:
                cursor = cursor.skip(skip)
            if limit:
                cursor = cursor.limit(limit)
            return list(cursor)
        except PyMongoError as e:
            logger.exception("Query on %s failed", collection_name)
            raise StorageError(f"Could not read {collection_name}") from e

    def count_documents(self, collection_name: str, filter_dict: Optional[Dict[str, Any]] = None) -> int:
        try:
            return self.db[collection_name].count_documents(filter_dict or {})
        except PyMongoError as e:
            raise StorageError(f"Could not count {collection_name}") from e

    def close(self):
        self.client.close()
        logger.info("MongoDB connection closed")
