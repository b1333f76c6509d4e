# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
MongoDB service layer for voter records with connection pooling.
"""

import os
import re
import logging
from datetime import datetime
from typing import List, Dict, Optional, Any
from pymongo import MongoClient, ASCENDING, DESCENDING
from pymongo.collection import Collection
from pymongo.database import Database
from pymongo.errors import (
    ConnectionFailure,
    ServerSelectionTimeoutError,
    DuplicateKeyError
)
from bson import ObjectId
from bson.errors import InvalidId

from models.entities import Voter

logger = logging.getLogger(__name__)

VOTERS_COLLECTION = "voters"


class DuplicateVoterError(ValueError):
    """Raised when a unique index (cpf or email) rejects an insert."""

    def __init__(self, field: str, message: str):
        super().__init__(message)
        self.field = field


class PaginationResult:
    """Result container for paginated queries."""

    def __init__(self, items: List[Dict], total: int, page: int, page_size: int):
        self.items = items
        self.total = total
        self.page = page
        self.page_size = page_size
        self.total_pages = (total + page_size - 1) // page_size
        self.has_next = page < self.total_pages
        self.has_prev = page > 1


class MongoDBService:
    """MongoDB service for the voters collection with connection pooling."""

    def __init__(self, connection_string: str = None, database_name: str = None):
        """Initialize MongoDB service with connection pooling."""
        self.connection_string = connection_string or os.getenv(
            'MONGODB_URI',
            'mongodb://localhost:27017/oucbt_inscricao_dev'
        )
        self.database_name = database_name or os.getenv('MONGODB_DATABASE', 'oucbt_inscricao_dev')
        self._client: Optional[MongoClient] = None
        self._database: Optional[Database] = None

        # Connection pool settings
        self.max_pool_size = int(os.getenv('MONGODB_MAX_POOL_SIZE', '10'))
        self.min_pool_size = int(os.getenv('MONGODB_MIN_POOL_SIZE', '1'))
        self.max_idle_time_ms = int(os.getenv('MONGODB_MAX_IDLE_TIME_MS', '30000'))
        self.server_selection_timeout_ms = int(os.getenv('MONGODB_SERVER_SELECTION_TIMEOUT_MS', '5000'))

        logger.info(f"MongoDB service initialized for database: {self.database_name}")

    @property
    def client(self) -> MongoClient:
        """Get MongoDB client with connection pooling."""
        if self._client is None:
            try:
                self._client = MongoClient(
                    self.connection_string,
                    maxPoolSize=self.max_pool_size,
                    minPoolSize=self.min_pool_size,
                    maxIdleTimeMS=self.max_idle_time_ms,
                    serverSelectionTimeoutMS=self.server_selection_timeout_ms,
                    retryWrites=True,
                    retryReads=True
                )
                # Test connection
                self._client.admin.command('ping')
                logger.info("MongoDB connection established successfully")
            except (ConnectionFailure, ServerSelectionTimeoutError) as e:
                logger.error(f"Failed to connect to MongoDB: {e}")
                self._client = None
                raise

        return self._client

    @property
    def database(self) -> Database:
        """Get MongoDB database."""
        if self._database is None:
            self._database = self.client[self.database_name]
        return self._database

    def get_collection(self, collection_name: str) -> Collection:
        """Get MongoDB collection."""
        return self.database[collection_name]

    @property
    def voters(self) -> Collection:
        return self.get_collection(VOTERS_COLLECTION)

    def close_connection(self) -> None:
        """Close MongoDB connection."""
        if self._client:
            self._client.close()
            self._client = None
            self._database = None
            logger.info("MongoDB connection closed")

    def health_check(self) -> Dict[str, Any]:
        """Check MongoDB connection health."""
        try:
            # Ping the database
            result = self.client.admin.command('ping')

            # Get server info
            server_info = self.client.server_info()

            return {
                'status': 'healthy',
                'ping': result.get('ok') == 1,
                'version': server_info.get('version'),
                'database': self.database_name,
                'connection_pool_size': self.max_pool_size
            }
        except Exception as e:
            logger.error(f"MongoDB health check failed: {e}")
            return {
                'status': 'unhealthy',
                'error': str(e),
                'database': self.database_name
            }

    def _validate_object_id(self, doc_id: str) -> ObjectId:
        """Validate and convert string ID to ObjectId."""
        try:
            return ObjectId(doc_id)
        except (InvalidId, TypeError):
            raise ValueError(f"Invalid ObjectId format: {doc_id}")

    @staticmethod
    def _to_document(voter: Voter) -> Dict[str, Any]:
        document = voter.model_dump(exclude={"id"})
        document["_id"] = ObjectId(voter.id)
        return document

    @staticmethod
    def _from_document(document: Dict[str, Any]) -> Voter:
        document = dict(document)
        document["id"] = str(document.pop("_id"))
        return Voter.model_validate(document)

    # Voter operations

    def create_voter(self, voter: Voter) -> str:
        """
        Insert a new voter.

        Raises:
            DuplicateVoterError: If the CPF or e-mail is already registered
        """
        try:
            result = self.voters.insert_one(self._to_document(voter))
            logger.info(f"Created voter {result.inserted_id}")
            return str(result.inserted_id)

        except DuplicateKeyError as e:
            key_pattern = (e.details or {}).get("keyPattern", {})
            if "email" in key_pattern:
                raise DuplicateVoterError("email", "Email already registered")
            raise DuplicateVoterError("cpf", "CPF already registered")
        except Exception as e:
            logger.error(f"Failed to create voter: {e}")
            raise

    def find_voter_by_id(self, voter_id: str) -> Optional[Voter]:
        """Find a voter by ID; malformed IDs are treated as not found."""
        try:
            object_id = self._validate_object_id(voter_id)
        except ValueError as e:
            logger.debug(f"Invalid voter ID {voter_id}: {e}")
            return None

        document = self.voters.find_one({"_id": object_id})
        return self._from_document(document) if document else None

    def find_voter_by_cpf(self, cpf: str) -> Optional[Voter]:
        document = self.voters.find_one({"cpf": cpf})
        return self._from_document(document) if document else None

    def find_voter_by_email(self, email: str) -> Optional[Voter]:
        document = self.voters.find_one({"email": email.strip().lower()})
        return self._from_document(document) if document else None

    def _build_voter_query(self, search: Optional[str] = None, status: Optional[str] = None) -> Dict:
        """Build the listing query; status 'all' or None means no status filter."""
        query: Dict[str, Any] = {}
        if status and status != 'all':
            query["status"] = status
        if search and search.strip():
            pattern = {"$regex": re.escape(search.strip()), "$options": "i"}
            query["$or"] = [{"name": pattern}, {"email": pattern}]
        return query

    def paginate_voters(self, page: int = 1, page_size: int = 20, search: Optional[str] = None,
                        status: Optional[str] = None, sort_by: str = "created_at",
                        sort_order: int = DESCENDING) -> PaginationResult:
        """Paginate voters with search on name/e-mail and status filter."""
        try:
            query = self._build_voter_query(search, status)

            # Calculate skip value
            skip = (page - 1) * page_size

            total = self.voters.count_documents(query)
            cursor = self.voters.find(query).sort(sort_by, sort_order).skip(skip).limit(page_size)
            items = [self._from_document(doc) for doc in cursor]

            logger.debug(f"Paginated {len(items)} voters (page {page})")
            return PaginationResult(items, total, page, page_size)

        except Exception as e:
            logger.error(f"Failed to paginate voters: {e}")
            raise

    def update_voter_status(self, voter_id: str, status: str, reviewer_id: Optional[str] = None) -> bool:
        """Set the review status of a voter."""
        try:
            object_id = self._validate_object_id(voter_id)
            now = datetime.utcnow()
            updates = {
                "status": status,
                "status_changed_at": now,
                "updated_at": now,
                "updated_by": reviewer_id
            }

            result = self.voters.update_one({"_id": object_id}, {"$set": updates})

            if result.matched_count > 0:
                logger.info(f"Updated status of voter {voter_id} to {status}")
                return True
            logger.warning(f"No voter updated for {voter_id}")
            return False

        except ValueError as e:
            logger.error(f"Invalid voter ID {voter_id}: {e}")
            return False
        except Exception as e:
            logger.error(f"Failed to update voter {voter_id}: {e}")
            raise

    def list_voters_by_status(self, status: str) -> List[Voter]:
        """All voters with a status, ordered by name."""
        cursor = self.voters.find({"status": status}).sort("name", ASCENDING)
        return [self._from_document(doc) for doc in cursor]

    # Index Management

    def create_indexes(self) -> None:
        """Create unique and performance indexes for the voters collection."""
        try:
            logger.info("Creating MongoDB indexes...")

            self.voters.create_index("cpf", unique=True)
            self.voters.create_index("email", unique=True)
            self.voters.create_index([("status", ASCENDING), ("name", ASCENDING)])
            self.voters.create_index([("created_at", DESCENDING)])

            logger.info("MongoDB indexes created successfully")

        except Exception as e:
            logger.error(f"Failed to create MongoDB indexes: {e}")
            raise


# Singleton instance for application use
_mongodb_service: Optional[MongoDBService] = None


def get_mongodb_service() -> MongoDBService:
    """Get singleton MongoDB service instance."""
    global _mongodb_service
    if _mongodb_service is None:
        _mongodb_service = MongoDBService()
    return _mongodb_service


def close_mongodb_connection() -> None:
    """Close MongoDB connection (for cleanup)."""
    global _mongodb_service
    if _mongodb_service:
        _mongodb_service.close_connection()
        _mongodb_service = None
