# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Services package - External integrations and side effects.

MongoDB and Redis persistence, the ViaCEP/Nominatim geocoding clients,
the KML perimeter loader, enrollment sessions and submission.
"""

from .mongodb import (
    MongoDBService, PaginationResult, DuplicateVoterError, get_mongodb_service, close_mongodb_connection
)
from .redis import RedisService

__all__ = [
    "MongoDBService",
    "PaginationResult",
    "DuplicateVoterError",
    "get_mongodb_service",
    "close_mongodb_connection",
    "RedisService"
]
