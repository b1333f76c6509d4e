# SPDX-License-Identifier: Apache-2.0

"""
Redis service for enrollment session snapshots.

This module provides Redis operations using Upstash HTTP client for serverless
compatibility. Sessions live in process memory; Redis keeps a copy so a
restarted or different worker can restore them.
"""

import os
import json
import time
from typing import Optional, List, Dict, Any, Union
from upstash_redis import Redis
from opentelemetry import trace
import logging

tracer = trace.get_tracer(__name__)
logger = logging.getLogger(__name__)

SESSION_KEY_PREFIX = "enrollment:session:"


class RedisConnectionError(Exception):
    """Raised when Redis connection fails."""
    pass


class RedisService:
    """
    Redis service with Upstash HTTP client for serverless compatibility.

    All operations fail gracefully: when Redis is not configured or an
    operation errors, the caller gets False/None and the failure is logged.
    """

    def __init__(self, redis_url: Optional[str] = None, redis_token: Optional[str] = None):
        """
        Initialize the Redis service.

        Args:
            redis_url: Upstash Redis HTTP URL
            redis_token: Upstash Redis authentication token
        """
        self.redis_url = redis_url or os.getenv("REDIS_URL")
        self.redis_token = redis_token or os.getenv("REDIS_TOKEN")

        if not self.redis_url:
            logger.warning("No REDIS_URL configured, session snapshots will be disabled")
            self.client = None
            return

        try:
            self.client = Redis(url=self.redis_url, token=self.redis_token or "")

            # Test connection
            self._test_connection()

            logger.info("Redis service initialized successfully")

        except Exception as e:
            logger.error(f"Failed to initialize Redis service: {str(e)}")
            self.client = None

    def _test_connection(self) -> None:
        """Test Redis connection."""
        if not self.client:
            return

        try:
            result = self.client.ping()
            if result != "PONG":
                raise RedisConnectionError("Redis ping failed")
        except Exception as e:
            logger.error(f"Redis connection test failed: {str(e)}")
            raise RedisConnectionError(f"Redis connection failed: {str(e)}")

    def is_available(self) -> bool:
        """Check if Redis service is available."""
        return self.client is not None

    def _handle_redis_error(self, operation: str, error: Exception) -> None:
        """Log Redis operation errors; snapshots are best effort."""
        logger.error(f"Redis {operation} failed: {str(error)}")

    def set_with_ttl(self, key: str, value: Union[str, Dict, List], ttl_seconds: int) -> bool:
        """
        Set a key-value pair with TTL.

        Args:
            key: Redis key
            value: Value to store (will be JSON serialized if not string)
            ttl_seconds: Time to live in seconds

        Returns:
            True if successful, False otherwise
        """
        if not self.is_available():
            return False

        with tracer.start_as_current_span("redis.set_with_ttl") as span:
            span.set_attributes({
                "redis.operation": "set_with_ttl",
                "redis.key": key,
                "redis.ttl": ttl_seconds
            })

            try:
                if isinstance(value, (dict, list)):
                    value = json.dumps(value, default=str)

                result = self.client.setex(key, ttl_seconds, value)

                span.set_attribute("redis.result", "success")
                logger.debug(f"Redis SET successful: {key} (TTL: {ttl_seconds}s)")

                return result == "OK" or result is True

            except Exception as e:
                span.set_attribute("redis.result", "error")
                self._handle_redis_error("SET", e)
                return False

    def get(self, key: str) -> Optional[str]:
        """
        Get value by key.

        Args:
            key: Redis key

        Returns:
            Value as string or None if not found
        """
        if not self.is_available():
            return None

        with tracer.start_as_current_span("redis.get") as span:
            span.set_attributes({
                "redis.operation": "get",
                "redis.key": key
            })

            try:
                result = self.client.get(key)

                span.set_attribute("redis.result", "hit" if result else "miss")
                logger.debug(f"Redis GET: {key} -> {'hit' if result else 'miss'}")

                return result

            except Exception as e:
                span.set_attribute("redis.result", "error")
                self._handle_redis_error("GET", e)
                return None

    def get_json(self, key: str) -> Optional[Union[Dict, List]]:
        """
        Get and deserialize JSON value by key.

        Args:
            key: Redis key

        Returns:
            Deserialized JSON value or None if not found
        """
        value = self.get(key)
        if value is None:
            return None

        try:
            return json.loads(value)
        except json.JSONDecodeError as e:
            logger.error(f"Failed to deserialize JSON from Redis key {key}: {str(e)}")
            return None

    def delete(self, key: str) -> bool:
        """
        Delete a key.

        Args:
            key: Redis key to delete

        Returns:
            True if key was deleted, False otherwise
        """
        if not self.is_available():
            return False

        with tracer.start_as_current_span("redis.delete") as span:
            span.set_attributes({
                "redis.operation": "delete",
                "redis.key": key
            })

            try:
                result = self.client.delete(key)

                span.set_attribute("redis.result", "success")
                logger.debug(f"Redis DELETE: {key} -> {result}")

                return result > 0

            except Exception as e:
                span.set_attribute("redis.result", "error")
                self._handle_redis_error("DELETE", e)
                return False

    # Enrollment Session Snapshot Methods

    def save_session_snapshot(self, session_id: str, snapshot: Dict[str, Any], ttl_seconds: int) -> bool:
        """
        Store the serialized state of an enrollment session.

        Args:
            session_id: Session identifier
            snapshot: Draft and step state as a JSON-compatible dict
            ttl_seconds: Idle lifetime of the session

        Returns:
            True if stored, False otherwise
        """
        with tracer.start_as_current_span("redis.save_session_snapshot") as span:
            span.set_attributes({
                "redis.operation": "save_session_snapshot",
                "enrollment.session_id": session_id
            })
            return self.set_with_ttl(f"{SESSION_KEY_PREFIX}{session_id}", snapshot, ttl_seconds)

    def load_session_snapshot(self, session_id: str) -> Optional[Dict[str, Any]]:
        """Load a stored session snapshot, None if missing or expired."""
        snapshot = self.get_json(f"{SESSION_KEY_PREFIX}{session_id}")
        if snapshot is not None and not isinstance(snapshot, dict):
            logger.error(f"Ignoring malformed session snapshot for {session_id}")
            return None
        return snapshot

    def delete_session_snapshot(self, session_id: str) -> bool:
        return self.delete(f"{SESSION_KEY_PREFIX}{session_id}")

    # Health Check Methods

    def ping(self) -> bool:
        """
        Ping Redis server.

        Returns:
            True if ping successful, False otherwise
        """
        if not self.is_available():
            return False

        try:
            result = self.client.ping()
            return result == "PONG"
        except Exception as e:
            logger.error(f"Redis ping failed: {str(e)}")
            return False

    def health_check(self) -> Dict[str, Any]:
        """
        Perform Redis health check.

        Returns:
            Health check results
        """
        if not self.is_available():
            return {
                "status": "unavailable",
                "message": "Redis client not initialized",
                "timestamp": time.time()
            }

        try:
            start_time = time.time()

            # Test basic operations
            test_key = f"health:check:{int(start_time)}"
            self.set_with_ttl(test_key, "test", 10)
            value = self.get(test_key)
            self.delete(test_key)

            response_time = (time.time() - start_time) * 1000  # ms

            if value == "test":
                return {
                    "status": "healthy",
                    "response_time_ms": round(response_time, 2),
                    "timestamp": time.time()
                }
            else:
                return {
                    "status": "degraded",
                    "message": "Redis operations not working correctly",
                    "response_time_ms": round(response_time, 2),
                    "timestamp": time.time()
                }

        except Exception as e:
            return {
                "status": "unhealthy",
                "message": str(e),
                "timestamp": time.time()
            }
