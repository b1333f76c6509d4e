# SPDX-License-Identifier: Apache-2.0

"""
Health Check Service

Provides health monitoring for the service dependencies (MongoDB, Redis),
the loaded perimeter and basic system metrics.
"""

import os
import time
import psutil
from datetime import datetime
from typing import Dict, Any, Optional
from opentelemetry import trace

from domain.perimeter import PerimeterEngine
from services.mongodb import MongoDBService
from services.redis import RedisService

tracer = trace.get_tracer(__name__)


class HealthCheckService:
    """Service for system health monitoring."""

    def __init__(
        self,
        mongodb_service: MongoDBService,
        redis_service: RedisService,
        perimeter: Optional[PerimeterEngine] = None,
        service_version: str = "1.0.0"
    ):
        self.mongodb_service = mongodb_service
        self.redis_service = redis_service
        self.perimeter = perimeter
        self.service_version = service_version

    def get_comprehensive_health(self) -> Dict[str, Any]:
        """Get health status including all dependencies and metrics."""
        with tracer.start_as_current_span("health.comprehensive_check") as span:
            start_time = time.time()

            mongodb_health = self._check_mongodb_health()
            redis_health = self._check_redis_health()
            perimeter_health = self._check_perimeter()

            # Redis is optional; when not configured it does not affect the status
            statuses = [mongodb_health["status"], perimeter_health["status"]]
            if redis_health["status"] != "disabled":
                statuses.append(redis_health["status"])
            overall_status = self._determine_overall_status(statuses)

            response_time_ms = round((time.time() - start_time) * 1000, 2)

            health_data = {
                "status": overall_status,
                "service": "oucbt-inscricao-api",
                "version": self.service_version,
                "environment": os.getenv('ENVIRONMENT', 'development'),
                "timestamp": datetime.utcnow().isoformat() + "Z",
                "response_time_ms": response_time_ms,
                "dependencies": {
                    "mongodb": mongodb_health,
                    "redis": redis_health,
                    "perimeter": perimeter_health
                },
                "system_metrics": self._get_system_metrics()
            }

            span.set_attributes({
                "health.overall_status": overall_status,
                "health.response_time_ms": response_time_ms,
                "health.mongodb_status": mongodb_health["status"],
                "health.redis_status": redis_health["status"]
            })

            return health_data

    def _check_mongodb_health(self) -> Dict[str, Any]:
        """Check MongoDB connectivity."""
        with tracer.start_as_current_span("health.mongodb_check") as span:
            start_time = time.time()
            result = self.mongodb_service.health_check()
            result["response_time_ms"] = round((time.time() - start_time) * 1000, 2)
            result["last_check"] = datetime.utcnow().isoformat() + "Z"
            span.set_attribute("mongodb.status", result["status"])
            return result

    def _check_redis_health(self) -> Dict[str, Any]:
        """Check Redis connectivity, 'disabled' when not configured."""
        with tracer.start_as_current_span("health.redis_check") as span:
            if not self.redis_service.is_available():
                span.set_attribute("redis.status", "disabled")
                return {"status": "disabled", "last_check": datetime.utcnow().isoformat() + "Z"}

            result = self.redis_service.health_check()
            result["last_check"] = datetime.utcnow().isoformat() + "Z"
            span.set_attribute("redis.status", result["status"])
            return result

    def _check_perimeter(self) -> Dict[str, Any]:
        """Report the loaded eligibility perimeter."""
        if self.perimeter is None:
            return {"status": "unhealthy", "error": "Perimeter not loaded"}

        bounds = self.perimeter.get_perimeter_bounds()
        return {
            "status": "healthy",
            "polygons": len(self.perimeter.polygons),
            "center": list(bounds.center)
        }

    def _get_system_metrics(self) -> Dict[str, Any]:
        """Get basic system performance metrics."""
        try:
            memory = psutil.virtual_memory()
            return {
                "cpu_percent": psutil.cpu_percent(interval=None),
                "memory": {
                    "used_mb": round(memory.used / 1024 / 1024, 2),
                    "total_mb": round(memory.total / 1024 / 1024, 2),
                    "percent": memory.percent
                },
                "load_average": list(os.getloadavg()) if hasattr(os, 'getloadavg') else None
            }
        except Exception as e:
            return {
                "error": f"Failed to collect system metrics: {str(e)}"
            }

    def _determine_overall_status(self, dependency_statuses: list) -> str:
        """Determine overall system status based on dependency health."""
        if all(status == "healthy" for status in dependency_statuses):
            return "healthy"
        elif any(status == "healthy" for status in dependency_statuses):
            return "degraded"
        else:
            return "unhealthy"
