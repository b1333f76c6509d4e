"""
Tests for health check and system status endpoints.
"""

import pytest
from unittest.mock import Mock, patch

from services.health import HealthCheckService
from services.mongodb import MongoDBService
from services.redis import RedisService


@pytest.fixture
def mock_services():
    mongodb = Mock(spec=MongoDBService)
    mongodb.health_check.return_value = {"status": "healthy", "database": "oucbt_inscricao_test"}
    redis = Mock(spec=RedisService)
    redis.is_available.return_value = True
    redis.health_check.return_value = {"status": "healthy"}
    return {"mongodb": mongodb, "redis": redis}


@pytest.fixture
def health_service(mock_services, square_perimeter):
    return HealthCheckService(mock_services['mongodb'], mock_services['redis'], square_perimeter, "1.0.0")


class TestHealthCheckService:
    """Dependency aggregation."""

    def test_all_healthy(self, health_service):
        health = health_service.get_comprehensive_health()

        assert health['status'] == 'healthy'
        assert health['service'] == 'oucbt-inscricao-api'
        assert health['dependencies']['perimeter'] == {
            "status": "healthy", "polygons": 1, "center": [5, 5]
        }
        assert 'response_time_ms' in health['dependencies']['mongodb']
        assert 'system_metrics' in health

    def test_redis_disabled_does_not_degrade(self, health_service, mock_services):
        mock_services['redis'].is_available.return_value = False

        health = health_service.get_comprehensive_health()

        assert health['status'] == 'healthy'
        assert health['dependencies']['redis']['status'] == 'disabled'
        mock_services['redis'].health_check.assert_not_called()

    def test_degraded_when_redis_unhealthy(self, health_service, mock_services):
        mock_services['redis'].health_check.return_value = {"status": "unhealthy", "error": "timeout"}

        assert health_service.get_comprehensive_health()['status'] == 'degraded'

    def test_missing_perimeter(self, mock_services):
        service = HealthCheckService(mock_services['mongodb'], mock_services['redis'])

        health = service.get_comprehensive_health()

        assert health['dependencies']['perimeter']['status'] == 'unhealthy'
        assert health['status'] == 'degraded'

    def test_metrics_failure_is_reported(self, health_service):
        with patch('services.health.psutil.virtual_memory', side_effect=RuntimeError("no procfs")):
            metrics = health_service._get_system_metrics()

        assert 'error' in metrics

    def test_overall_status(self, health_service):
        assert health_service._determine_overall_status(["healthy", "healthy"]) == "healthy"
        assert health_service._determine_overall_status(["healthy", "unhealthy"]) == "degraded"
        assert health_service._determine_overall_status(["unhealthy", "unhealthy"]) == "unhealthy"


class TestHealthCheckEndpoint:
    """Test cases for the /api/healthz endpoint."""

    def test_healthy(self, app, client, health_service):
        app.health_service = health_service

        response = client.get('/api/healthz')

        assert response.status_code == 200
        data = response.get_json()
        assert data['status'] == 'healthy'
        assert data['_links']['self']['href'] == 'http://testserver/api/healthz'
        assert 'perimeter' in data['_links']

    def test_unhealthy(self, app, client, health_service, mock_services):
        mock_services['mongodb'].health_check.return_value = {"status": "unhealthy"}
        mock_services['redis'].health_check.return_value = {"status": "unhealthy"}
        health_service.perimeter = None
        app.health_service = health_service

        response = client.get('/api/healthz')

        assert response.status_code == 503
        assert response.get_json()['status'] == 'unhealthy'

    def test_health_service_failure(self, app, client):
        app.health_service = Mock()
        app.health_service.get_comprehensive_health.side_effect = RuntimeError("boom")

        response = client.get('/api/healthz')

        assert response.status_code == 503
        data = response.get_json()
        assert data['status'] == 'unhealthy'
        assert 'boom' in data['error']
        assert '_links' in data
