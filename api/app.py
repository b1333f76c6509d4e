"""
OUCBT Voter Enrollment API - Flask Application Entry Point

This module builds the Flask application with OpenAPI 3.0 support, loads
the eligibility perimeter, wires the services and registers the routes of
the enrollment wizard, the public lookups and the staff review.
"""

import os
from datetime import datetime
from typing import Any, Dict, Optional
from flask import jsonify
from flask_openapi3 import OpenAPI, Info, Tag

from observability.config import setup_observability
from observability.middleware import add_observability_middleware
from middleware.cors import configure_cors
from middleware.error_handler import ErrorHandlerMiddleware, register_custom_error_handlers
from middleware.validation import ValidationMiddleware
from services.enrollment_sessions import EnrollmentSessionFactory, EnrollmentSessionStore
from services.geocoding import AddressGeocoder
from services.hal import create_hal_formatter
from services.health import HealthCheckService
from services.mongodb import MongoDBService
from services.perimeter_loader import load_perimeter
from services.redis import RedisService
from services.submission import SubmissionService

# OpenAPI info
info = Info(
    title="OUCBT Voter Enrollment API",
    version="1.0.0",
    description="Voter enrollment for the OUC Bairros do Tamanduateí council election, with HAL links"
)

# API tags for organization
tags = [
    Tag(name="Enrollment", description="Voter enrollment wizard"),
    Tag(name="Public", description="Enrollment status and availability lookups"),
    Tag(name="Voters", description="Staff review of submitted enrollments"),
    Tag(name="Perimeter", description="Program area used for eligibility"),
    Tag(name="Health", description="System health and status")
]


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == 'true'


def load_config() -> Dict[str, Any]:
    """Read the application configuration from environment variables."""
    environment = os.getenv('ENVIRONMENT', 'development')
    return {
        'ENVIRONMENT': environment,
        'DEBUG': environment == 'development',
        'OTEL_ENABLED': _env_bool('OTEL_ENABLED', 'true'),
        'SERVICE_VERSION': os.getenv('SERVICE_VERSION', '1.0.0'),
        'BASE_URL': os.getenv('BASE_URL', 'http://localhost:5000'),
        'CORS_ALLOWED_ORIGINS': [o for o in os.getenv('CORS_ALLOWED_ORIGINS', '').split(',') if o],

        # Database configuration
        'MONGODB_URI': os.getenv('MONGODB_URI', 'mongodb://localhost:27017/oucbt_inscricao_dev'),
        'MONGODB_DATABASE': os.getenv('MONGODB_DATABASE', 'oucbt_inscricao_dev'),
        'REDIS_URL': os.getenv('REDIS_URL', ''),
        'REDIS_TOKEN': os.getenv('REDIS_TOKEN', ''),

        # Enrollment configuration
        'PERIMETER_KML_PATH': os.getenv('PERIMETER_KML_PATH'),
        'ENROLLMENT_STEP_VARIANT': os.getenv('ENROLLMENT_STEP_VARIANT', 'full'),
        'ENROLLMENT_SESSION_TTL_SECONDS': int(os.getenv('ENROLLMENT_SESSION_TTL_SECONDS', '3600')),
        'ENROLLMENT_DEBOUNCE_SECONDS': float(os.getenv('ENROLLMENT_DEBOUNCE_SECONDS', '0.5')),

        # Geocoding configuration
        'VIACEP_BASE_URL': os.getenv('VIACEP_BASE_URL'),
        'NOMINATIM_BASE_URL': os.getenv('NOMINATIM_BASE_URL'),
        'GEOCODING_TIMEOUT_SECONDS': float(os.getenv('GEOCODING_TIMEOUT_SECONDS', '10')),
        'GEOCODING_USER_AGENT': os.getenv('GEOCODING_USER_AGENT'),
    }


def create_app(config: Optional[Dict[str, Any]] = None) -> OpenAPI:
    """
    Build the application.

    Args:
        config: overrides applied on top of the environment configuration

    Raises:
        PerimeterConfigurationError: If the perimeter file is missing or malformed
    """
    settings = load_config()
    settings.update(config or {})

    setup_observability(settings['ENVIRONMENT'], settings['OTEL_ENABLED'], settings['SERVICE_VERSION'])

    app = OpenAPI(__name__, info=info)
    app.config.update(settings)

    add_observability_middleware(app)

    # A broken perimeter must stop the service from starting
    perimeter = load_perimeter(app.config['PERIMETER_KML_PATH'])

    # Initialize services
    mongodb_service = MongoDBService(app.config['MONGODB_URI'], app.config['MONGODB_DATABASE'])
    redis_service = RedisService(app.config['REDIS_URL'], app.config['REDIS_TOKEN'])
    submission_service = SubmissionService(mongodb_service)
    geocoder = AddressGeocoder.from_config(app.config)

    session_factory = EnrollmentSessionFactory(
        perimeter,
        variant=app.config['ENROLLMENT_STEP_VARIANT'],
        geocoder=geocoder,
        availability_checker=submission_service.find_conflicts,
        debounce_seconds=app.config['ENROLLMENT_DEBOUNCE_SECONDS']
    )
    session_store = EnrollmentSessionStore(
        session_factory,
        ttl_seconds=app.config['ENROLLMENT_SESSION_TTL_SECONDS'],
        redis_service=redis_service if redis_service.is_available() else None
    )

    health_service = HealthCheckService(
        mongodb_service, redis_service, perimeter, app.config['SERVICE_VERSION']
    )

    # Initialize middleware
    hal_formatter = create_hal_formatter(app.config['BASE_URL'])
    validation_middleware = ValidationMiddleware()
    ErrorHandlerMiddleware(app, app.config['BASE_URL'])
    configure_cors(app)
    register_custom_error_handlers(app, hal_formatter)

    # Make services available to routes
    app.perimeter = perimeter
    app.mongodb_service = mongodb_service
    app.redis_service = redis_service
    app.submission_service = submission_service
    app.geocoder = geocoder
    app.session_store = session_store
    app.health_service = health_service
    app.hal_formatter = hal_formatter
    app.validation_middleware = validation_middleware

    # Register routes
    from routes.perimeter import perimeter_bp
    from routes.inscricao import enrollment_bp
    from routes.consulta import public_bp
    from routes.votantes import voters_bp

    app.register_api(perimeter_bp)
    app.register_api(enrollment_bp)
    app.register_api(public_bp)
    app.register_api(voters_bp)

    @app.route('/api/healthz')
    def health_check():
        """Liveness and dependency health."""
        try:
            health_data = app.health_service.get_comprehensive_health()
            status_code = 503 if health_data["status"] == "unhealthy" else 200
        except Exception as e:
            health_data = {
                "status": "unhealthy",
                "service": "oucbt-inscricao-api",
                "version": app.config['SERVICE_VERSION'],
                "environment": app.config['ENVIRONMENT'],
                "timestamp": datetime.utcnow().isoformat() + "Z",
                "error": f"Health check service failed: {str(e)}"
            }
            status_code = 503

        health_data['_links'] = {
            'self': hal_formatter.builder.link_builder.build_self_link('/api/healthz').model_dump(exclude_none=True),
            'perimeter': hal_formatter.builder.link_builder.build_link(
                '/api/perimetro', title="Eligibility perimeter"
            ).model_dump(exclude_none=True)
        }
        return jsonify(health_data), status_code

    return app


if __name__ == '__main__':
    # Development server
    app = create_app()
    app.run(
        host='0.0.0.0',
        port=int(os.getenv('PORT', 5000)),
        debug=app.config['DEBUG']
    )
