# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
CORS middleware for the browser enrollment form and the staff console.
"""

from flask import Flask, request, make_response
from typing import List, Optional
import logging

logger = logging.getLogger(__name__)

DEV_ORIGINS = [
    'http://localhost:3000',
    'http://localhost:5173',
    'http://127.0.0.1:3000',
    'http://127.0.0.1:5173'
]


class CORSMiddleware:
    """
    Answers preflight requests and adds CORS headers for allowed origins.

    Origins come from app.config['CORS_ALLOWED_ORIGINS']; a trailing '*'
    matches by prefix and a lone '*' allows every origin. The local dev
    servers are allowed in the development environment.
    """

    allowed_methods = ['GET', 'POST', 'PUT', 'PATCH', 'DELETE', 'OPTIONS']
    allowed_headers = ['Accept', 'Content-Type', 'X-Request-ID', 'X-Trace-ID']
    expose_headers = ['Content-Disposition', 'Content-Type', 'X-Trace-Id']

    def __init__(self, app: Flask, allowed_origins: Optional[List[str]] = None, max_age: int = 86400):
        self.app = app
        self.allowed_origins = list(allowed_origins or [])
        if app.config.get('ENVIRONMENT') == 'development':
            self.allowed_origins.extend(DEV_ORIGINS)
        self.max_age = max_age

        self.register_cors_handlers()

    def is_origin_allowed(self, origin: Optional[str]) -> bool:
        if not origin:
            return False

        for allowed in self.allowed_origins:
            if allowed == '*' or allowed == origin:
                return True
            if allowed.endswith('*') and origin.startswith(allowed[:-1]):
                return True
        return False

    def add_cors_headers(self, response, origin: str):
        response.headers['Access-Control-Allow-Origin'] = origin
        response.headers['Access-Control-Allow-Methods'] = ', '.join(self.allowed_methods)
        response.headers['Access-Control-Allow-Headers'] = ', '.join(self.allowed_headers)
        response.headers['Access-Control-Expose-Headers'] = ', '.join(self.expose_headers)
        response.headers['Access-Control-Max-Age'] = str(self.max_age)
        response.headers['Vary'] = 'Origin'
        return response

    def register_cors_handlers(self):
        """Register CORS handlers with Flask application."""

        @self.app.before_request
        def handle_preflight():
            if request.method != 'OPTIONS':
                return None

            origin = request.headers.get('Origin')
            if not self.is_origin_allowed(origin):
                logger.warning(f"CORS preflight rejected for origin: {origin}")
                return make_response('', 403)

            return self.add_cors_headers(make_response('', 204), origin)

        @self.app.after_request
        def add_cors_headers_to_response(response):
            origin = request.headers.get('Origin')
            if request.method != 'OPTIONS' and self.is_origin_allowed(origin):
                self.add_cors_headers(response, origin)
            return response


def configure_cors(app: Flask) -> CORSMiddleware:
    """Configure CORS from app.config['CORS_ALLOWED_ORIGINS']."""
    return CORSMiddleware(app, app.config.get('CORS_ALLOWED_ORIGINS'))
