# SPDX-License-Identifier: Apache-2.0

"""
Middleware package for request processing.

This package contains the error handling (RFC 7807 problem documents with
HAL links) and request validation, plus the CORS policy for browser clients.
"""
