# SPDX-License-Identifier: Apache-2.0

"""
Domain logic package for the OUCBT voter enrollment service.

This package contains pure business logic: the eligibility perimeter, field
validation, the enrollment step machine and voter review rules. Side effects
(HTTP lookups, persistence, timers owned by sessions) are injected by the
services layer.
"""
