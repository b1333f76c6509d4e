# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Enumeration types for the OUCBT voter enrollment service.
"""

from enum import Enum


class EnrollmentCategory(str, Enum):
    """How the applicant takes part in the program area."""
    MORADOR = "MORADOR"
    TRABALHADOR = "TRABALHADOR"


class Gender(str, Enum):
    """Self-declared gender."""
    MASCULINO = "MASCULINO"
    FEMININO = "FEMININO"
    OUTRO = "OUTRO"


class VoterStatus(str, Enum):
    """Review status of a submitted enrollment."""
    EM_ANALISE = "EM_ANALISE"
    DEFERIDO = "DEFERIDO"
    INDEFERIDO = "INDEFERIDO"


class StepOutcome(str, Enum):
    """Result of a step transition or address operation."""
    ADVANCED = "advanced"
    COMPLETED = "completed"
    VALIDATION_FAILED = "validation_failed"
    OUTSIDE_PERIMETER = "outside_perimeter"
    LOOKUP_FAILED = "lookup_failed"
    NOT_FOUND = "not_found"
    BUSY = "busy"
    RESOLVED = "resolved"
