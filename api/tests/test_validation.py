# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Tests for the enrollment field validation rules.
"""

import pytest
from datetime import date

from domain.validation import (
    MAX_TOTAL_FILE_SIZE, calculate_age, is_valid_cpf, only_digits, parse_birth_date,
    validate_address_fields, validate_category, validate_declarations, validate_files,
    validate_personal_data
)
from models.draft import (
    AddressDraft, DeclarationsDraft, EnrollmentDraft, FileSelection, FilesDraft, PersonalDataDraft
)


def error_fields(result):
    return [error.field for error in result.errors]


class TestCpf:

    @pytest.mark.parametrize("cpf", ["529.982.247-25", "52998224725", "111.444.777-35"])
    def test_valid_cpf(self, cpf):
        assert is_valid_cpf(cpf) is True

    @pytest.mark.parametrize("cpf", [
        "529.982.247-26",
        "5299822472",
        "111.111.111-11",
        "000.000.000-00",
        "",
        "abc"
    ])
    def test_invalid_cpf(self, cpf):
        assert is_valid_cpf(cpf) is False

    def test_only_digits(self):
        assert only_digits("529.982.247-25") == "52998224725"
        assert only_digits(None) == ""


class TestBirthDate:

    def test_parse(self):
        assert parse_birth_date("1990-05-20") == date(1990, 5, 20)
        assert parse_birth_date("20/05/1990") is None

    def test_age_before_birthday(self):
        assert calculate_age(date(2000, 6, 15), today=date(2016, 6, 14)) == 15

    def test_age_on_birthday(self):
        assert calculate_age(date(2000, 6, 15), today=date(2016, 6, 15)) == 16


class TestCategory:

    def test_missing_category(self):
        result = validate_category(EnrollmentDraft())
        assert not result.is_valid
        assert error_fields(result) == ["category"]

    def test_valid_category(self):
        assert validate_category(EnrollmentDraft(category="TRABALHADOR")).is_valid


class TestPersonalData:

    def test_valid_resident(self, valid_personal):
        result = validate_personal_data(valid_personal, "MORADOR", today=date(2024, 1, 1))
        assert result.is_valid, result.errors

    def test_empty_personal_data(self):
        result = validate_personal_data(PersonalDataDraft(), "MORADOR")
        assert set(error_fields(result)) == {
            "personal.name", "personal.phone", "personal.gender",
            "personal.email", "personal.cpf", "personal.birth_date"
        }

    def test_worker_requires_company(self, valid_personal):
        result = validate_personal_data(valid_personal, "TRABALHADOR", today=date(2024, 1, 1))
        assert error_fields(result) == ["personal.company"]

        valid_personal.company = "Metalúrgica Tamanduateí"
        assert validate_personal_data(valid_personal, "TRABALHADOR", today=date(2024, 1, 1)).is_valid

    def test_name_with_digits(self, valid_personal):
        valid_personal.name = "Maria 2"
        assert error_fields(validate_personal_data(valid_personal, "MORADOR")) == ["personal.name"]

    def test_accented_name(self, valid_personal):
        valid_personal.name = "João Conceição"
        assert validate_personal_data(valid_personal, "MORADOR").is_valid

    @pytest.mark.parametrize("phone", ["(11) 98765-4321", "(11) 3456-7890"])
    def test_phone_formats(self, valid_personal, phone):
        valid_personal.phone = phone
        assert validate_personal_data(valid_personal, "MORADOR").is_valid

    def test_unformatted_phone(self, valid_personal):
        valid_personal.phone = "11987654321"
        assert error_fields(validate_personal_data(valid_personal, "MORADOR")) == ["personal.phone"]

    def test_invalid_email(self, valid_personal):
        valid_personal.email = "maria@"
        assert error_fields(validate_personal_data(valid_personal, "MORADOR")) == ["personal.email"]

    def test_too_young(self, valid_personal):
        valid_personal.birth_date = "2010-01-01"
        result = validate_personal_data(valid_personal, "MORADOR", today=date(2024, 1, 1))
        assert error_fields(result) == ["personal.birth_date"]

    def test_malformed_birth_date(self, valid_personal):
        valid_personal.birth_date = "01/01/1990"
        assert error_fields(validate_personal_data(valid_personal, "MORADOR")) == ["personal.birth_date"]


class TestAddressFields:

    def test_valid_address(self, inside_address):
        assert validate_address_fields(inside_address).is_valid

    def test_empty_address(self):
        result = validate_address_fields(AddressDraft())
        assert set(error_fields(result)) == {
            "address.street", "address.neighborhood", "address.city", "address.state", "address.postal_code"
        }

    def test_short_street(self, inside_address):
        inside_address.street = "Rua"
        assert error_fields(validate_address_fields(inside_address)) == ["address.street"]

    def test_lowercase_state(self, inside_address):
        inside_address.state = "sp"
        assert error_fields(validate_address_fields(inside_address)) == ["address.state"]

    @pytest.mark.parametrize("postal_code", ["01001-000", "01001000"])
    def test_postal_code_formats(self, inside_address, postal_code):
        inside_address.postal_code = postal_code
        assert validate_address_fields(inside_address).is_valid

    def test_bad_postal_code(self, inside_address):
        inside_address.postal_code = "0100-1000"
        assert error_fields(validate_address_fields(inside_address)) == ["address.postal_code"]

    def test_coordinate_not_required_here(self, inside_address):
        """The coordinate is the step predicate's concern."""
        inside_address.clear_coordinate()
        assert validate_address_fields(inside_address).is_valid


class TestFiles:

    def test_no_files(self):
        assert error_fields(validate_files(FilesDraft())) == ["files"]

    def test_valid_files(self):
        files = FilesDraft(files=[
            FileSelection(name="rg.jpg", content_type="image/jpeg", size=1000),
            FileSelection(name="docs.zip", content_type="application/octet-stream", size=2000)
        ])
        assert validate_files(files).is_valid

    def test_too_many_files(self):
        files = FilesDraft(files=[
            FileSelection(name=f"doc{i}.png", content_type="image/png", size=10) for i in range(6)
        ])
        assert not validate_files(files).is_valid

    def test_total_size_limit(self):
        files = FilesDraft(files=[
            FileSelection(name="a.png", content_type="image/png", size=MAX_TOTAL_FILE_SIZE),
            FileSelection(name="b.png", content_type="image/png", size=1)
        ])
        assert "Total file size cannot exceed 30MB" in validate_files(files).messages()

    def test_pdf_is_rejected(self):
        files = FilesDraft(files=[FileSelection(name="rg.pdf", content_type="application/pdf", size=10)])
        assert not validate_files(files).is_valid


class TestDeclarations:

    def test_all_accepted(self):
        declarations = DeclarationsDraft(
            identity=True, voting=True, document=True, authorization=True, truthfulness=True
        )
        assert validate_declarations(declarations).is_valid

    def test_missing_declarations(self):
        result = validate_declarations(DeclarationsDraft(identity=True, voting=True))
        assert error_fields(result) == [
            "declarations.document", "declarations.authorization", "declarations.truthfulness"
        ]
