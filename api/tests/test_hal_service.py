# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Tests for HAL response formatting utilities.
"""

import pytest
from services.hal import (
    HalLinkBuilder, PaginationLinkBuilder, AffordanceLinkBuilder,
    HalResponseBuilder, create_hal_formatter
)
from models.responses import HalLink

BASE_URL = "https://api.example.com"


class TestHalLinkBuilder:
    """Test HAL link builder functionality."""

    def test_build_basic_link(self):
        builder = HalLinkBuilder(BASE_URL)

        link = builder.build_link("/api/votantes/123")

        assert isinstance(link, HalLink)
        assert link.href == "https://api.example.com/api/votantes/123"
        assert link.method == "GET"
        assert link.type is None

    def test_base_url_with_path(self):
        builder = HalLinkBuilder("https://example.com/backend/")

        assert builder.build_link("/api/perimetro").href == "https://example.com/backend/api/perimetro"

    def test_build_action_link(self):
        builder = HalLinkBuilder(BASE_URL)

        link = builder.build_action_link("/api/inscricao/sessoes/abc", "avancar", title="Next step")

        assert link.href == "https://api.example.com/api/inscricao/sessoes/abc/avancar"
        assert link.method == "POST"
        assert link.type == "application/json"
        assert link.title == "Next step"


class TestPaginationLinkBuilder:
    """Test pagination link generation."""

    def test_middle_page(self):
        builder = PaginationLinkBuilder(BASE_URL)

        links = builder.build_pagination_links("/api/votantes", 2, 3, 20, {"status": "DEFERIDO", "search": None})

        assert set(links) == {"self", "first", "prev", "next", "last"}
        assert links["self"].href == "https://api.example.com/api/votantes?status=DEFERIDO&page=2&page_size=20"
        assert links["last"].href.endswith("page=3&page_size=20")

    def test_single_page(self):
        builder = PaginationLinkBuilder(BASE_URL)

        links = builder.build_pagination_links("/api/votantes", 1, 1, 20)

        assert set(links) == {"self"}


class TestAffordanceLinkBuilder:
    """Links depend on the wizard and review state."""

    @pytest.fixture
    def builder(self):
        return AffordanceLinkBuilder(BASE_URL)

    def test_first_step(self, builder):
        links = builder.build_session_affordances("abc", 0, can_submit=False, transition_pending=False)

        assert "advance" in links
        assert "retreat" not in links
        assert "submit" not in links
        assert links["abandon"].method == "DELETE"
        assert links["draft"].method == "PATCH"

    def test_ready_to_submit(self, builder):
        links = builder.build_session_affordances("abc", 5, can_submit=True, transition_pending=False)

        assert links["submit"].href == "https://api.example.com/api/inscricao/sessoes/abc/enviar"
        assert "retreat" in links

    def test_transition_pending_hides_advance(self, builder):
        links = builder.build_session_affordances("abc", 2, can_submit=False, transition_pending=True)

        assert "advance" not in links

    @pytest.mark.parametrize("status,expected", [
        ("EM_ANALISE", {"approve", "reject"}),
        ("DEFERIDO", {"reject"}),
        ("INDEFERIDO", {"approve"}),
    ])
    def test_voter_review_links(self, builder, status, expected):
        links = builder.build_voter_affordances("65f1c2a4b7e8d9f0a1b2c3d4", status)

        assert set(links) - {"self", "collection"} == expected


class TestHalResponseBuilder:
    """Resources, collections and problem documents."""

    def test_collection_response(self):
        builder = HalResponseBuilder(BASE_URL)

        response = builder.build_collection_response([{"id": "1"}], 41, 1, 20, "/api/votantes")

        assert response["total_pages"] == 3
        assert response["_embedded"]["items"] == [{"id": "1"}]
        assert "next" in response["_links"]

    def test_error_response_without_errors(self):
        builder = HalResponseBuilder(BASE_URL)

        response = builder.build_error_response("resource-conflict", "Resource Conflict", 409, "Busy", "/x")

        assert response["status"] == 409
        assert "errors" not in response
        assert response["_links"]["help"]["href"] == "https://api.example.com/docs/errors#resource-conflict"

    def test_outside_coverage_links_perimeter(self):
        builder = HalResponseBuilder(BASE_URL)

        response = builder.build_error_response(
            "outside-coverage-area", "Outside Coverage Area", 422, "Outside", "/x",
            [{"field": "address", "message": "Outside"}]
        )

        assert response["errors"] == [{"field": "address", "message": "Outside"}]
        assert "perimeter" in response["_links"]


class TestHalFormatter:

    def test_format_session(self):
        formatter = create_hal_formatter(BASE_URL)

        response = formatter.format_session({"session_id": "abc", "current_step": 1, "can_submit": False})

        assert response["session_id"] == "abc"
        assert response["_links"]["self"]["href"] == "https://api.example.com/api/inscricao/sessoes/abc"
        assert "retreat" in response["_links"]

    def test_format_voter_collection(self, sample_voter):
        formatter = create_hal_formatter(BASE_URL)

        response = formatter.format_voter_collection(
            [sample_voter.model_dump(mode="json")], 1, 1, 20, {"status": "EM_ANALISE"}
        )

        item = response["_embedded"]["items"][0]
        assert item["_links"]["self"]["href"].endswith(f"/api/votantes/{sample_voter.id}")
        assert response["_links"]["export"]["type"] == "text/plain"
        assert "status=EM_ANALISE" in response["_links"]["self"]["href"]
