# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
HAL (Hypertext Application Language) response formatting utilities.
Implements HATEOAS Level-3 API responses with conditional affordance links.
"""

from typing import Dict, List, Any, Optional
from urllib.parse import urljoin, urlencode
import math

from models.responses import HalLink

PROBLEM_TYPE_BASE = "https://api.oucbt-inscricao.org/problems"
SESSIONS_PATH = "/api/inscricao/sessoes"
VOTERS_PATH = "/api/votantes"


class HalLinkBuilder:
    """Builder for HAL links with proper URL construction."""

    def __init__(self, base_url: str):
        self.base_url = base_url.rstrip('/') + '/'

    def build_link(
        self,
        path: str,
        method: str = "GET",
        content_type: Optional[str] = None,
        title: Optional[str] = None,
        templated: bool = False
    ) -> HalLink:
        """Build a HAL link with proper URL construction."""
        href = urljoin(self.base_url, path.lstrip('/'))

        return HalLink(
            href=href,
            method=method,
            type=content_type,
            title=title,
            templated=templated
        )

    def build_self_link(self, resource_path: str) -> HalLink:
        """Build self link for a resource."""
        return self.build_link(resource_path, title="Self")

    def build_collection_link(self, collection_path: str) -> HalLink:
        """Build link to parent collection."""
        return self.build_link(collection_path, title="Collection")

    def build_action_link(
        self,
        resource_path: str,
        action: str,
        method: str = "POST",
        title: Optional[str] = None
    ) -> HalLink:
        """Build action link for a resource."""
        action_path = f"{resource_path}/{action}"
        return self.build_link(
            action_path,
            method=method,
            content_type="application/json",
            title=title or action.title()
        )


class PaginationLinkBuilder:
    """Builder for pagination links in HAL collections."""

    def __init__(self, base_url: str):
        self.link_builder = HalLinkBuilder(base_url)

    def _page_link(self, base_path: str, params: Dict[str, Any], page: int, page_size: int, title: str) -> HalLink:
        query = urlencode({**params, 'page': page, 'page_size': page_size})
        return self.link_builder.build_link(f"{base_path}?{query}", title=title)

    def build_pagination_links(
        self,
        base_path: str,
        current_page: int,
        total_pages: int,
        page_size: int,
        query_params: Optional[Dict[str, Any]] = None
    ) -> Dict[str, HalLink]:
        """Build pagination links for a collection."""
        links = {}
        params = {k: v for k, v in (query_params or {}).items() if v is not None}

        links['self'] = self._page_link(base_path, params, current_page, page_size, "Current page")

        if current_page > 1:
            links['first'] = self._page_link(base_path, params, 1, page_size, "First page")
            links['prev'] = self._page_link(base_path, params, current_page - 1, page_size, "Previous page")

        if current_page < total_pages:
            links['next'] = self._page_link(base_path, params, current_page + 1, page_size, "Next page")
            links['last'] = self._page_link(base_path, params, total_pages, page_size, "Last page")

        return links


class AffordanceLinkBuilder:
    """Builder for conditional affordance links based on resource state."""

    def __init__(self, base_url: str):
        self.link_builder = HalLinkBuilder(base_url)

    def build_session_affordances(
        self,
        session_id: str,
        current_step: int,
        can_submit: bool,
        transition_pending: bool
    ) -> Dict[str, HalLink]:
        """Build wizard links; advance/retreat/submit appear only when applicable."""
        links = {}
        base_path = f"{SESSIONS_PATH}/{session_id}"

        links['self'] = self.link_builder.build_self_link(base_path)
        links['draft'] = self.link_builder.build_action_link(
            base_path, "rascunho", method="PATCH", title="Update draft"
        )
        links['postal_code'] = self.link_builder.build_action_link(
            base_path, "endereco/cep", title="Look up postal code"
        )
        links['map_point'] = self.link_builder.build_action_link(
            base_path, "endereco/mapa", title="Select point on map"
        )

        if not transition_pending:
            links['advance'] = self.link_builder.build_action_link(base_path, "avancar", title="Next step")

        if current_step > 0:
            links['retreat'] = self.link_builder.build_action_link(base_path, "voltar", title="Previous step")

        if can_submit:
            links['submit'] = self.link_builder.build_action_link(base_path, "enviar", title="Submit enrollment")

        links['abandon'] = self.link_builder.build_link(base_path, method="DELETE", title="Abandon enrollment")
        links['perimeter'] = self.link_builder.build_link("/api/perimetro", title="Eligibility perimeter")

        return links

    def build_voter_affordances(self, voter_id: str, status: str) -> Dict[str, HalLink]:
        """Build staff review links for a voter."""
        links = {}
        base_path = f"{VOTERS_PATH}/{voter_id}"

        links['self'] = self.link_builder.build_self_link(base_path)
        links['collection'] = self.link_builder.build_collection_link(VOTERS_PATH)

        if status != "DEFERIDO":
            links['approve'] = self.link_builder.build_action_link(
                base_path, "status", method="PUT", title="Approve enrollment"
            )
        if status != "INDEFERIDO":
            links['reject'] = self.link_builder.build_action_link(
                base_path, "status", method="PUT", title="Reject enrollment"
            )

        return links


class HalResponseBuilder:
    """Main HAL response builder."""

    def __init__(self, base_url: str):
        self.base_url = base_url.rstrip('/')
        self.link_builder = HalLinkBuilder(base_url)
        self.pagination_builder = PaginationLinkBuilder(base_url)
        self.affordance_builder = AffordanceLinkBuilder(base_url)

    @staticmethod
    def _dump_links(links: Dict[str, HalLink]) -> Dict[str, Any]:
        return {rel: link.model_dump(exclude_none=True) for rel, link in links.items()}

    def build_resource_response(
        self,
        data: Dict[str, Any],
        resource_type: str,
        resource_id: str,
        **state: Any
    ) -> Dict[str, Any]:
        """Build a HAL resource response with appropriate affordance links."""
        response = dict(data)

        if resource_type == "session":
            links = self.affordance_builder.build_session_affordances(
                resource_id,
                state.get('current_step', 0),
                state.get('can_submit', False),
                state.get('transition_pending', False)
            )
        elif resource_type == "voter":
            links = self.affordance_builder.build_voter_affordances(
                resource_id,
                data.get('status', '')
            )
        else:
            links = {
                'self': self.link_builder.build_self_link(f"/api/{resource_type}")
            }

        response['_links'] = self._dump_links(links)
        return response

    def build_collection_response(
        self,
        items: List[Dict[str, Any]],
        total: int,
        page: int,
        page_size: int,
        collection_path: str,
        query_params: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        """Build a HAL collection response with pagination links."""
        total_pages = math.ceil(total / page_size) if page_size > 0 else 1

        pagination_links = self.pagination_builder.build_pagination_links(
            collection_path,
            page,
            total_pages,
            page_size,
            query_params
        )

        return {
            'total': total,
            'page': page,
            'page_size': page_size,
            'total_pages': total_pages,
            '_links': self._dump_links(pagination_links),
            '_embedded': {
                'items': items
            }
        }

    def build_error_response(
        self,
        error_type: str,
        title: str,
        status: int,
        detail: str,
        instance: str,
        validation_errors: Optional[List[Dict[str, Any]]] = None
    ) -> Dict[str, Any]:
        """Build RFC 7807 compliant error response with HAL links."""
        error_response = {
            'type': f"{PROBLEM_TYPE_BASE}/{error_type}",
            'title': title,
            'status': status,
            'detail': detail,
            'instance': instance
        }

        if validation_errors:
            error_response['errors'] = validation_errors

        links = {
            'help': self.link_builder.build_link(
                f"/docs/errors#{error_type}",
                title="Error documentation"
            )
        }

        if error_type == "validation-error":
            links['schema'] = self.link_builder.build_link(
                "/openapi/openapi.json",
                title="API schema"
            )
        elif error_type == "outside-coverage-area":
            links['perimeter'] = self.link_builder.build_link(
                "/api/perimetro",
                title="Eligibility perimeter"
            )

        error_response['_links'] = self._dump_links(links)
        return error_response


class HalFormatter:
    """High-level HAL formatter with convenience methods."""

    def __init__(self, base_url: str):
        self.builder = HalResponseBuilder(base_url)

    def format_session(self, session_state: Dict[str, Any], transition_pending: bool = False) -> Dict[str, Any]:
        """Format an enrollment session state with wizard affordances."""
        return self.builder.build_resource_response(
            session_state,
            "session",
            session_state['session_id'],
            current_step=session_state.get('current_step', 0),
            can_submit=session_state.get('can_submit', False),
            transition_pending=transition_pending
        )

    def format_voter(self, voter: Dict[str, Any]) -> Dict[str, Any]:
        """Format a voter with staff review links."""
        return self.builder.build_resource_response(voter, "voter", voter['id'])

    def format_voter_collection(
        self,
        voters: List[Dict[str, Any]],
        total: int,
        page: int,
        page_size: int,
        filters: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        """Format a page of voters with HAL links."""
        formatted = [self.format_voter(voter) for voter in voters]
        response = self.builder.build_collection_response(
            formatted, total, page, page_size, VOTERS_PATH, filters
        )
        response['_links']['export'] = self.builder.link_builder.build_link(
            f"{VOTERS_PATH}/export", content_type="text/plain", title="Export approved voters"
        ).model_dump(exclude_none=True)
        return response

    def format_validation_error(
        self,
        detail: str,
        instance: str,
        validation_errors: List[Dict[str, Any]],
        status: int = 400
    ) -> Dict[str, Any]:
        """Format a validation error response."""
        return self.builder.build_error_response(
            "validation-error",
            "Validation Error",
            status,
            detail,
            instance,
            validation_errors
        )

    def format_not_found_error(self, detail: str, instance: str) -> Dict[str, Any]:
        """Format a not found error response."""
        return self.builder.build_error_response(
            "resource-not-found",
            "Resource Not Found",
            404,
            detail,
            instance
        )

    def format_conflict_error(self, detail: str, instance: str) -> Dict[str, Any]:
        """Format a conflict error response."""
        return self.builder.build_error_response(
            "resource-conflict",
            "Resource Conflict",
            409,
            detail,
            instance
        )

    def format_server_error(self, detail: str, instance: str) -> Dict[str, Any]:
        """Format a server error response."""
        return self.builder.build_error_response(
            "internal-server-error",
            "Internal Server Error",
            500,
            detail,
            instance
        )


# Convenience function for creating HAL formatter
def create_hal_formatter(base_url: str) -> HalFormatter:
    """Create a HAL formatter instance."""
    return HalFormatter(base_url)
