# SPDX-License-Identifier: Apache-2.0

"""
Geocoding clients for address lookup.

ViaCEP resolves a postal code (CEP) into a street address; Nominatim
(OpenStreetMap) turns an address into coordinates and a coordinate back
into an address. Transport failures raise GeocodingLookupError and are
never reported as "not found" or as a perimeter rejection.
"""

import logging
from dataclasses import dataclass, asdict
from typing import Any, Dict, List, Optional

import requests
from opentelemetry import trace

from domain.enrollment import LookupFailedError
from domain.perimeter import Coordinate
from domain.validation import only_digits
from models.draft import AddressDraft

tracer = trace.get_tracer(__name__)
logger = logging.getLogger(__name__)

DEFAULT_VIACEP_BASE_URL = "https://viacep.com.br/ws"
DEFAULT_NOMINATIM_BASE_URL = "https://nominatim.openstreetmap.org"
DEFAULT_USER_AGENT = "oucbt-inscricao-api/1.0"
DEFAULT_TIMEOUT_SECONDS = 10.0

STREET_PREFIXES = ("Estrada ", "Rua ", "Avenida ")

STATE_ABBREVIATIONS = {
    'acre': 'AC',
    'alagoas': 'AL',
    'amapá': 'AP',
    'amapa': 'AP',
    'amazonas': 'AM',
    'bahia': 'BA',
    'ceará': 'CE',
    'ceara': 'CE',
    'distrito federal': 'DF',
    'espírito santo': 'ES',
    'espirito santo': 'ES',
    'goiás': 'GO',
    'goias': 'GO',
    'maranhão': 'MA',
    'maranhao': 'MA',
    'mato grosso': 'MT',
    'mato grosso do sul': 'MS',
    'minas gerais': 'MG',
    'pará': 'PA',
    'para': 'PA',
    'paraíba': 'PB',
    'paraiba': 'PB',
    'paraná': 'PR',
    'parana': 'PR',
    'pernambuco': 'PE',
    'piauí': 'PI',
    'piaui': 'PI',
    'rio de janeiro': 'RJ',
    'rio grande do norte': 'RN',
    'rio grande do sul': 'RS',
    'rondônia': 'RO',
    'rondonia': 'RO',
    'roraima': 'RR',
    'santa catarina': 'SC',
    'são paulo': 'SP',
    'sao paulo': 'SP',
    'sergipe': 'SE',
    'tocantins': 'TO',
}


class GeocodingLookupError(LookupFailedError):
    """Raised when a geocoding provider cannot be reached or answers garbage."""

    def __init__(self, provider: str, message: str):
        super().__init__(f"{provider}: {message}")
        self.provider = provider


def state_abbreviation(state_name: Optional[str]) -> str:
    """Map a state name to its UF, falling back to its first two letters."""
    normalized = (state_name or "").strip().lower()
    if not normalized:
        return ""
    return STATE_ABBREVIATIONS.get(normalized, normalized[:2].upper())


def format_postal_code(value: Optional[str]) -> str:
    digits = only_digits(value)
    if len(digits) != 8:
        return value or ""
    return f"{digits[:5]}-{digits[5:]}"


@dataclass
class PostalAddress:
    """Structured address returned by a lookup."""
    street: str = ""
    number: Optional[str] = None
    complement: Optional[str] = None
    neighborhood: str = ""
    city: str = ""
    state: str = ""
    postal_code: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def query(self) -> str:
        """street, neighborhood, city, UF"""
        return f"{self.street}, {self.neighborhood}, {self.city}, {self.state}"


@dataclass
class GeocodeCandidate:
    """One Nominatim search hit."""
    coordinate: Coordinate
    display_name: str
    address: Dict[str, Any]

    def is_sao_paulo_city(self) -> bool:
        return (
            self.address.get("city") == "São Paulo"
            or "São Paulo" in (self.address.get("municipality") or "")
            or "São Paulo, Região" in self.display_name
        )

    def is_detailed(self) -> bool:
        return bool(
            (self.address.get("road") or self.address.get("pedestrian"))
            and self.address.get("postcode")
        )


class _HttpClient:
    """Shared requests session with timeout, User-Agent and tracing."""

    provider = "http"

    def __init__(self, base_url: str, timeout: float, user_agent: str, session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({
            "User-Agent": user_agent,
            "Accept": "application/json"
        })

    def _get_json(self, url: str, params: Optional[Dict[str, Any]] = None) -> Any:
        with tracer.start_as_current_span(f"geocoding.{self.provider}.request") as span:
            span.set_attributes({
                "http.method": "GET",
                "http.url": url,
                "geocoding.provider": self.provider
            })
            try:
                response = self.session.get(url, params=params, timeout=self.timeout)
                span.set_attribute("http.status_code", response.status_code)
                response.raise_for_status()
                return response.json()
            except requests.RequestException as e:
                span.record_exception(e)
                logger.warning(
                    f"{self.provider} request failed",
                    extra={"provider": self.provider, "url": url, "error": str(e)}
                )
                raise GeocodingLookupError(self.provider, f"request failed: {str(e)}")
            except ValueError as e:
                span.record_exception(e)
                logger.warning(
                    f"{self.provider} returned invalid JSON",
                    extra={"provider": self.provider, "url": url}
                )
                raise GeocodingLookupError(self.provider, "invalid JSON response")


class ViaCepClient(_HttpClient):
    """Postal code lookup through ViaCEP."""

    provider = "viacep"

    def __init__(
        self,
        base_url: str = DEFAULT_VIACEP_BASE_URL,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        user_agent: str = DEFAULT_USER_AGENT,
        session: Optional[requests.Session] = None
    ):
        super().__init__(base_url, timeout, user_agent, session)

    def lookup(self, postal_code: str) -> Optional[PostalAddress]:
        """
        Resolve a CEP into an address.

        Args:
            postal_code: CEP with or without dash

        Returns:
            PostalAddress, or None when the CEP does not exist

        Raises:
            GeocodingLookupError: On transport failure
            ValueError: If the CEP doesn't have 8 digits
        """
        digits = only_digits(postal_code)
        if len(digits) != 8:
            raise ValueError(f"Postal code must have 8 digits: {postal_code}")

        data = self._get_json(f"{self.base_url}/{digits}/json/")
        if not isinstance(data, dict):
            raise GeocodingLookupError(self.provider, "unexpected response shape")
        if data.get("erro") in (True, "true"):
            logger.info("Postal code not found", extra={"postal_code": digits})
            return None

        return PostalAddress(
            street=data.get("logradouro") or "",
            complement=data.get("complemento") or None,
            neighborhood=data.get("bairro") or "",
            city=data.get("localidade") or "",
            state=(data.get("uf") or "").upper(),
            postal_code=format_postal_code(data.get("cep") or digits)
        )


class NominatimClient(_HttpClient):
    """Forward and reverse geocoding through OpenStreetMap Nominatim."""

    provider = "nominatim"

    def __init__(
        self,
        base_url: str = DEFAULT_NOMINATIM_BASE_URL,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        user_agent: str = DEFAULT_USER_AGENT,
        session: Optional[requests.Session] = None
    ):
        super().__init__(base_url, timeout, user_agent, session)

    def search(self, query: str, limit: int = 5) -> List[GeocodeCandidate]:
        """Free-text search restricted to Brazil."""
        data = self._get_json(f"{self.base_url}/search", params={
            "format": "json",
            "q": query,
            "limit": limit,
            "countrycodes": "br",
            "addressdetails": 1
        })
        if not isinstance(data, list):
            raise GeocodingLookupError(self.provider, "unexpected response shape")

        candidates = []
        for item in data:
            try:
                coordinate = Coordinate(float(item["lat"]), float(item["lon"]))
            except (KeyError, TypeError, ValueError):
                continue
            candidates.append(GeocodeCandidate(
                coordinate=coordinate,
                display_name=item.get("display_name") or "",
                address=item.get("address") or {}
            ))
        return candidates

    @staticmethod
    def build_queries(street: str, neighborhood: str, city: str, state: str) -> List[str]:
        """Query variants, from most to least specific."""
        address = f"{street}, {neighborhood}, {city}, {state}"
        bare_street = street
        for prefix in STREET_PREFIXES:
            bare_street = bare_street.replace(prefix, "")

        queries = [
            address,
            f"{address}, Brasil",
            f"{address}, São Paulo, Brasil",
            f"{bare_street}, {neighborhood}, {city}, {state}",
            f"{street.replace('Estrada ', '')}, {city}, {state}, Brasil",
            f"{neighborhood}, {city}, {state}, Brasil",
            f"{neighborhood}, {city}, Região Metropolitana de São Paulo, Brasil",
        ]
        return [q for q in queries if q.strip(", ")]

    def geocode_address(self, street: str, neighborhood: str, city: str, state: str) -> Optional[GeocodeCandidate]:
        """
        Find the best coordinate for an address.

        Tries each query variant in order. Results in São Paulo city are
        preferred; the first candidate having a street and a postcode wins,
        otherwise the first candidate of any query is used.
        """
        with tracer.start_as_current_span("geocoding.geocode_address") as span:
            best: Optional[GeocodeCandidate] = None

            for query in self.build_queries(street, neighborhood, city, state):
                candidates = self.search(query)
                if not candidates:
                    continue

                in_city = [c for c in candidates if c.is_sao_paulo_city()]
                to_check = in_city or candidates

                detailed = next((c for c in to_check if c.is_detailed()), None)
                if detailed is not None:
                    best = detailed
                    break
                if best is None:
                    best = to_check[0]

            span.set_attribute("geocoding.found", best is not None)
            return best

    def reverse(self, latitude: float, longitude: float) -> Optional[PostalAddress]:
        """Resolve a coordinate into an address, None when nothing is there."""
        with tracer.start_as_current_span("geocoding.reverse") as span:
            data = self._get_json(f"{self.base_url}/reverse", params={
                "format": "json",
                "lat": latitude,
                "lon": longitude,
                "zoom": 18,
                "addressdetails": 1
            })
            address = data.get("address") if isinstance(data, dict) else None
            span.set_attribute("geocoding.found", bool(address))
            if not address:
                return None

            return PostalAddress(
                street=address.get("road") or address.get("pedestrian") or "",
                number=address.get("house_number") or None,
                neighborhood=address.get("neighbourhood") or address.get("suburb") or "",
                city=address.get("city") or address.get("town") or address.get("village") or "",
                state=state_abbreviation(address.get("state")),
                postal_code=format_postal_code(address.get("postcode"))
            )


@dataclass
class PostalCodeLookup:
    """Result of resolving a CEP: the address and, when found, its coordinate."""
    address: PostalAddress
    coordinate: Optional[Coordinate]


class AddressGeocoder:
    """Combines ViaCEP and Nominatim for the enrollment address step."""

    def __init__(self, viacep: ViaCepClient, nominatim: NominatimClient):
        self.viacep = viacep
        self.nominatim = nominatim

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> "AddressGeocoder":
        timeout = float(config.get('GEOCODING_TIMEOUT_SECONDS', DEFAULT_TIMEOUT_SECONDS))
        user_agent = config.get('GEOCODING_USER_AGENT') or DEFAULT_USER_AGENT
        return cls(
            ViaCepClient(config.get('VIACEP_BASE_URL') or DEFAULT_VIACEP_BASE_URL, timeout, user_agent),
            NominatimClient(config.get('NOMINATIM_BASE_URL') or DEFAULT_NOMINATIM_BASE_URL, timeout, user_agent)
        )

    def lookup_postal_code(self, postal_code: str) -> Optional[PostalCodeLookup]:
        """
        CEP to address and coordinate.

        Returns:
            None when the CEP does not exist; coordinate None when the
            address could not be placed on the map

        Raises:
            GeocodingLookupError: On transport failure of either provider
        """
        with tracer.start_as_current_span("geocoding.lookup_postal_code"):
            address = self.viacep.lookup(postal_code)
            if address is None:
                return None

            candidate = self.nominatim.geocode_address(
                address.street, address.neighborhood, address.city, address.state
            )
            return PostalCodeLookup(address, candidate.coordinate if candidate else None)

    def resolve_coordinate(self, address: AddressDraft) -> Optional[Coordinate]:
        """Coordinate for a draft address, used by the address step predicate."""
        if address.street or address.neighborhood:
            candidate = self.nominatim.geocode_address(
                address.street, address.neighborhood, address.city, address.state
            )
            if candidate is not None:
                return candidate.coordinate

        if len(only_digits(address.postal_code)) == 8:
            result = self.lookup_postal_code(address.postal_code)
            if result is not None:
                return result.coordinate
        return None

    def reverse(self, coordinate: Coordinate) -> Optional[PostalAddress]:
        return self.nominatim.reverse(coordinate.latitude, coordinate.longitude)
