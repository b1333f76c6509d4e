# SPDX-License-Identifier: Apache-2.0

"""
Loads the eligibility perimeter from a KML boundary file.

Every Polygon element in the document becomes one perimeter polygon; its
outerBoundaryIs ring is the outline and each innerBoundaryIs ring a hole.
KML coordinates are "lon,lat[,alt]" tuples separated by whitespace.
"""

import os
import logging
import xml.etree.ElementTree as ET
from pathlib import Path
from typing import List, Optional, Tuple, Union

from opentelemetry import trace

from domain.perimeter import PerimeterConfigurationError, PerimeterEngine, Polygon, Vertex

tracer = trace.get_tracer(__name__)
logger = logging.getLogger(__name__)

KML_NAMESPACE = "http://www.opengis.net/kml/2.2"
DEFAULT_PERIMETER_PATH = Path(__file__).resolve().parent / "data" / "perimetro.kml"


def _local_name(tag: str) -> str:
    """Tag without its {namespace} prefix."""
    return tag.rsplit('}', 1)[-1]


def _children(element: ET.Element, name: str) -> List[ET.Element]:
    return [child for child in element if _local_name(child.tag) == name]


def _descendants(element: ET.Element, name: str) -> List[ET.Element]:
    return [node for node in element.iter() if _local_name(node.tag) == name]


def parse_coordinates(text: Optional[str], label: str) -> List[Vertex]:
    """
    Parse a KML coordinates string.

    Raises:
        PerimeterConfigurationError: On empty or non-numeric tuples
    """
    vertices = []
    for token in (text or "").split():
        parts = token.split(',')
        if len(parts) < 2:
            raise PerimeterConfigurationError(f"{label}: malformed coordinate '{token}'")
        try:
            vertices.append((float(parts[0]), float(parts[1])))
        except ValueError:
            raise PerimeterConfigurationError(f"{label}: malformed coordinate '{token}'")

    if not vertices:
        raise PerimeterConfigurationError(f"{label}: ring has no coordinates")
    return vertices


def _ring(boundary: ET.Element, label: str) -> Tuple[Vertex, ...]:
    coordinates = _descendants(boundary, "coordinates")
    if not coordinates:
        raise PerimeterConfigurationError(f"{label}: boundary has no coordinates")
    return tuple(parse_coordinates(coordinates[0].text, label))


def _placemark_names(root: ET.Element) -> dict:
    """Map each Polygon element to the name of its enclosing Placemark."""
    names = {}
    for placemark in _descendants(root, "Placemark"):
        name_elements = _children(placemark, "name")
        name = (name_elements[0].text or "").strip() if name_elements else None
        for polygon in _descendants(placemark, "Polygon"):
            names[polygon] = name or None
    return names


def parse_perimeter_kml(content: Union[str, bytes], source: str = "<kml>") -> PerimeterEngine:
    """
    Build a PerimeterEngine from KML content.

    Raises:
        PerimeterConfigurationError: If the content is not valid KML or holds no polygon
    """
    try:
        root = ET.fromstring(content)
    except ET.ParseError as e:
        raise PerimeterConfigurationError(f"{source}: invalid KML: {e}")

    names = _placemark_names(root)
    polygons = []
    for index, element in enumerate(_descendants(root, "Polygon")):
        label = names.get(element) or f"{source} polygon {index}"

        outer = _children(element, "outerBoundaryIs")
        if not outer:
            raise PerimeterConfigurationError(f"{label}: polygon has no outerBoundaryIs")

        holes = tuple(
            _ring(inner, f"{label} hole {hole_index}")
            for hole_index, inner in enumerate(_children(element, "innerBoundaryIs"))
        )
        polygons.append(Polygon(vertices=_ring(outer[0], label), holes=holes, name=label))

    if not polygons:
        raise PerimeterConfigurationError(f"{source}: no Polygon found")

    return PerimeterEngine(polygons)


def load_perimeter(path: Optional[Union[str, Path]] = None) -> PerimeterEngine:
    """
    Load the perimeter boundary file.

    Args:
        path: KML file; defaults to PERIMETER_KML_PATH or the bundled perimetro.kml

    Raises:
        PerimeterConfigurationError: If the file is missing or malformed
    """
    path = Path(path or os.getenv('PERIMETER_KML_PATH') or DEFAULT_PERIMETER_PATH)

    with tracer.start_as_current_span("perimeter.load") as span:
        span.set_attribute("perimeter.path", str(path))
        try:
            content = path.read_bytes()
        except OSError as e:
            raise PerimeterConfigurationError(f"Cannot read perimeter file {path}: {e}")

        engine = parse_perimeter_kml(content, source=path.name)
        bounds = engine.get_perimeter_bounds()

        span.set_attribute("perimeter.polygons", len(engine.polygons))
        logger.info(
            "Perimeter loaded",
            extra={
                "path": str(path),
                "polygons": len(engine.polygons),
                "bounds": [bounds.min_latitude, bounds.max_latitude, bounds.min_longitude, bounds.max_longitude]
            }
        )
        return engine
