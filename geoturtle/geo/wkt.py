import re
from typing import Any, Mapping, Optional, Tuple

from shapely import from_wkt, to_wkt
from shapely.geometry import mapping, shape

# GeoSPARQL 1.1 default CRS: lon/lat WGS84, the same axis order GeoJSON uses.
CRS84_IRI = "http://www.opengis.net/def/crs/OGC/1.3/CRS84"
CRS84_IRIS = frozenset({CRS84_IRI, "https" + CRS84_IRI[len("http"):]})

_SRID_PREFIX = re.compile(r"^SRID=(\d+);(.*)$", re.DOTALL)
_IRI_PREFIX = re.compile(r"^<([^>]*)>\s*(.*)$", re.DOTALL)
_TRAILING_CODE = re.compile(r"/(\d+)$")


def normalize(literal: str) -> str:
    """
    Rewrite a WKT literal into one of two canonical shapes:

        SRID=<n>;<wkt>    when the literal names a CRS by a numeric IRI
        <wkt>             when it carries no CRS, or the CRS84 IRI

    `SRID=` literals, bare WKT and anything unrecognized are returned as-is;
    the WKT parser is the one to reject text that is not geometry.
    """
    if _SRID_PREFIX.match(literal):
        return literal

    m = _IRI_PREFIX.match(literal)
    if not m:
        return literal

    iri, body = m.group(1).strip(), m.group(2)
    if iri in CRS84_IRIS:
        return body

    code = _TRAILING_CODE.search(iri)
    if code:
        return f"SRID={code.group(1)};{body.strip()}"
    return literal


def split_srid(literal: str) -> Tuple[Optional[int], str]:
    """Split an optional `SRID=<n>;` prefix off a normalized literal."""
    m = _SRID_PREFIX.match(literal)
    if not m:
        return None, literal
    return int(m.group(1)), m.group(2).strip()


def _jsonable(value: Any) -> Any:
    # shapely's mapping() nests tuples; GeoJSON wants plain lists
    if isinstance(value, Mapping):
        return {k: _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return value


def parse_wkt(body: str) -> dict:
    """
    Parse a bare WKT body into a GeoJSON geometry dict.
    Coordinates keep the order they have in the text.
    """
    geom = from_wkt(body)
    return _jsonable(mapping(geom))


def wkt_literal_crs84(geometry: Mapping[str, Any]) -> str:
    """
    Render a GeoJSON geometry as CRS84-prefixed WKT literal text.
    Example: "<CRS84> POINT (lon lat)"
    """
    # Preserve Z if present; Shapely 2's to_wkt auto-detects dimension
    wkt = to_wkt(shape(geometry), rounding_precision=15)
    return f"<{CRS84_IRI}> {wkt}"
