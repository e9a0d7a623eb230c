from dataclasses import dataclass
from typing import Any, Dict, List, Optional

# One SPARQL binding: variable name -> result cell
ResultRow = Dict[str, Any]

GEO = "http://www.opengis.net/ont/geosparql#"
WKT_LITERAL = GEO + "wktLiteral"
GEOJSON_LITERAL = GEO + "geoJSONLiteral"
# Virtuoso's native geometry datatype
VIRTRDF_GEOMETRY = "http://www.openlinksw.com/schemas/virtrdf#Geometry"


@dataclass(frozen=True)
class TypedLiteral:
    value: str
    datatype: str

    @classmethod
    def from_cell(cls, cell: Any) -> Optional["TypedLiteral"]:
        """Typed literal of a results cell, or None for URIs, bnodes and plain literals."""
        if not isinstance(cell, dict):
            return None
        value, datatype = cell.get("value"), cell.get("datatype")
        if not isinstance(value, str) or not isinstance(datatype, str):
            return None
        return cls(value, datatype)


def empty_point() -> Dict[str, Any]:
    # fresh object every time: callers may mutate the features they get
    return {"type": "Point", "coordinates": []}


def feature(row: ResultRow, geometry: Dict[str, Any]) -> Dict[str, Any]:
    return {"type": "Feature", "properties": row, "geometry": geometry}


def feature_collection(features: List[Dict[str, Any]]) -> Dict[str, Any]:
    return {"type": "FeatureCollection", "features": features}
