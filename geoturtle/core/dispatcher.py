from __future__ import annotations

import enum
import json
import logging
from typing import Any, Dict, Iterable, Mapping, Optional

from geoturtle.core.literals import (
    GEOJSON_LITERAL,
    VIRTRDF_GEOMETRY,
    WKT_LITERAL,
    ResultRow,
    TypedLiteral,
    empty_point,
    feature,
    feature_collection,
)
from geoturtle.geo.registry import ProjectionRegistry, epsg_code
from geoturtle.geo.reproject import WGS84, Reprojector
from geoturtle.geo.wkt import normalize, parse_wkt, split_srid

logger = logging.getLogger(__name__)


class ConverterKind(enum.Enum):
    WKT = "wkt"                  # may trigger a projection lookup
    GEOJSON = "geojson"          # pure parse
    UNSUPPORTED = "unsupported"  # empty point placeholder


DATATYPE_CONVERTERS: Dict[str, ConverterKind] = {
    WKT_LITERAL: ConverterKind.WKT,
    VIRTRDF_GEOMETRY: ConverterKind.WKT,
    GEOJSON_LITERAL: ConverterKind.GEOJSON,
}


def merged_datatypes(extra: Optional[Mapping[str, ConverterKind]] = None) -> Dict[str, ConverterKind]:
    out = dict(DATATYPE_CONVERTERS)
    out.update(extra or {})
    return out


class LiteralConverter:
    """
    Turns geometry literals from result rows into GeoJSON geometries.

    WKT literals naming an SRID that is not registered yet are returned
    unprojected; the lookup is started in the background so that a later
    conversion of the same literal comes out reprojected.
    """

    def __init__(self,
                 registry: ProjectionRegistry,
                 reprojector: Optional[Reprojector] = None,
                 datatypes: Optional[Mapping[str, ConverterKind]] = None,
                 target_crs: str = WGS84):
        self.registry = registry
        self.reprojector = reprojector or Reprojector(registry)
        self.datatypes = dict(datatypes) if datatypes is not None else dict(DATATYPE_CONVERTERS)
        self.target_crs = target_crs

    def kind_for(self, datatype: Optional[str]) -> ConverterKind:
        if datatype is None:
            return ConverterKind.UNSUPPORTED
        return self.datatypes.get(datatype, ConverterKind.UNSUPPORTED)

    def convert(self, literal: Optional[TypedLiteral]) -> Dict[str, Any]:
        kind = self.kind_for(literal.datatype if literal else None)
        if kind is ConverterKind.WKT:
            return self.convert_wkt(literal.value)
        elif kind is ConverterKind.GEOJSON:
            return self.convert_geojson(literal.value)
        return empty_point()

    def convert_wkt(self, text: str) -> Dict[str, Any]:
        srid, body = split_srid(normalize(text))
        if srid is not None and srid <= 0:
            # SRID=0 names no CRS: parse, never look up
            srid = None
        if srid is not None:
            # detached: never wait for the network here
            self.registry.schedule(srid)

        geometry = parse_wkt(body)
        if srid is not None and self.registry.has(srid):
            return self.reprojector.reproject(geometry, epsg_code(srid), self.target_crs)
        return geometry

    def convert_geojson(self, text: str) -> Dict[str, Any]:
        geometry = json.loads(text)
        if not isinstance(geometry, dict) or not isinstance(geometry.get("type"), str):
            raise ValueError(f"Not a GeoJSON geometry: {text[:80]!r}")
        return geometry

    def build_feature_collection(self, rows: Iterable[ResultRow], column: str) -> Dict[str, Any]:
        """
        One feature per row, in row order, carrying the whole row as properties.
        A cell that cannot be converted gets an empty point instead.
        """
        features = []
        for idx, row in enumerate(rows):
            literal = TypedLiteral.from_cell(row.get(column))
            try:
                geometry = self.convert(literal)
            except Exception as e:
                logger.warning("Could not convert %s in row %d: %s", column, idx, e,
                               extra={"column": column, "row": idx})
                geometry = empty_point()
            features.append(feature(row, geometry))
        return feature_collection(features)
