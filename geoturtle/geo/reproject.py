from typing import Any, Callable, Dict, List, Optional, Tuple
import copy
import logging

from pyproj import CRS, Transformer
from pyproj.exceptions import CRSError, ProjError

from geoturtle.geo.registry import ProjectionRegistry

logger = logging.getLogger(__name__)

WGS84 = "EPSG:4326"

# GeoJSON coordinate nesting depth per geometry type
COORD_DEPTH = {
    "Point": 0,
    "MultiPoint": 1,
    "LineString": 1,
    "Polygon": 2,
    "MultiLineString": 2,
    "MultiPolygon": 3,
}

Position = List[Any]


def _make_transformer(src: str, dst: str) -> Transformer:
    # always_xy=True enforces lon,lat order on the output side
    return Transformer.from_crs(CRS.from_user_input(src), CRS.from_user_input(dst), always_xy=True)


def _swap_xy(pos: Position) -> Position:
    return [pos[1], pos[0], *pos[2:]]


def _walk(coords: Any, depth: int, fn: Callable[[Position], Position]) -> Any:
    if depth == 0:
        return fn(list(coords))
    return [_walk(c, depth - 1, fn) for c in coords]


class Reprojector:
    """Rewrite GeoJSON geometries into the output CRS using registry definitions."""

    def __init__(self, registry: ProjectionRegistry):
        self.registry = registry
        self._transformer_cache: Dict[Tuple[str, str], Transformer] = {}

    def _definition(self, code: str) -> Optional[str]:
        try:
            return self.registry.get(code)
        except ValueError:
            # not an EPSG code the registry can hold
            return None

    def get_transformer(self, source_crs: str, target_crs: str) -> Transformer:
        """
        Cached transformer between two registered CRSs.

        Raises:
            CRSError: if either CRS is unregistered or its definition is invalid
        """
        src_def = self._definition(source_crs)
        dst_def = self._definition(target_crs)
        if src_def is None or dst_def is None:
            missing = source_crs if src_def is None else target_crs
            raise CRSError(f"No projection definition registered for {missing}")

        key = (src_def, dst_def)
        if key not in self._transformer_cache:
            self._transformer_cache[key] = _make_transformer(src_def, dst_def)
            logger.debug("Created transformer %s -> %s", source_crs, target_crs)
        return self._transformer_cache[key]

    def position_transform(self, source_crs: str, target_crs: str = WGS84) -> Callable[[Position], Position]:
        """Per-position transform; a position that fails to project is returned unchanged."""
        if source_crs == WGS84:
            # EPSG:4326 literals arrive as (lat, lon); only the axes need fixing
            return lambda pos: _swap_xy(pos) if len(pos) >= 2 else pos

        def _xy(pos: Position) -> Position:
            if len(pos) < 2:
                return pos
            try:
                tfm = self.get_transformer(source_crs, target_crs)
                x2, y2 = tfm.transform(pos[0], pos[1], errcheck=True)
            except (CRSError, ProjError) as e:
                logger.debug("Leaving %s unprojected (%s -> %s): %s", pos, source_crs, target_crs, e)
                return pos
            return [x2, y2, *pos[2:]]

        return _xy

    def reproject(self, geometry: Dict[str, Any], source_crs: str, target_crs: str = WGS84) -> Dict[str, Any]:
        """
        Return a reprojected deep copy of `geometry`; the input is left untouched.
        Unknown geometry types are copied as they are.
        """
        return self._reproject(geometry, self.position_transform(source_crs, target_crs))

    def _reproject(self, geometry: Dict[str, Any], fn: Callable[[Position], Position]) -> Dict[str, Any]:
        gtype: Optional[str] = geometry.get("type")
        out = copy.deepcopy(geometry)

        if gtype == "GeometryCollection":
            out["geometries"] = [self._reproject(g, fn) for g in geometry.get("geometries", [])]
            return out

        depth = COORD_DEPTH.get(gtype)
        if depth is None or "coordinates" not in geometry:
            return out
        out["coordinates"] = _walk(geometry["coordinates"], depth, fn)
        return out
