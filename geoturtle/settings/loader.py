from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from geoturtle.core.dispatcher import ConverterKind, LiteralConverter, merged_datatypes
from geoturtle.geo.registry import ProjectionRegistry, to_srid
from geoturtle.geo.reproject import Reprojector
from geoturtle.settings.schema import Settings

ENV_PROJECTION_URL = "GEOTURTLE_PROJECTION_URL"
ENV_FETCH_TIMEOUT = "GEOTURTLE_FETCH_TIMEOUT"

_KNOWN_KEYS = {
    "projection_url_template",
    "fetch_timeout",
    "target_crs",
    "datatypes",
    "projections",
}


def _parse_timeout(raw: Any, origin: str) -> float:
    try:
        value = float(raw)
    except (TypeError, ValueError):
        raise ValueError(f"{origin}: fetch timeout must be a number, got {raw!r}")
    if value <= 0:
        raise ValueError(f"{origin}: fetch timeout must be positive, got {value}")
    return value


def _parse_datatypes(raw: Mapping[str, Any], origin: str) -> Dict[str, ConverterKind]:
    """
    {"http://example.org/def#wkt": "wkt", ...}
    Only converter kinds that produce geometry may be configured.
    """
    out: Dict[str, ConverterKind] = {}
    for uri, kind in raw.items():
        try:
            parsed = ConverterKind(str(kind).lower())
        except ValueError:
            parsed = None
        if parsed not in (ConverterKind.WKT, ConverterKind.GEOJSON):
            raise ValueError(f"{origin}: datatype {uri!r} maps to unknown converter {kind!r}; "
                             f"expected 'wkt' or 'geojson'.")
        out[uri] = parsed
    return out


def _parse_projections(raw: Mapping[str, Any], origin: str) -> Dict[int, str]:
    out: Dict[int, str] = {}
    for srid, definition in raw.items():
        try:
            code = to_srid(srid)
        except ValueError:
            raise ValueError(f"{origin}: {srid!r} is not a valid SRID")
        if not isinstance(definition, str) or not definition.strip():
            raise ValueError(f"{origin}: projection for SRID {code} must be a non-empty string")
        out[code] = definition.strip()
    return out


def _from_raw(raw: Dict[str, Any], origin: str) -> Settings:
    unknown = set(raw) - _KNOWN_KEYS
    if unknown:
        raise ValueError(
            f"Unrecognized settings in {origin}: {sorted(unknown)}; "
            f"expected any of {sorted(_KNOWN_KEYS)}."
        )

    settings = Settings()
    if "projection_url_template" in raw:
        settings.projection_url_template = str(raw["projection_url_template"])
    if "fetch_timeout" in raw:
        settings.fetch_timeout = _parse_timeout(raw["fetch_timeout"], origin)
    if "target_crs" in raw:
        settings.target_crs = str(raw["target_crs"])
    settings.extra_datatypes = _parse_datatypes(raw.get("datatypes") or {}, origin)
    settings.extra_projections = _parse_projections(raw.get("projections") or {}, origin)
    return settings


def load_settings(settings_path: Optional[str] = None, json_encoding: str = "utf-8") -> Settings:
    """
    Settings from an optional JSON file, then environment overrides:
      GEOTURTLE_PROJECTION_URL   template with a "{srid}" placeholder
      GEOTURTLE_FETCH_TIMEOUT    seconds
    """
    if settings_path:
        text = Path(settings_path).read_text(encoding=json_encoding)
        raw = json.loads(text)
        if not isinstance(raw, dict):
            raise ValueError(f"Settings file {settings_path!r} must hold a JSON object")
        settings = _from_raw(raw, repr(settings_path))
    else:
        settings = Settings()

    url = os.getenv(ENV_PROJECTION_URL)
    if url:
        settings.projection_url_template = url
    timeout = os.getenv(ENV_FETCH_TIMEOUT)
    if timeout:
        settings.fetch_timeout = _parse_timeout(timeout, ENV_FETCH_TIMEOUT)

    if "{srid}" not in settings.projection_url_template:
        raise ValueError(
            f"projection_url_template {settings.projection_url_template!r} has no {{srid}} placeholder"
        )
    return settings


def build_registry(settings: Settings, transport=None) -> ProjectionRegistry:
    registry = ProjectionRegistry(
        url_template=settings.projection_url_template,
        timeout=settings.fetch_timeout,
        transport=transport,
    )
    registry.register_many(settings.extra_projections)
    return registry


def build_converter(settings: Settings, registry: ProjectionRegistry) -> LiteralConverter:
    return LiteralConverter(
        registry,
        reprojector=Reprojector(registry),
        datatypes=merged_datatypes(settings.extra_datatypes),
        target_crs=settings.target_crs,
    )
