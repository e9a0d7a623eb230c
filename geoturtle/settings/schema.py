from typing import Dict
from dataclasses import dataclass, field

from geoturtle.core.dispatcher import ConverterKind
from geoturtle.geo.registry import DEFAULT_TIMEOUT, DEFAULT_URL_TEMPLATE
from geoturtle.geo.reproject import WGS84


@dataclass
class Settings:
    projection_url_template: str = DEFAULT_URL_TEMPLATE  # must contain "{srid}"
    fetch_timeout: float = DEFAULT_TIMEOUT
    target_crs: str = WGS84
    extra_datatypes: Dict[str, ConverterKind] = field(default_factory=dict)
    extra_projections: Dict[int, str] = field(default_factory=dict)
