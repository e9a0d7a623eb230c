"""Projection definitions by SRID, looked up remotely when missing."""
from __future__ import annotations

import asyncio
import logging
from typing import Dict, List, Mapping, Optional, Union

import httpx

logger = logging.getLogger(__name__)

DEFAULT_URL_TEMPLATE = "https://epsg.io/{srid}.proj4"
DEFAULT_TIMEOUT = 10.0

# Built-in PROJ definitions, registered before any lookup happens.
SRID_PROJ: Dict[int, str] = {
    # PROJ defaults to longitude first axis order
    4326: "+proj=longlat +datum=WGS84 +ellps=WGS84 +no_defs",
    # Web Mercator
    3857: "+proj=merc +a=6378137 +b=6378137 +lat_ts=0.0 +lon_0=0 +x_0=0 +y_0=0 +k=1.0 +units=m +no_defs",
    # Belgium Lambert 1972
    31370: "+proj=lcc +lat_1=51.166667 +lat_2=49.833333 +lat_0=90 +lon_0=4.367486666666667 "
           "+x_0=150000.013 +y_0=5400088.438 +ellps=intl +units=m +no_defs",
    # ETRS89 geographic
    4258: "+proj=longlat +ellps=GRS80 +no_defs",
    # ETRS89 / LAEA Europe
    3035: "+proj=laea +lat_0=52 +lon_0=10 +x_0=4321000 +y_0=3210000 +ellps=GRS80 +units=m +no_defs",
    # ETRS89 / UTM zone 32N
    25832: "+proj=utm +zone=32 +ellps=GRS80 +units=m +no_defs",
    # ETRS89 / UTM zone 33N
    25833: "+proj=utm +zone=33 +ellps=GRS80 +units=m +no_defs",
}

SridLike = Union[int, str]


def to_srid(srid: SridLike) -> int:
    """Accept 31370, "31370" or "EPSG:31370"."""
    if isinstance(srid, str) and srid.upper().startswith("EPSG:"):
        srid = srid[len("EPSG:"):]
    value = int(srid)
    if value <= 0:
        raise ValueError(f"SRID must be positive, got {value}")
    return value


def epsg_code(srid: SridLike) -> str:
    return f"EPSG:{to_srid(srid)}"


class ProjectionRegistry:
    """SRID -> PROJ definition, with lazy single-flight remote lookups."""

    def __init__(self,
                 url_template: str = DEFAULT_URL_TEMPLATE,
                 timeout: float = DEFAULT_TIMEOUT,
                 transport: Optional[httpx.AsyncBaseTransport] = None,
                 seed: bool = True):
        self.url_template = url_template
        self.timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self._client_loop: Optional[asyncio.AbstractEventLoop] = None
        self._defs: Dict[int, str] = {}
        self._inflight: Dict[int, asyncio.Task] = {}
        if seed:
            self.register_many(SRID_PROJ)

    @property
    def client(self) -> httpx.AsyncClient:
        """Lazy initialization of HTTP client, one per event loop"""
        loop = asyncio.get_running_loop()
        if self._client is None or self._client_loop is not loop:
            # a client bound to a finished loop can be neither reused nor closed
            self._client = httpx.AsyncClient(timeout=self.timeout, transport=self._transport)
            self._client_loop = loop
        return self._client

    async def aclose(self) -> None:
        """Cancel lookups still in flight and close the HTTP client."""
        tasks = list(self._inflight.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        if self._client is not None:
            if self._client_loop is asyncio.get_running_loop():
                await self._client.aclose()
            self._client = None
            self._client_loop = None

    # --- synchronous view -------------------------------------------------
    def has(self, srid: SridLike) -> bool:
        return to_srid(srid) in self._defs

    def get(self, srid: SridLike) -> Optional[str]:
        return self._defs.get(to_srid(srid))

    def register(self, srid: SridLike, definition: str) -> None:
        # last write wins; definitions are opaque until used for projection
        self._defs[to_srid(srid)] = definition

    def register_many(self, definitions: Mapping[SridLike, str]) -> None:
        for srid, definition in definitions.items():
            self.register(srid, definition)

    def srids(self) -> List[int]:
        return sorted(self._defs)

    def pending(self) -> List[int]:
        return sorted(self._inflight)

    # --- remote resolution ------------------------------------------------
    async def ensure_registered(self, srid: SridLike) -> None:
        """
        Make sure a definition for `srid` is known, fetching it if needed.

        Never raises for lookup failures: re-check `has(srid)` afterwards.
        Concurrent calls for the same SRID share a single request.
        """
        task = self._start(to_srid(srid))
        if task is not None:
            # shield: one caller giving up must not cancel the shared fetch
            await asyncio.shield(task)

    def schedule(self, srid: SridLike) -> Optional[asyncio.Task]:
        """
        Fire-and-forget `ensure_registered`. The returned task only ever
        mutates the registry. Without a running event loop nothing is fetched.
        """
        code = to_srid(srid)
        if code in self._defs:
            return None
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No event loop running; not fetching SRID %s", code, extra={"srid": code})
            return None
        return self._start(code)

    async def drain(self) -> None:
        """Wait for every lookup in flight, including ones started meanwhile."""
        while self._inflight:
            await asyncio.gather(*list(self._inflight.values()), return_exceptions=True)

    def _start(self, srid: int) -> Optional[asyncio.Task]:
        if srid in self._defs:
            return None
        task = self._inflight.get(srid)
        if task is None:
            task = asyncio.ensure_future(self._fetch(srid))
            self._inflight[srid] = task
            task.add_done_callback(lambda t, s=srid: self._finished(s, t))
        return task

    def _finished(self, srid: int, task: asyncio.Task) -> None:
        if self._inflight.get(srid) is task:
            del self._inflight[srid]
        if not task.cancelled() and task.exception() is not None:
            logger.error("Lookup task for SRID %s crashed: %r", srid, task.exception(),
                         extra={"srid": srid})

    async def _fetch(self, srid: int) -> None:
        try:
            url = self.url_template.format(srid=srid)
            response = await self.client.get(url)
        except httpx.HTTPError as e:
            logger.error("Error fetching projection definition for SRID %s: %s", srid, e,
                         extra={"srid": srid})
            return
        except Exception as e:
            # e.g. httpx.InvalidURL from a bad template; a lookup never raises
            logger.error("Projection lookup for SRID %s failed: %r", srid, e, extra={"srid": srid})
            return

        if not response.is_success:
            logger.warning("Failed to fetch projection definition for SRID %s (HTTP %s)",
                           srid, response.status_code, extra={"srid": srid})
            return

        definition = response.text.strip()
        if not definition:
            logger.warning("Empty projection definition returned for SRID %s", srid,
                           extra={"srid": srid})
            return

        self.register(srid, definition)
        logger.debug("Registered SRID %s: %s", srid, definition, extra={"srid": srid})
