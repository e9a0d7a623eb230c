from __future__ import annotations

import logging
from glob import glob
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from geoturtle.core.columns import detect_geometry_columns
from geoturtle.core.dispatcher import LiteralConverter
from geoturtle.core.literals import ResultRow
from geoturtle.io.geojson_writer import write_geojson
from geoturtle.io.results_reader import read_bindings

logger = logging.getLogger(__name__)


def convert_rows(rows: Sequence[ResultRow], converter: LiteralConverter,
                 columns: Optional[Sequence[str]] = None) -> Dict[str, dict]:
    """One FeatureCollection per geometry column."""
    if columns is None:
        columns = [c.column for c in detect_geometry_columns(rows, converter.datatypes)]
    return {col: converter.build_feature_collection(rows, col) for col in columns}


async def render(rows: Sequence[ResultRow], converter: LiteralConverter,
                 columns: Optional[Sequence[str]] = None, wait: bool = False) -> Dict[str, dict]:
    """
    Draw once. With `wait`, let the projection lookups started by that draw
    finish and draw again, so the new definitions are applied.
    """
    collections = convert_rows(rows, converter, columns)
    registry = converter.registry
    if wait and registry.pending():
        logger.info("Waiting for projection lookups: %s", registry.pending())
        await registry.drain()
        collections = convert_rows(rows, converter, columns)
    return collections


def output_paths(out_path: str, columns: Sequence[str]) -> Dict[str, Path]:
    out = Path(out_path)
    if len(columns) == 1:
        return {columns[0]: out}
    return {col: out.with_name(f"{out.stem}.{col}{out.suffix or '.geojson'}") for col in columns}


async def run_convert(results_path, out_path, converter: LiteralConverter,
                      column: Optional[str] = None, wait: bool = False,
                      json_encoding: str = "utf-8") -> List[str]:
    rows = read_bindings(results_path, encoding=json_encoding)
    columns = [column] if column else None
    collections = await render(rows, converter, columns=columns, wait=wait)
    if not collections:
        logger.warning("No geometry columns found in %s", results_path)
        return []

    written = []
    for col, path in output_paths(out_path, list(collections)).items():
        written.append(write_geojson(collections[col], path))
        logger.info("Wrote %d features for ?%s to %s",
                    len(collections[col]["features"]), col, path, extra={"column": col})
    return written


async def run_convert_batch(input_glob: str, out_dir: str, converter: LiteralConverter,
                            column: Optional[str] = None, wait: bool = False,
                            json_encoding: str = "utf-8") -> List[str]:
    outd = Path(out_dir)
    outd.mkdir(parents=True, exist_ok=True)
    written = []
    for fp in sorted(glob(input_glob)):
        out = outd / (Path(fp).stem + ".geojson")
        written.extend(await run_convert(fp, str(out), converter, column=column,
                                         wait=wait, json_encoding=json_encoding))
    return written
