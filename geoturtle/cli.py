import argparse
import asyncio
import sys

from geoturtle.core.columns import detect_geometry_columns
from geoturtle.core.dispatcher import merged_datatypes
from geoturtle.core.engine import run_convert, run_convert_batch
from geoturtle.io.results_reader import read_bindings
from geoturtle.logging_setup import configure_logging
from geoturtle.settings.loader import build_converter, build_registry, load_settings


async def _convert(args, settings):
    registry = build_registry(settings)
    converter = build_converter(settings, registry)
    try:
        if args.cmd == "convert":
            return await run_convert(args.results, args.out, converter,
                                     column=args.column,
                                     wait=args.wait_projections,
                                     json_encoding=args.json_encoding)
        return await run_convert_batch(args.glob, args.out_dir, converter,
                                       column=args.column,
                                       wait=args.wait_projections,
                                       json_encoding=args.json_encoding)
    finally:
        await registry.aclose()


async def _resolve(srid, settings):
    registry = build_registry(settings)
    try:
        await registry.ensure_registered(srid)
        return registry.get(srid)
    finally:
        await registry.aclose()


def main(argv=None):
    ap = argparse.ArgumentParser(description="GeoTurtle: query result geometries → GeoJSON")
    ap.add_argument("--log-level", default=None, help="e.g. DEBUG, INFO (default: $LOG_LEVEL or WARNING)")
    ap.add_argument("--json-logs", action="store_true", default=None, help="emit JSON log lines")
    ap.add_argument("--config", default=None, help="settings JSON (projection lookup URL, extra datatypes, ...)")
    sub = ap.add_subparsers(dest="cmd", required=True)

    # single results file
    sp_conv = sub.add_parser("convert", help="Convert SPARQL JSON results → GeoJSON")
    sp_conv.add_argument("results")
    sp_conv.add_argument("out")
    sp_conv.add_argument("--column", default=None,
                         help="geometry variable to map (default: every detected geometry column)")
    sp_conv.add_argument("--wait-projections", action="store_true",
                         help="wait for unknown SRIDs to be looked up and convert again")
    sp_conv.add_argument("--json-encoding", default="utf-8")

    # batch mode
    sp_batch = sub.add_parser("convert-batch", help="Batch-convert results files → GeoJSON (glob path)")
    sp_batch.add_argument("glob", help=r'Glob, e.g. "results/*.json"')
    sp_batch.add_argument("out_dir")
    sp_batch.add_argument("--column", default=None)
    sp_batch.add_argument("--wait-projections", action="store_true")
    sp_batch.add_argument("--json-encoding", default="utf-8")

    # inspection
    sp_cols = sub.add_parser("columns", help="List geometry columns detected in a results file")
    sp_cols.add_argument("results")
    sp_cols.add_argument("--json-encoding", default="utf-8")

    sp_res = sub.add_parser("resolve", help="Print the projection definition used for an SRID")
    sp_res.add_argument("srid", type=int)

    args = ap.parse_args(argv)
    configure_logging(args.log_level, args.json_logs)

    try:
        settings = load_settings(args.config)

        if args.cmd in ("convert", "convert-batch"):
            written = asyncio.run(_convert(args, settings))
            for path in written:
                print(path)
            return 0

        if args.cmd == "columns":
            rows = read_bindings(args.results, encoding=args.json_encoding)
            for col in detect_geometry_columns(rows, merged_datatypes(settings.extra_datatypes)):
                print(f"{col.column}\t{col.datatype}")
            return 0

        if args.cmd == "resolve":
            definition = asyncio.run(_resolve(args.srid, settings))
            if definition is None:
                print(f"SRID {args.srid} could not be resolved", file=sys.stderr)
                return 1
            print(definition)
            return 0
    except (OSError, ValueError) as e:
        print(f"error: {e}", file=sys.stderr)
        return 2

    return 0


if __name__ == "__main__":
    sys.exit(main())
