from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List


def read_bindings(results_path: str, encoding: str = "utf-8") -> List[Dict[str, Any]]:
    """
    Load the rows of a query result file:
    - SPARQL 1.1 JSON results: {"head": {...}, "results": {"bindings": [...]}}
    - a bare JSON list of rows, returned as-is.
    """
    raw = json.loads(Path(results_path).read_text(encoding=encoding))

    if isinstance(raw, list):
        rows = raw
    elif isinstance(raw, dict) and isinstance(raw.get("results"), dict):
        rows = raw["results"].get("bindings", [])
    else:
        raise ValueError(
            f"Unrecognized results JSON in {results_path!r}: "
            f"expected 'results.bindings' or a list of rows."
        )

    if not isinstance(rows, list) or not all(isinstance(r, dict) for r in rows):
        raise ValueError(f"Rows in {results_path!r} must be JSON objects")
    return rows
