import json
from pathlib import Path


def write_geojson(collection, path):
    out = Path(path)
    out.parent.mkdir(parents=True, exist_ok=True)
    with open(out, "w", encoding="utf-8") as fh:
        json.dump(collection, fh, ensure_ascii=False)
        fh.write("\n")
    return str(out)
