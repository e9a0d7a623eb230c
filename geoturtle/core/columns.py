from dataclasses import dataclass
from typing import List, Mapping, Optional, Sequence

from geoturtle.core.dispatcher import DATATYPE_CONVERTERS, ConverterKind
from geoturtle.core.literals import ResultRow, TypedLiteral


@dataclass(frozen=True)
class GeometryColumn:
    column: str
    datatype: str


def detect_geometry_columns(rows: Sequence[ResultRow],
                            datatypes: Optional[Mapping[str, ConverterKind]] = None
                            ) -> List[GeometryColumn]:
    # Heuristic: only the first row is looked at. Later rows may disagree,
    # conversion resolves every cell on its own anyway.
    if not rows:
        return []
    known = DATATYPE_CONVERTERS if datatypes is None else datatypes
    found = []
    for column, cell in rows[0].items():
        literal = TypedLiteral.from_cell(cell)
        if literal and known.get(literal.datatype, ConverterKind.UNSUPPORTED) is not ConverterKind.UNSUPPORTED:
            found.append(GeometryColumn(column, literal.datatype))
    return found


def can_handle(rows: Sequence[ResultRow],
               datatypes: Optional[Mapping[str, ConverterKind]] = None) -> bool:
    return bool(detect_geometry_columns(rows, datatypes))
