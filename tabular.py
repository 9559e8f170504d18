# tabular.py
import io
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Sequence, Union

import pandas as pd

logger = logging.getLogger(__name__)

DataRow = Dict[str, str]


@dataclass
class Table:
    header: List[str]
    rows: List[List[str]] = field(default_factory=list)


def _is_path(source) -> bool:
    if isinstance(source, Path):
        return True
    return isinstance(source, str) and "\n" not in source and Path(source).is_file()


def read_table(source: Union[str, Path], delimiter: str = ",") -> Table:
    """
    Parse delimited text (a file path or the text itself) into header + rows.

    Every cell is read as a string, quoted fields may contain the delimiter,
    missing cells become "" and surrounding whitespace is trimmed.
    """
    if _is_path(source):
        handle, encoding = source, "utf-8-sig"
    else:
        handle, encoding = io.StringIO(str(source).lstrip("\ufeff")), None
    try:
        df = pd.read_csv(handle, sep=delimiter, dtype=str, keep_default_na=False,
                         skip_blank_lines=True, encoding=encoding).fillna("")
    except pd.errors.EmptyDataError as e:
        raise ValueError("no header row") from e

    header = [str(c).strip() for c in df.columns]
    rows = [[str(v).strip() for v in rec] for rec in df.itertuples(index=False, name=None)]
    if not any(header):
        raise ValueError("no header row")
    return Table(header=header, rows=rows)


def to_data_rows(table: Table) -> List[DataRow]:
    return [dict(zip(table.header, row)) for row in table.rows]


def ensure_row_objects(rows: Sequence) -> List[DataRow]:
    """
    Accept rows keyed by column name only. Positional rows carry no header, so
    mapping them by column is not possible and they are rejected.
    """
    out: List[DataRow] = []
    for i, row in enumerate(rows, 1):
        if not isinstance(row, Mapping):
            raise TypeError(
                f"row {i} is a {type(row).__name__}; mapping by header not possible, "
                "rows must be objects keyed by column name"
            )
        out.append({str(k): "" if v is None else str(v) for k, v in row.items()})
    return out


def load_dataset(path, delimiter: str = ",") -> Table:
    table = read_table(Path(path), delimiter=delimiter)
    logger.info("[csv] loaded %d row(s); columns: %s", len(table.rows), ", ".join(table.header))
    return table
