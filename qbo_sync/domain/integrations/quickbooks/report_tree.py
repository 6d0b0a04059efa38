"""
Typed view of QuickBooks report JSON.

Reports arrive as nested ``Rows.Row`` lists where each row is either a
``Section`` (with a ``group`` tag, optional ``Header`` and its own ``Rows``)
or a ``Data`` row whose ``ColData`` holds ``[accountCell, ...amountCells]``.
The JSON is parsed once into ``Section``/``DataRow`` nodes and every walk
works on those nodes.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Iterator, Optional, Union

from ....exceptions import ReportUnavailableError


@dataclass(slots=True)
class DataRow:
    """A leaf account line"""

    label: str
    account_id: Optional[str]
    cells: list[str] = field(default_factory=list)  # raw amount column values, in report order

    def amount(self, index: int = -1) -> Optional[Decimal]:
        if not self.cells:
            return None
        try:
            return parse_amount(self.cells[index])
        except IndexError:
            return None


@dataclass(slots=True)
class Section:
    """A grouping node; ``group`` is QuickBooks' section tag (Income, COGS, Expenses, ...)"""

    group: Optional[str]
    title: Optional[str] = None
    children: list[Node] = field(default_factory=list)


Node = Union[Section, DataRow]

_AMOUNT_CLEANUP = re.compile(r"[,\s$]")


def parse_amount(value: object) -> Optional[Decimal]:
    """
    Parse a report cell into a Decimal.
    Thousands separators are stripped and "(1,200.00)" reads as -1200.00.
    Returns None for blanks and anything unparseable.
    """
    if value is None:
        return None
    if isinstance(value, (int, float, Decimal)):
        return Decimal(str(value))

    text = _AMOUNT_CLEANUP.sub("", str(value))
    if not text:
        return None

    negative = False
    if text.startswith("(") and text.endswith(")"):
        negative = True
        text = text[1:-1]

    try:
        amount = Decimal(text)
    except InvalidOperation:
        return None
    if not amount.is_finite():
        return None
    return -amount if negative else amount


def _col_data(node: dict, where: str) -> list:
    col_data = node.get("ColData")
    if col_data is None:
        return []
    if not isinstance(col_data, list):
        raise ReportUnavailableError(f"Report {where} ColData is not a list")
    return col_data


def _parse_data_row(row: dict) -> Optional[DataRow]:
    col_data = _col_data(row, "data row")
    if not col_data or not isinstance(col_data[0], dict):
        return None
    first = col_data[0]
    account_id = first.get("id")
    return DataRow(
        label=str(first.get("value") or "").strip(),
        account_id=str(account_id) if account_id else None,
        cells=[str(cell.get("value") or "") for cell in col_data[1:] if isinstance(cell, dict)],
    )


def _section_title(row: dict) -> Optional[str]:
    header = row.get("Header")
    if header is None:
        return None
    if not isinstance(header, dict):
        raise ReportUnavailableError("Report section header is malformed")
    col_data = _col_data(header, "section header")
    if col_data and isinstance(col_data[0], dict):
        return col_data[0].get("value")
    return None


def _parse_rows(rows: object) -> list[Node]:
    if not isinstance(rows, dict):
        return []
    raw_rows = rows.get("Row") or []
    if not isinstance(raw_rows, list):
        return []

    nodes: list[Node] = []
    for row in raw_rows:
        if not isinstance(row, dict):
            continue
        row_type = row.get("type")
        if row_type == "Section" or "Rows" in row:
            group = row.get("group")
            nodes.append(
                Section(
                    group=group if isinstance(group, str) else None,
                    title=_section_title(row),
                    children=_parse_rows(row.get("Rows")),
                )
            )
        elif row_type == "Data" or "ColData" in row:
            data_row = _parse_data_row(row)
            if data_row is not None:
                nodes.append(data_row)
    return nodes


def parse_report(report: object) -> Section:
    """Parse a report payload into a root Section; raises ReportUnavailableError on malformed input"""
    if not isinstance(report, dict):
        raise ReportUnavailableError("Report payload is not a JSON object")

    header = report.get("Header") or {}
    if not isinstance(header, dict):
        raise ReportUnavailableError("Report header is malformed")
    rows = report.get("Rows")
    if rows is not None and not isinstance(rows, dict):
        raise ReportUnavailableError("Report rows are malformed")

    return Section(group=None, title=header.get("ReportName"), children=_parse_rows(rows))


def walk(
    root: Section,
    section_types: dict[str, str],
    inherited: Optional[str] = None,
) -> Iterator[tuple[Optional[str], DataRow]]:
    """
    Depth-first walk yielding (section_type, data_row).
    A section whose group is in ``section_types`` sets the type for its subtree;
    any other section inherits its parent's type.
    """
    current = section_types.get(root.group or "", inherited)
    for child in root.children:
        if isinstance(child, Section):
            yield from walk(child, section_types, current)
        else:
            yield current, child


def iter_data_rows(root: Section) -> Iterator[DataRow]:
    for _, row in walk(root, {}):
        yield row
