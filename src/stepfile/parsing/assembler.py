"""Assembly of parsed records into data sections and exchange files."""

from __future__ import annotations

from typing import Iterable

import structlog

from stepfile.errors import DuplicateIdError
from stepfile.parameters import Parameter
from stepfile.records import DataSection, ExchangeFile, Header, Record

logger = structlog.get_logger(__name__)


def _check_unique(records: Iterable[Record], seen: dict[int, Record]) -> None:
    for record in records:
        if record.id is None:
            continue
        first = seen.get(record.id)
        if first is not None:
            raise DuplicateIdError(
                record.id,
                first_offset=first.offset,
                offset=record.offset,
                line=record.line,
            )
        seen[record.id] = record


def assemble_data_section(
    records: list[Record],
    parameters: tuple[Parameter, ...] = (),
    header: Header | None = None,
) -> DataSection:
    """Collect records into a DataSection, preserving text order.

    Raises:
        DuplicateIdError: If two records declare the same id.
    """
    _check_unique(records, {})
    section = DataSection(
        records=list(records),
        parameters=tuple(parameters),
        header=header if header is not None else Header(),
    )
    logger.debug("data_section_assembled", records=len(section.records))
    return section


def assemble_exchange_file(header: Header, sections: list[DataSection]) -> ExchangeFile:
    """Build an ExchangeFile; ids must be unique across all data sections."""
    seen: dict[int, Record] = {}
    for section in sections:
        section.header = header
        _check_unique(section.records, seen)
    logger.debug(
        "exchange_file_assembled",
        sections=len(sections),
        records=len(seen),
    )
    return ExchangeFile(header=header, data_sections=list(sections))
