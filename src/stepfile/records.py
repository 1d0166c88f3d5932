"""Untyped records and the sections that contain them."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterator, NamedTuple

from stepfile.parameters import (
    Parameter,
    ParamList,
    String,
    Unset,
    iter_references,
)


@dataclass(frozen=True)
class SimpleRecord:
    """A ``KEYWORD(params)`` group: one part of a complex instance."""

    keyword: str
    parameters: tuple[Parameter, ...] = ()

    def __init__(self, keyword: str, parameters: "tuple[Parameter, ...] | list[Parameter]" = ()) -> None:
        object.__setattr__(self, "keyword", keyword)
        object.__setattr__(self, "parameters", tuple(parameters))


@dataclass
class Record:
    """One parsed instance.

    A simple instance has a ``keyword`` and ``parameters``. A complex instance
    (``#id = (A(...) B(...));``) has ``keyword`` set to ``None`` and its
    simple-entity groups in ``parts``. Header records have no ``id``.

    ``offset`` and ``line`` locate the first token of the record in the
    source text; they do not take part in equality.
    """

    id: int | None
    keyword: str | None
    parameters: tuple[Parameter, ...] = ()
    parts: tuple[SimpleRecord, ...] = ()
    offset: int | None = field(default=None, compare=False)
    line: int | None = field(default=None, compare=False)

    def __post_init__(self) -> None:
        self.parameters = tuple(self.parameters)
        self.parts = tuple(self.parts)
        if self.keyword is None and not self.parts:
            raise ValueError("A record needs a keyword or at least one part")
        if self.keyword is not None and self.parts:
            raise ValueError("A complex record must not have its own keyword")

    @classmethod
    def complex(
        cls,
        entity_id: int,
        parts: "list[SimpleRecord] | tuple[SimpleRecord, ...]",
        offset: int | None = None,
        line: int | None = None,
    ) -> Record:
        """Build a complex record from its simple-entity groups."""
        return cls(id=entity_id, keyword=None, parts=tuple(parts), offset=offset, line=line)

    @property
    def is_complex(self) -> bool:
        return bool(self.parts)

    @property
    def keywords(self) -> tuple[str, ...]:
        """Return the keyword of a simple record or the keywords of all parts."""
        if self.parts:
            return tuple(part.keyword for part in self.parts)
        assert self.keyword is not None
        return (self.keyword,)

    def groups(self) -> tuple[SimpleRecord, ...]:
        """Return the record as a sequence of keyword/parameter groups."""
        if self.parts:
            return self.parts
        assert self.keyword is not None
        return (SimpleRecord(self.keyword, self.parameters),)

    def references(self) -> Iterator[int]:
        """Yield every entity id referenced by this record, in text order."""
        for group in self.groups():
            yield from iter_references(group.parameters)

    def __repr__(self) -> str:
        name = f"#{self.id}" if self.id is not None else "<unnamed>"
        return f"Record({name}, {'/'.join(self.keywords)})"


class FileDescription(NamedTuple):
    """FILE_DESCRIPTION(description, implementation_level)."""

    description: list[str]
    implementation_level: str


class FileName(NamedTuple):
    """FILE_NAME(...) header entity."""

    name: str
    time_stamp: str
    author: list[str]
    organization: list[str]
    preprocessor_version: str
    originating_system: str
    authorization: str


class FileSchema(NamedTuple):
    """FILE_SCHEMA(schema_identifiers)."""

    schema_identifiers: list[str]


def _text(param: Parameter) -> str:
    if isinstance(param, String):
        return param.value
    if isinstance(param, Unset):
        return ""
    raise ValueError(f"Expected a string header value, found {param!r}")


def _texts(param: Parameter) -> list[str]:
    if isinstance(param, ParamList):
        return [_text(p) for p in param.items]
    return [_text(param)]


@dataclass
class Header:
    """The HEADER section: unnamed records such as FILE_DESCRIPTION."""

    records: list[Record] = field(default_factory=list)

    def get(self, keyword: str) -> Record | None:
        """Return the header record with the given keyword, if present."""
        keyword = keyword.upper()
        for record in self.records:
            if record.keyword == keyword:
                return record
        return None

    def _params(self, keyword: str, arity: int) -> tuple[Parameter, ...] | None:
        record = self.get(keyword)
        if record is None:
            return None
        if len(record.parameters) != arity:
            raise ValueError(
                f"{keyword} expects {arity} parameters, got {len(record.parameters)}"
            )
        return record.parameters

    @property
    def file_description(self) -> FileDescription | None:
        params = self._params("FILE_DESCRIPTION", 2)
        if params is None:
            return None
        return FileDescription(_texts(params[0]), _text(params[1]))

    @property
    def file_name(self) -> FileName | None:
        params = self._params("FILE_NAME", 7)
        if params is None:
            return None
        return FileName(
            name=_text(params[0]),
            time_stamp=_text(params[1]),
            author=_texts(params[2]),
            organization=_texts(params[3]),
            preprocessor_version=_text(params[4]),
            originating_system=_text(params[5]),
            authorization=_text(params[6]),
        )

    @property
    def file_schema(self) -> FileSchema | None:
        params = self._params("FILE_SCHEMA", 1)
        if params is None:
            return None
        return FileSchema(_texts(params[0]))


@dataclass
class DataSection:
    """The instances of one ``DATA; ... ENDSEC;`` block, in text order.

    ``parameters`` holds the optional section parameters of a
    parameterized ``DATA('name', ('SCHEMA'));`` block.
    """

    records: list[Record] = field(default_factory=list)
    parameters: tuple[Parameter, ...] = ()
    header: Header = field(default_factory=Header)

    def __len__(self) -> int:
        return len(self.records)

    def __iter__(self) -> Iterator[Record]:
        return iter(self.records)

    @property
    def ids(self) -> list[int]:
        return [r.id for r in self.records if r.id is not None]


@dataclass
class ExchangeFile:
    """A whole ``ISO-10303-21; ... END-ISO-10303-21;`` exchange structure."""

    header: Header
    data_sections: list[DataSection] = field(default_factory=list)

    @property
    def records(self) -> list[Record]:
        """Return the records of all data sections, in order."""
        return [record for section in self.data_sections for record in section.records]
