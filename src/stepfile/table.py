"""Entity table: id-indexed records plus the memo of resolved entities."""

from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable, Iterator

import structlog

from stepfile.config import ResolverConfig
from stepfile.entity import ComplexEntity, Reference
from stepfile.errors import (
    ConstructionError,
    DepthExceededError,
    DuplicateIdError,
    ResolutionError,
    TypeMismatchError,
    UnknownEntityTypeError,
    UnresolvedReferenceError,
)
from stepfile.holder import EntityHolder
from stepfile.records import DataSection, ExchangeFile, Record
from stepfile.schema import (
    EntityDefinition,
    SchemaRegistry,
    SelectTypeDefinition,
    TypeDefinition,
)

logger = structlog.get_logger(__name__)


class ResolutionState(Enum):
    """Lifecycle of one id: UNVISITED -> IN_PROGRESS -> RESOLVED | FAILED."""

    UNVISITED = "unvisited"
    IN_PROGRESS = "in_progress"
    RESOLVED = "resolved"
    FAILED = "failed"


class _MemoSlot:
    """Write-once memo entry for one id."""

    __slots__ = ("state", "value", "error", "owner", "done")

    def __init__(self, owner: int) -> None:
        self.state = ResolutionState.IN_PROGRESS
        self.value: Any = None
        self.error: ResolutionError | None = None
        self.owner = owner
        self.done = threading.Event()


@dataclass
class ResolutionReport:
    """Result of resolving every id in a table."""

    entities: dict[int, Any] = field(default_factory=dict)
    failures: dict[int, ResolutionError] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failures


class ResolutionContext:
    """State of one resolution pass: the ids in progress on this call stack."""

    def __init__(self, table: EntityTable, expected: EntityDefinition | None = None) -> None:
        self.table = table
        self.registry = table.registry
        self.config = table.config
        self.expected = expected
        self.chain: list[int] = []

    @property
    def current_id(self) -> int | None:
        return self.chain[-1] if self.chain else None

    @property
    def depth(self) -> int:
        return len(self.chain)

    def visit(self, entity_id: int, expected: TypeDefinition, attribute: str) -> Reference:
        """Resolve a referenced id for the entity being built.

        Returns an id-keyed Reference. An id already in progress on this
        pass (a cycle) is returned as a deferred Reference without
        recursing; an id in flight on another thread is waited for.
        """
        table = self.table
        record = table.lookup(entity_id)

        if entity_id in self.chain:
            logger.debug("resolution_cycle_deferred", id=entity_id, referrer=self.current_id)
        else:
            if self.depth >= self.config.max_depth:
                raise DepthExceededError(self.config.max_depth)
            table._resolve(entity_id, self)

        table._check_reference_type(record, expected, attribute, self)
        return Reference(entity_id, table)


class EntityTable:
    """Index of all records of one exchange structure by instance id.

    The table is populated first (from a data section, an exchange file or
    record by record) and then queried. Once resolution has started no
    further records may be added.
    """

    def __init__(
        self,
        registry: SchemaRegistry | None = None,
        config: ResolverConfig | None = None,
    ) -> None:
        self.registry = registry if registry is not None else SchemaRegistry()
        self.config = config if config is not None else ResolverConfig()
        self._records: dict[int, Record] = {}
        self._memo: dict[int, _MemoSlot] = {}
        # thread ident -> id that thread is blocked on
        self._waiting: dict[int, int] = {}
        self._lock = threading.Lock()
        self._sealed = False

    @classmethod
    def from_data_section(
        cls,
        section: DataSection,
        registry: SchemaRegistry | None = None,
        config: ResolverConfig | None = None,
    ) -> EntityTable:
        """Build a table from all records of one data section."""
        table = cls(registry, config)
        table.extend(section.records)
        logger.debug("entity_table_built", entries=len(table))
        return table

    @classmethod
    def from_exchange(
        cls,
        exchange: ExchangeFile,
        registry: SchemaRegistry | None = None,
        config: ResolverConfig | None = None,
    ) -> EntityTable:
        """Build a table from the records of every data section of a file."""
        table = cls(registry, config)
        for section in exchange.data_sections:
            table.extend(section.records)
        logger.debug(
            "entity_table_built", entries=len(table), sections=len(exchange.data_sections)
        )
        return table

    # ---- population ----

    def add(self, record: Record) -> None:
        """Index one record.

        Raises:
            ValueError: If the record has no id.
            DuplicateIdError: If the id is already present.
            RuntimeError: If resolution has already started.
        """
        if self._sealed:
            raise RuntimeError("EntityTable is sealed once resolution has started")
        if record.id is None:
            raise ValueError("Only named instances can be added to an entity table")
        first = self._records.get(record.id)
        if first is not None:
            raise DuplicateIdError(
                record.id, first_offset=first.offset, offset=record.offset, line=record.line
            )
        self._records[record.id] = record

    def extend(self, records: Iterable[Record]) -> None:
        """Index several records."""
        for record in records:
            self.add(record)

    # ---- lookup ----

    def lookup(self, entity_id: int) -> Record:
        """Return the record with the given id.

        Raises:
            UnresolvedReferenceError: If no record has that id.
        """
        record = self._records.get(entity_id)
        if record is None:
            raise UnresolvedReferenceError(entity_id)
        return record

    def get(self, entity_id: int) -> Record | None:
        return self._records.get(entity_id)

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, entity_id: object) -> bool:
        return entity_id in self._records

    def __iter__(self) -> Iterator[int]:
        return iter(self._records)

    def records(self) -> Iterator[Record]:
        """Iterate records in insertion order."""
        return iter(self._records.values())

    def records_of_type(self, keyword: str, include_subtypes: bool = False) -> list[Record]:
        """Return records whose keyword (or any complex part) is ``keyword``.

        With ``include_subtypes`` the schema is consulted, so records of
        subtypes of ``keyword`` are returned too.
        """
        keyword = keyword.upper()
        result = []
        for record in self._records.values():
            for kw in record.keywords:
                if kw == keyword or (include_subtypes and self.registry.is_subtype(kw, keyword)):
                    result.append(record)
                    break
        return result

    def dangling_references(self) -> list[tuple[int, int]]:
        """Return (referrer, target) pairs whose target id is not in the table."""
        missing = []
        for record in self._records.values():
            assert record.id is not None
            for target in record.references():
                if target not in self._records:
                    missing.append((record.id, target))
        return missing

    # ---- resolution ----

    def state(self, entity_id: int) -> ResolutionState:
        """Return the resolution state of an id."""
        slot = self._memo.get(entity_id)
        if slot is None:
            return ResolutionState.UNVISITED
        return slot.state

    def resolve(self, entity_id: int, expected: EntityDefinition | str | None = None) -> Any:
        """Return the typed entity for an id, building and memoizing it on first use.

        Args:
            entity_id: Instance id to resolve.
            expected: Entity type the instance must be (or be a subtype of).
                An EntityDefinition that is not registered is used to build
                records whose keyword matches its name.

        Raises:
            ResolutionError: A subclass describing why the instance could not
                be built; ``chain`` lists the ids traversed to the failure.
        """
        self._sealed = True
        context = ResolutionContext(
            self, expected if isinstance(expected, EntityDefinition) else None
        )
        value = self._resolve(entity_id, context)
        if expected is not None:
            record = self.lookup(entity_id)
            name = expected.name if isinstance(expected, EntityDefinition) else expected
            if not self._satisfies(record, {name.upper()}, context):
                raise TypeMismatchError(
                    None,
                    name.upper(),
                    "/".join(record.keywords),
                    entity_id=entity_id,
                    chain=(entity_id,),
                    offset=record.offset,
                    line=record.line,
                )
        return value

    def resolve_all(self, workers: int = 1) -> ResolutionReport:
        """Resolve every id, collecting failures instead of stopping at the first.

        With ``workers`` greater than one, ids are resolved on a thread pool;
        the memo guarantees each id is built once.
        """
        report = ResolutionReport()

        def attempt(entity_id: int) -> tuple[int, Any, ResolutionError | None]:
            try:
                return entity_id, self.resolve(entity_id), None
            except ResolutionError as exc:
                return entity_id, None, exc

        ids = list(self._records)
        if workers > 1:
            with ThreadPoolExecutor(max_workers=workers) as pool:
                outcomes = list(pool.map(attempt, ids))
        else:
            outcomes = [attempt(i) for i in ids]

        for entity_id, value, error in outcomes:
            if error is None:
                report.entities[entity_id] = value
                continue
            report.failures[entity_id] = error
            logger.warning(
                "entity_resolution_failed",
                id=entity_id,
                error=type(error).__name__,
                chain=list(error.chain),
                message=error.message,
            )
        return report

    def _waits_on(self, thread: int, target: int) -> bool:
        """Return whether ``thread`` is, directly or transitively, blocked on ``target``.

        Must be called with the table lock held.
        """
        seen: set[int] = set()
        while thread not in seen:
            if thread == target:
                return True
            seen.add(thread)
            blocked_on = self._waiting.get(thread)
            if blocked_on is None:
                return False
            slot = self._memo.get(blocked_on)
            if slot is None or slot.state is not ResolutionState.IN_PROGRESS:
                return False
            thread = slot.owner
        return False

    def _await_slot(self, entity_id: int, slot: _MemoSlot) -> bool:
        """Block until another thread finishes ``entity_id``.

        Returns False without blocking when the owning thread is itself
        waiting on this thread, since waiting would deadlock.
        """
        me = threading.get_ident()
        with self._lock:
            if slot.state is not ResolutionState.IN_PROGRESS:
                return True
            if self._waits_on(slot.owner, me):
                return False
            self._waiting[me] = entity_id
        try:
            slot.done.wait()
        finally:
            with self._lock:
                del self._waiting[me]
        return True

    def _resolve(self, entity_id: int, context: ResolutionContext) -> Any:
        record = self.lookup(entity_id)

        with self._lock:
            slot = self._memo.get(entity_id)
            owner = slot is None
            if owner:
                slot = _MemoSlot(threading.get_ident())
                self._memo[entity_id] = slot
        assert slot is not None

        if not owner:
            if slot.state is ResolutionState.IN_PROGRESS:
                if slot.owner == threading.get_ident():
                    raise ResolutionError(
                        f"#{entity_id} is already being resolved on this thread",
                        entity_id=entity_id,
                        chain=(entity_id,),
                    )
                if not self._await_slot(entity_id, slot):
                    if context.chain:
                        logger.debug(
                            "resolution_cycle_deferred",
                            id=entity_id,
                            referrer=context.current_id,
                            owner=slot.owner,
                        )
                        return None
                    raise ResolutionError(
                        f"#{entity_id} is held by a thread waiting on this one",
                        entity_id=entity_id,
                        chain=(entity_id,),
                    )
            return self._memo_result(entity_id, slot)

        context.chain.append(entity_id)
        try:
            value = self._construct(record, context)
        except ResolutionError as exc:
            error = self._attribute(exc, record)
            self._fail(entity_id, slot, error)
            if error is exc:
                raise
            raise error from exc
        except RecursionError as exc:
            error = self._attribute(DepthExceededError(self.config.max_depth), record)
            self._fail(entity_id, slot, error)
            raise error from exc
        except Exception as exc:
            error = ConstructionError(
                exc,
                entity_id=entity_id,
                chain=(entity_id,),
                offset=record.offset,
                line=record.line,
            )
            self._fail(entity_id, slot, error)
            raise error from exc
        except BaseException:
            # Interrupted: release the id so it can be attempted again
            with self._lock:
                del self._memo[entity_id]
            slot.done.set()
            raise
        finally:
            context.chain.pop()

        with self._lock:
            slot.value = value
            slot.state = ResolutionState.RESOLVED
        slot.done.set()
        return value

    def _fail(self, entity_id: int, slot: _MemoSlot, error: ResolutionError) -> None:
        with self._lock:
            if isinstance(error, DepthExceededError):
                # Depth depends on the path taken, not on the id itself
                del self._memo[entity_id]
            else:
                slot.error = error
                slot.state = ResolutionState.FAILED
        slot.done.set()

    def _memo_result(self, entity_id: int, slot: _MemoSlot) -> Any:
        if slot.state is ResolutionState.RESOLVED:
            return slot.value
        if slot.state is ResolutionState.FAILED:
            assert slot.error is not None
            raise slot.error
        # The owner released the id after a depth failure
        raise DepthExceededError(self.config.max_depth, entity_id=entity_id, chain=(entity_id,))

    @staticmethod
    def _attribute(exc: ResolutionError, record: Record) -> ResolutionError:
        """Attribute an error raised while building ``record`` to its id."""
        assert record.id is not None
        if not exc.chain:
            exc.entity_id = record.id
            exc.chain = (record.id,)
            if exc.offset is None:
                exc.offset = record.offset
                exc.line = record.line
            exc.args = (exc._format(),)
            return exc
        return exc.attributed_to(record.id, record.offset, record.line)

    def _definition(self, keyword: str, context: ResolutionContext) -> EntityDefinition:
        expected = context.expected
        td = self.registry.get(keyword)
        if isinstance(td, EntityDefinition):
            return td
        if expected is not None and expected.name.upper() == keyword.upper():
            return expected
        raise UnknownEntityTypeError(keyword)

    def _construct(self, record: Record, context: ResolutionContext) -> Any:
        if record.is_complex:
            return self._construct_complex(record, context)
        assert record.keyword is not None
        definition = self._definition(record.keyword, context)
        holder_class = definition.holder or EntityHolder
        holder = holder_class.from_record(definition, record.parameters, context)
        return holder.into_entity(context)

    def _construct_complex(self, record: Record, context: ResolutionContext) -> ComplexEntity:
        assert record.id is not None
        definitions = [self._definition(part.keyword, context) for part in record.parts]
        holders = []
        for definition, part in zip(definitions, record.parts):
            others = [d for d in definitions if d is not definition]
            attributes = self.registry.own_attributes(definition, derived_by=others)
            holder = EntityHolder.from_record(definition, part.parameters, context, attributes)
            holder.complex_part = True
            holders.append(holder)

        entity = ComplexEntity(id=record.id)
        for holder in holders:
            part_entity = holder.into_entity(context)
            entity.parts[holder.definition.name.upper()] = part_entity
        return entity

    def _satisfies(self, record: Record, allowed: set[str], context: ResolutionContext) -> bool:
        expected = context.expected
        for keyword in record.keywords:
            for name in allowed:
                if keyword.upper() == name or self.registry.is_subtype(keyword, name):
                    return True
                if (
                    expected is not None
                    and keyword.upper() == expected.name.upper()
                    and name in self.registry.ancestors(expected)
                ):
                    return True
        return False

    def _check_reference_type(
        self,
        record: Record,
        expected: TypeDefinition,
        attribute: str,
        context: ResolutionContext,
    ) -> None:
        expected = self.registry.resolve_type(expected)
        if isinstance(expected, SelectTypeDefinition):
            allowed = self.registry.select_entities(expected)
        else:
            allowed = {expected.name.upper()}
        if not self._satisfies(record, allowed, context):
            raise TypeMismatchError(
                attribute,
                f"reference to {' or '.join(sorted(allowed))}",
                f"#{record.id} {'/'.join(record.keywords)}",
            )
