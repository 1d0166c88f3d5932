"""Error taxonomy for parsing and resolving exchange structures."""

from __future__ import annotations

from typing import Any


class StepError(Exception):
    """Base class for all stepfile errors.

    Carries the character offset, line and column of the offending text
    when they are known.
    """

    def __init__(
        self,
        message: str,
        *,
        offset: int | None = None,
        line: int | None = None,
        column: int | None = None,
    ) -> None:
        self.message = message
        self.offset = offset
        self.line = line
        self.column = column
        super().__init__(self._format())

    def _location(self) -> str:
        parts = []
        if self.line is not None:
            parts.append(f"line {self.line}")
        if self.column is not None:
            parts.append(f"column {self.column}")
        if self.offset is not None:
            parts.append(f"offset {self.offset}")
        return ", ".join(parts)

    def _format(self) -> str:
        location = self._location()
        if location:
            return f"{self.message} ({location})"
        return self.message

    def __str__(self) -> str:
        return self._format()


class LexError(StepError, SyntaxError):
    """Malformed token: illegal character, unterminated string or comment."""


class ParseError(StepError, SyntaxError):
    """Grammar violation.

    ``found`` is the offending token type (``None`` at end of input) and
    ``expected`` the token types the parser could have accepted there.
    """

    def __init__(
        self,
        message: str,
        *,
        found: str | None = None,
        value: Any = None,
        expected: tuple[str, ...] = (),
        offset: int | None = None,
        line: int | None = None,
        column: int | None = None,
    ) -> None:
        self.found = found
        self.value = value
        self.expected = tuple(expected)
        super().__init__(message, offset=offset, line=line, column=column)


class DuplicateIdError(StepError, ValueError):
    """Two instances declare the same id."""

    def __init__(
        self,
        entity_id: int,
        *,
        first_offset: int | None = None,
        offset: int | None = None,
        line: int | None = None,
    ) -> None:
        self.entity_id = entity_id
        self.first_offset = first_offset
        super().__init__(
            f"Duplicate entity instance name #{entity_id}", offset=offset, line=line
        )


class SchemaError(StepError, ValueError):
    """Inconsistent or unsupported schema descriptors."""


class ResolutionError(StepError):
    """Base class for failures while building a typed entity from a record.

    ``entity_id`` is the outermost id being resolved and ``chain`` the ids
    traversed to reach the failure, outermost first.
    """

    def __init__(
        self,
        message: str,
        *,
        entity_id: int | None = None,
        chain: tuple[int, ...] = (),
        offset: int | None = None,
        line: int | None = None,
    ) -> None:
        self.entity_id = entity_id
        self.chain = tuple(chain)
        super().__init__(message, offset=offset, line=line)

    def _format(self) -> str:
        text = super()._format()
        if self.chain:
            path = " -> ".join(f"#{i}" for i in self.chain)
            text = f"{text} [via {path}]"
        return text

    def attributed_to(
        self, entity_id: int, offset: int | None = None, line: int | None = None
    ) -> ResolutionError:
        """Return a copy of this error re-attributed to an enclosing entity.

        The enclosing id is prepended to the chain and the original error
        becomes the ``__cause__`` of the copy.
        """
        outer = self.__class__.__new__(self.__class__)
        outer.__dict__.update(self.__dict__)
        outer.entity_id = entity_id
        outer.chain = (entity_id,) + self.chain
        outer.offset = offset if offset is not None else self.offset
        outer.line = line if line is not None else self.line
        outer.column = None
        Exception.__init__(outer, outer._format())
        outer.__cause__ = self
        return outer


class UnresolvedReferenceError(ResolutionError, LookupError):
    """An entity reference names an id that is not in the table."""

    def __init__(self, target_id: int, **kwargs: Any) -> None:
        self.target_id = target_id
        super().__init__(f"Unresolved reference to #{target_id}", **kwargs)


class UnknownEntityTypeError(ResolutionError, LookupError):
    """A record keyword has no entity definition in the schema."""

    def __init__(self, keyword: str, **kwargs: Any) -> None:
        self.keyword = keyword
        super().__init__(f"Unknown entity type '{keyword}'", **kwargs)


class ArityError(ResolutionError):
    """Parameter count does not match the declared attribute count."""

    def __init__(self, type_name: str, expected: int, actual: int, **kwargs: Any) -> None:
        self.type_name = type_name
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"'{type_name}' expects {expected} parameters, got {actual}", **kwargs
        )


class TypeMismatchError(ResolutionError):
    """A parameter's kind does not match the attribute's declared kind."""

    def __init__(
        self, attribute: str | None, expected: str, found: str, **kwargs: Any
    ) -> None:
        self.attribute = attribute
        self.expected = expected
        self.found = found
        where = f" for attribute '{attribute}'" if attribute else ""
        super().__init__(f"Expected {expected}{where}, found {found}", **kwargs)


class UnexpectedUnsetError(ResolutionError):
    """``$`` used for an attribute that is not OPTIONAL."""

    def __init__(self, attribute: str, **kwargs: Any) -> None:
        self.attribute = attribute
        super().__init__(f"Attribute '{attribute}' is not optional but is unset ($)", **kwargs)


class UnexpectedInapplicableError(ResolutionError):
    """``*`` used for an attribute that is not derived."""

    def __init__(self, attribute: str, **kwargs: Any) -> None:
        self.attribute = attribute
        super().__init__(
            f"Attribute '{attribute}' is not derived but is omitted (*)", **kwargs
        )


class DepthExceededError(ResolutionError):
    """Reference recursion went deeper than the configured limit."""

    def __init__(self, limit: int, **kwargs: Any) -> None:
        self.limit = limit
        super().__init__(f"Reference depth limit of {limit} exceeded", **kwargs)


class ConstructionError(ResolutionError):
    """A holder, factory or schema lookup raised a non-resolution exception.

    The original exception is available as ``original`` and as the
    ``__cause__`` of the innermost error.
    """

    def __init__(self, original: BaseException, **kwargs: Any) -> None:
        self.original = original
        super().__init__(
            f"Building the entity raised {type(original).__name__}: {original}", **kwargs
        )
