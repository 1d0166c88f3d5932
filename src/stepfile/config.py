"""Resolver configuration."""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass
from typing import Mapping

ENV_PREFIX = "STEPFILE_"

# Interpreter frames used by one level of nested reference resolution
FRAMES_PER_LEVEL = 8
# Frames kept free for callers and for raising the depth error itself
_FRAME_HEADROOM = 100


def max_supported_depth() -> int:
    """Return the largest ``max_depth`` the current recursion limit can hold."""
    return max(1, (sys.getrecursionlimit() - _FRAME_HEADROOM) // FRAMES_PER_LEVEL)

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


def _parse_bool(name: str, raw: str) -> bool:
    value = raw.strip().lower()
    if value in _TRUE:
        return True
    if value in _FALSE:
        return False
    raise ValueError(f"{name} must be a boolean, got {raw!r}")


def _parse_positive_int(name: str, raw: str) -> int:
    try:
        value = int(raw.strip())
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from exc
    if value < 1:
        raise ValueError(f"{name} must be at least 1, got {value}")
    return value


@dataclass(frozen=True)
class ResolverConfig:
    """Settings for building typed entities from records.

    Attributes:
        max_depth: Maximum depth of nested reference resolution before
            DepthExceededError is raised. Bounded by
            ``max_supported_depth()``; raise ``sys.setrecursionlimit``
            first to allow deeper graphs.
        strict_enumerations: Require enumeration values to name a declared item.
        accept_integer_as_real: Accept integer literals for REAL attributes.
    """

    max_depth: int = 64
    strict_enumerations: bool = True
    accept_integer_as_real: bool = True

    def __post_init__(self) -> None:
        if self.max_depth < 1:
            raise ValueError(f"max_depth must be at least 1, got {self.max_depth}")
        limit = max_supported_depth()
        if self.max_depth > limit:
            raise ValueError(
                f"max_depth {self.max_depth} exceeds {limit}, the deepest nesting the "
                f"recursion limit ({sys.getrecursionlimit()}) allows"
            )

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> ResolverConfig:
        """Build a configuration from ``STEPFILE_*`` environment variables.

        Unset variables keep their defaults.

        Raises:
            ValueError: If a variable is set to a malformed value.
        """
        if environ is None:
            environ = os.environ
        kwargs: dict[str, object] = {}

        raw = environ.get(f"{ENV_PREFIX}MAX_DEPTH")
        if raw is not None:
            kwargs["max_depth"] = _parse_positive_int(f"{ENV_PREFIX}MAX_DEPTH", raw)

        for option in ("strict_enumerations", "accept_integer_as_real"):
            name = f"{ENV_PREFIX}{option.upper()}"
            raw = environ.get(name)
            if raw is not None:
                kwargs[option] = _parse_bool(name, raw)

        return cls(**kwargs)  # type: ignore[arg-type]
