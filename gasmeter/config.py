"""Configuration for the meter facade.

Usage
-----
Create options directly:

>>> options = MeterOptions(include=frozenset({"metric"}))
>>> options.includes(IncludeFlag.METRIC)
True

Or load them from the environment:

>>> import os
>>> os.environ["GASMETER_INCLUDE"] = "metric,report"
>>> sorted(MeterOptions.from_env().include)
['metric', 'report']

"""

from __future__ import annotations

import dataclasses as dc
import enum
import os
import typing as typ

from gasmeter.errors import MeterConfigError

if typ.TYPE_CHECKING:
    import collections.abc as cabc

_INCLUDE_ENV = "GASMETER_INCLUDE"
_TRACE_ALLOCATIONS_ENV = "GASMETER_TRACE_ALLOCATIONS"

_TRUE_VALUES = frozenset({"1", "true", "yes", "on"})
_FALSE_VALUES = frozenset({"0", "false", "no", "off"})


class IncludeFlag(enum.StrEnum):
    """Optional sections attached to a gas result."""

    METRIC = "metric"
    REPORT = "report"


def _parse_include(raw: str) -> frozenset[str]:
    return frozenset(part.strip() for part in raw.split(",") if part.strip())


def _parse_bool(env_var: str, *, default: bool) -> bool:
    raw = os.environ.get(env_var, "")
    value = raw.strip().lower()
    if not value:
        return default
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    raise MeterConfigError.invalid_boolean(env_var, raw)


@dc.dataclass(frozen=True, slots=True)
class MeterOptions:
    """Options controlling what a meter measures and returns.

    Attributes
    ----------
    include
        Sections to attach to each result. ``"metric"`` attaches the raw
        metrics record and ``"report"`` the formatted report; any other
        value is accepted and ignored.
    trace_allocations
        Let the process probe start ``tracemalloc`` for each window so heap
        growth is measured. When disabled and nothing else is tracing, heap
        usage reads as zero.

    """

    include: frozenset[str] = frozenset()
    trace_allocations: bool = True

    def includes(self, flag: IncludeFlag) -> bool:
        """Return whether ``flag`` is enabled."""
        return flag.value in self.include

    def merged(
        self,
        *,
        include: cabc.Iterable[str] | None = None,
        trace_allocations: bool | None = None,
    ) -> MeterOptions:
        """Return a copy with the given fields replaced.

        Fields passed as ``None`` keep their current value.
        """
        changes: dict[str, typ.Any] = {}
        if include is not None:
            changes["include"] = frozenset(include)
        if trace_allocations is not None:
            changes["trace_allocations"] = trace_allocations
        return dc.replace(self, **changes)

    @classmethod
    def from_env(cls) -> MeterOptions:
        """Create options from environment variables.

        Reads the following environment variables:

        - ``GASMETER_INCLUDE``: Comma-separated result sections, for example
          ``metric,report``. Empty or unset includes nothing.
        - ``GASMETER_TRACE_ALLOCATIONS``: Boolean; defaults to true.

        Returns
        -------
        MeterOptions
            Options populated from the environment or defaults.

        Raises
        ------
        MeterConfigError
            If ``GASMETER_TRACE_ALLOCATIONS`` is not a recognised boolean.

        """
        return cls(
            include=_parse_include(os.environ.get(_INCLUDE_ENV, "")),
            trace_allocations=_parse_bool(_TRACE_ALLOCATIONS_ENV, default=True),
        )
