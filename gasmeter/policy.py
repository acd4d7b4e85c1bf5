"""Gas scoring: normalise metrics against ceilings and take a weighted sum.

Each weighted metric is divided by its ceiling, an assumed upper bound at
which a typical heavy operation scores roughly 1.0 for that metric, and
multiplied by its weight. The weights of the default policy sum to 1.0, so
an operation at every ceiling scores about 1.0 and a no-op scores 0. The
score is unbounded above.

CPU time carries the largest weight because it is the least noisy and most
attributable signal. Memory and I/O weigh less since they fluctuate more and
partly overlap with CPU time.

Usage
-----
>>> estimate_gas(MetricsRecord(cpu_time_ms=10_000.0))
0.35
>>> policy = GasPolicy(weights={"wallTimeMs": 1.0})
>>> policy.estimate(MetricsRecord(wall_time_ms=500.0))
0.5

"""

from __future__ import annotations

import dataclasses as dc
import math
import types
import typing as typ

from gasmeter.errors import GasPolicyError

if typ.TYPE_CHECKING:
    import collections.abc as cabc

    from gasmeter.metrics import MetricsRecord

_MIB = 1024 * 1024

DEFAULT_WEIGHTS: typ.Final[cabc.Mapping[str, float]] = types.MappingProxyType(
    {
        "cpuTimeMs": 0.35,
        "cpuPercentage": 0.20,
        "memoryRSS": 0.15,
        "memoryHeapUsed": 0.10,
        "memoryExternal": 0.05,
        "sentBytes": 0.05,
        "receivedBytes": 0.05,
        "wallTimeMs": 0.05,
    }
)

DEFAULT_CEILINGS: typ.Final[cabc.Mapping[str, float]] = types.MappingProxyType(
    {
        "cpuTimeMs": 10_000,  # 10 s of CPU
        "wallTimeMs": 1_000,  # 1 s elapsed
        "memoryHeapUsed": 500 * _MIB,
        "memoryRSS": 1000 * _MIB,
        "memoryExternal": 100 * _MIB,
        "cpuPercentage": 100,  # one core, fully busy
        "sentBytes": 10 * _MIB,
        "receivedBytes": 10 * _MIB,
        "fileReadBytes": 20 * _MIB,
        "fileWriteBytes": 20 * _MIB,
    }
)


def _validate_weights(weights: cabc.Mapping[str, float]) -> None:
    for metric, weight in weights.items():
        if not math.isfinite(weight):
            raise GasPolicyError.non_finite_weight(metric, weight)
        if weight < 0:
            raise GasPolicyError.negative_weight(metric, weight)


def _validate_ceilings(ceilings: cabc.Mapping[str, float]) -> None:
    for metric, ceiling in ceilings.items():
        if not math.isfinite(ceiling) or ceiling <= 0:
            raise GasPolicyError.non_positive_ceiling(metric, ceiling)


@dc.dataclass(frozen=True, slots=True)
class GasPolicy:
    """Weight and ceiling tables used to score a metrics record.

    Attributes
    ----------
    weights
        Metric name to weight. Only metrics listed here contribute.
    ceilings
        Metric name to normalising ceiling. A weighted metric without a
        ceiling contributes zero.
    clamp_negative
        Floor each normalised metric at zero. Off by default, so memory
        released during an invocation lowers its score.

    Raises
    ------
    GasPolicyError
        If a weight is negative or not finite, or a ceiling is not a finite
        positive number.

    """

    weights: cabc.Mapping[str, float] = DEFAULT_WEIGHTS
    ceilings: cabc.Mapping[str, float] = DEFAULT_CEILINGS
    clamp_negative: bool = False

    def __post_init__(self) -> None:
        """Snapshot the tables read-only and reject unusable entries."""
        weights = types.MappingProxyType(dict(self.weights))
        ceilings = types.MappingProxyType(dict(self.ceilings))
        _validate_weights(weights)
        _validate_ceilings(ceilings)
        object.__setattr__(self, "weights", weights)
        object.__setattr__(self, "ceilings", ceilings)

    def normalize(self, metric: str, value: float) -> float | None:
        """Return ``value`` divided by the ceiling of ``metric``.

        Returns ``None`` when ``metric`` has no ceiling.
        """
        ceiling = self.ceilings.get(metric)
        if ceiling is None:
            return None
        normalized = value / ceiling
        if self.clamp_negative:
            return max(normalized, 0.0)
        return normalized

    def contributions(self, metrics: MetricsRecord) -> dict[str, float]:
        """Return each weighted metric's term of the gas score.

        Parameters
        ----------
        metrics
            Record to score.

        Returns
        -------
        dict[str, float]
            Metric name to ``weight * value / ceiling``; metrics missing
            from the record or the ceiling table map to ``0.0``.

        """
        values = metrics.as_mapping()
        terms: dict[str, float] = {}
        for metric, weight in self.weights.items():
            value = values.get(metric)
            normalized = None if value is None else self.normalize(metric, value)
            terms[metric] = 0.0 if normalized is None else normalized * weight
        return terms

    def estimate(self, metrics: MetricsRecord) -> float:
        """Return the gas score of ``metrics``."""
        return math.fsum(self.contributions(metrics).values())

    def with_weights(self, **overrides: float) -> GasPolicy:
        """Return a copy with the named weights replaced or added."""
        return dc.replace(self, weights=types.MappingProxyType({**self.weights, **overrides}))

    def with_ceilings(self, **overrides: float) -> GasPolicy:
        """Return a copy with the named ceilings replaced or added."""
        return dc.replace(
            self, ceilings=types.MappingProxyType({**self.ceilings, **overrides})
        )


DEFAULT_POLICY: typ.Final[GasPolicy] = GasPolicy()


def estimate_gas(metrics: MetricsRecord, policy: GasPolicy = DEFAULT_POLICY) -> float:
    """Return the gas score of ``metrics`` under ``policy``."""
    return policy.estimate(metrics)
