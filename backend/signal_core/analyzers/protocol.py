"""Analyzer protocol shared by the ten analysis domains."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from signal_core.models.analysis import AnalyzerResult, Domain
from signal_core.models.market import MultiTimeframeData


@runtime_checkable
class Analyzer(Protocol):
    """Pure function of a market snapshot to a scored, biased result.

    Analyzers must not mutate the snapshot and must not perform I/O. They may
    raise; the engine isolates failures into empty results.
    """

    @property
    def domain(self) -> Domain:
        """Analysis domain this analyzer covers."""
        ...

    @property
    def min_bars(self) -> int:
        """Minimum primary-series history below which the result is empty."""
        ...

    def analyze(self, data: MultiTimeframeData) -> AnalyzerResult:
        ...
