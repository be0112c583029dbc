# src/KNNrainPy/diagnostics.py
# SPDX-License-Identifier: MIT
"""
Error taxonomy and diagnostic side channel for KNNrainPy.

Two families of conditions are distinguished:

Fatal
-----
- :class:`InvalidInputShape`: malformed inputs (non-square distance
  matrix, length mismatch with the measurements, asymmetric matrix).
- :class:`ZeroDistanceError`: a zero/negative distance was selected in
  weighted mode and the caller asked for strict handling
  (``zero_distance="raise"``).

Recoverable (reported, never fatal)
-----------------------------------
- ``"degraded"``: fewer than ``k`` valid neighbors; the effective k is
  reduced (:class:`DegradedNeighborCountWarning`).
- ``"no_neighbors"``: no valid neighbor at all; the cell stays missing
  (:class:`NoValidNeighborsWarning`).
- ``"zero_distance"``: a zero/negative distance was clamped or the cell was
  left missing (:class:`ZeroDistanceWarning`).

Recoverable conditions are recorded as :class:`Diagnostic` rows in a
:class:`DiagnosticLog` and surfaced through the standard :mod:`warnings`
machinery, so callers can filter or escalate them as usual.
"""

from __future__ import annotations

import warnings
from dataclasses import asdict, dataclass, field
from typing import Dict, Hashable, Iterable, List, Optional

import pandas as pd


# ---------------------------------------------------------------------
# Exceptions and warning categories
# ---------------------------------------------------------------------


class InvalidInputShape(ValueError):
    """Inputs do not describe a consistent N x N / N x T problem."""


class ZeroDistanceError(InvalidInputShape):
    """A selected neighbor lies at zero or negative distance (strict mode)."""


class KNNRainWarning(UserWarning):
    """Base category for every warning issued by this package."""


class DegradedNeighborCountWarning(KNNRainWarning):
    """Fewer than ``k`` valid neighbors were available."""


class NoValidNeighborsWarning(KNNRainWarning):
    """No valid neighbor was available; the value stays missing."""


class ZeroDistanceWarning(KNNRainWarning):
    """A zero/negative distance was met under inverse-distance weighting."""


class DiagonalDefinedWarning(KNNRainWarning):
    """The distance matrix diagonal holds defined values."""


DEGRADED = "degraded"
NO_NEIGHBORS = "no_neighbors"
ZERO_DISTANCE = "zero_distance"

_CATEGORY = {
    DEGRADED: DegradedNeighborCountWarning,
    NO_NEIGHBORS: NoValidNeighborsWarning,
    ZERO_DISTANCE: ZeroDistanceWarning,
}


def set_warning_policy(silence: bool = False) -> None:
    """
    Control how KNNrainPy warnings are displayed.

    Parameters
    ----------
    silence : bool
        If True, ignore every :class:`KNNRainWarning`. Otherwise restore
        the default behavior (shown once per location and message).
    """
    if silence:
        warnings.filterwarnings("ignore", category=KNNRainWarning)
    else:
        warnings.filterwarnings("default", category=KNNRainWarning)


# ---------------------------------------------------------------------
# Diagnostic records
# ---------------------------------------------------------------------


@dataclass(frozen=True)
class Diagnostic:
    """One recoverable condition met while estimating a cell.

    Attributes
    ----------
    kind :
        ``"degraded"``, ``"no_neighbors"`` or ``"zero_distance"``.
    site :
        Site index or external key.
    column :
        Time slice (column index or label); ``None`` for single vectors.
    requested_k, effective_k :
        Neighbors asked for and neighbors actually used.
    message :
        Human-readable description.
    """

    kind: str
    site: Optional[Hashable]
    column: Optional[Hashable]
    requested_k: int
    effective_k: int
    message: str

    @property
    def category(self) -> type:
        return _CATEGORY.get(self.kind, KNNRainWarning)

    def warn(self, stacklevel: int = 3) -> None:
        warnings.warn(self.message, self.category, stacklevel=stacklevel)


@dataclass
class DiagnosticLog:
    """Accumulates :class:`Diagnostic` records for one imputation run."""

    records: List[Diagnostic] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.records)

    def __iter__(self):
        return iter(self.records)

    def append(self, record: Diagnostic) -> None:
        self.records.append(record)

    def extend(self, records: Iterable[Diagnostic]) -> None:
        self.records.extend(records)

    def of_kind(self, kind: str) -> List[Diagnostic]:
        return [r for r in self.records if r.kind == kind]

    def counts(self) -> Dict[str, int]:
        """Number of records per kind (kinds with no record are omitted)."""
        out: Dict[str, int] = {}
        for r in self.records:
            out[r.kind] = out.get(r.kind, 0) + 1
        return out

    def to_frame(self) -> pd.DataFrame:
        """Return the records as a DataFrame (one row per diagnostic)."""
        cols = ["kind", "site", "column", "requested_k", "effective_k", "message"]
        if not self.records:
            return pd.DataFrame(columns=cols)
        return pd.DataFrame([asdict(r) for r in self.records], columns=cols)

    def emit_summary(self, stacklevel: int = 3) -> None:
        """Issue one warning per diagnostic kind with its count."""
        for kind, n in self.counts().items():
            sample = self.of_kind(kind)[0]
            warnings.warn(
                f"{n} cell(s) reported '{kind}'; first: {sample.message}",
                _CATEGORY.get(kind, KNNRainWarning),
                stacklevel=stacklevel,
            )


__all__ = [
    "InvalidInputShape",
    "ZeroDistanceError",
    "KNNRainWarning",
    "DegradedNeighborCountWarning",
    "NoValidNeighborsWarning",
    "ZeroDistanceWarning",
    "DiagonalDefinedWarning",
    "DEGRADED",
    "NO_NEIGHBORS",
    "ZERO_DISTANCE",
    "set_warning_policy",
    "Diagnostic",
    "DiagnosticLog",
]
