"""Configuration objects for the secondary-vertex producer.

Every threshold is optional: `None` means the cut is not applied. Names that
select a behaviour (sort criteria, quality classes, vertex finders) are
validated when the consuming component is constructed. Numeric and boolean
options are converted to their declared type on construction. Either way a
bad configuration fails before any jet is processed.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field, fields
from typing import Any, Mapping

from .errors import ConfigurationError
from .models import TRACK_QUALITY_RANKS, TrackSortCriterion

SIGNIFICANCE_MODES = ("projected", "chi2")


def _coerce_threshold(block: str, name: str, declared: str, value: Any) -> Any:
    """Convert one option to its declared `int`/`float`/`bool`/`str` type."""
    if value is None and "None" in declared:
        return None
    kind = declared.split("|")[0].strip()
    if kind == "bool":
        if isinstance(value, bool):
            return value
    elif kind == "str":
        if isinstance(value, str):
            return value
    elif not isinstance(value, bool):
        try:
            number = float(value)
        except (TypeError, ValueError):
            pass
        else:
            if kind == "float" and math.isfinite(number):
                return number
            if kind == "int" and number.is_integer():
                return int(number)
    raise ConfigurationError(
        f"Option '{name}' in '{block}' must be of type {declared}, got {value!r}."
    )


def _coerce_fields(obj: Any, block: str) -> None:
    """Coerce every field of a frozen options dataclass in place."""
    for f in fields(obj):
        value = _coerce_threshold(block, f.name, str(f.type), getattr(obj, f.name))
        object.__setattr__(obj, f.name, value)


@dataclass(frozen=True)
class TrackSelection:
    """Per-track cuts deciding which tracks are offered to the vertex fitter."""

    min_total_hits: int | None = None
    min_pixel_hits: int | None = None
    min_pt: float | None = None
    max_norm_chi2: float | None = None
    quality_class: str = "any"
    min_ip2d_value: float | None = None
    max_ip2d_value: float | None = None
    min_ip2d_sig: float | None = None
    max_ip2d_sig: float | None = None
    min_ip3d_value: float | None = None
    max_ip3d_value: float | None = None
    min_ip3d_sig: float | None = None
    max_ip3d_sig: float | None = None
    max_distance_to_jet_axis: float | None = None
    max_decay_length: float | None = None
    max_jet_delta_r: float | None = None

    def __post_init__(self) -> None:
        _coerce_fields(self, "trackSelection")


@dataclass(frozen=True)
class VertexCuts:
    """Candidate-level cuts applied after building each secondary vertex."""

    use_track_weights: bool = True
    min_track_weight: float = 0.5
    min_multiplicity: int = 2
    min_dist2d_value: float | None = None
    max_dist2d_value: float | None = None
    min_dist2d_sig: float | None = None
    max_dist2d_sig: float | None = None
    min_dist3d_value: float | None = None
    max_dist3d_value: float | None = None
    min_dist3d_sig: float | None = None
    max_dist3d_sig: float | None = None
    max_delta_r_to_jet_axis: float | None = None
    max_mass: float | None = None
    max_fraction_pv: float = 1.0
    k0s_mass_window: float | None = None

    def __post_init__(self) -> None:
        _coerce_fields(self, "vertexCuts")


@dataclass(frozen=True)
class VertexSelection:
    """Ranking policy used to pick the best candidate of a jet."""

    sort_criterion: str = "dist3dSignificance"


@dataclass(frozen=True)
class SecondaryVertexConfig:
    """Complete producer configuration."""

    track_sort: str = "sip3dSig"
    track_selection: TrackSelection = TrackSelection()
    vertex_reco: Mapping[str, Any] = field(default_factory=lambda: {"finder": "avr"})
    use_pv_error: bool = True
    vertex_cuts: VertexCuts = VertexCuts()
    vertex_selection: VertexSelection = VertexSelection()
    significance_mode: str = "projected"


def parse_sort_criterion(name: str) -> TrackSortCriterion:
    """Resolve a `trackSort` name (e.g. `sip3dSig`, `prob2d`)."""
    try:
        return TrackSortCriterion(name)
    except ValueError as exc:
        supported = ", ".join(c.value for c in TrackSortCriterion)
        raise ConfigurationError(
            f'Identifier "{name}" does not represent a valid track sorting criterion. '
            f"Supported names: {supported}"
        ) from exc


def parse_quality_class(name: str) -> int | None:
    """Return the minimum quality rank for `name`, or None for `any`."""
    if name == "any":
        return None
    try:
        return TRACK_QUALITY_RANKS[name]
    except KeyError as exc:
        supported = ", ".join(["any", *TRACK_QUALITY_RANKS])
        raise ConfigurationError(
            f"Unknown track quality class '{name}'. Supported names: {supported}"
        ) from exc


def validate_significance_mode(mode: str) -> str:
    if mode not in SIGNIFICANCE_MODES:
        raise ConfigurationError(
            f"Unknown significance mode '{mode}'. Use one of: {', '.join(SIGNIFICANCE_MODES)}"
        )
    return mode


def validate_window(name: str, low: float | None, high: float | None) -> None:
    """Reject `[min, max]` windows that cannot accept anything."""
    if low is not None and high is not None and low > high:
        raise ConfigurationError(f"Cut window '{name}' has min {low!r} above max {high!r}.")
