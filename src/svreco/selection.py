"""Track qualification, candidate filtering and best-candidate selection."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Sequence

from .config import (
    TrackSelection,
    VertexCuts,
    VertexSelection,
    parse_quality_class,
    validate_window,
)
from .errors import ConfigurationError
from .models import (
    ImpactParameterRecord,
    Measurement1D,
    PrimaryVertex,
    SecondaryVertexCandidate,
    Track,
    Vector3,
)
from .physics import K0S_MASS, PION_MASS, delta_r, invariant_mass, norm3, sub3


def _in_window(value: float, low: float | None, high: float | None) -> bool:
    if low is not None and value < low:
        return False
    if high is not None and value > high:
        return False
    return True


@dataclass
class TrackSelector:
    """Decide whether a track may participate in the vertex fit."""

    selection: TrackSelection = field(default_factory=TrackSelection)

    def __post_init__(self) -> None:
        self._min_quality = parse_quality_class(self.selection.quality_class)
        s = self.selection
        validate_window("ip2d value", s.min_ip2d_value, s.max_ip2d_value)
        validate_window("ip2d significance", s.min_ip2d_sig, s.max_ip2d_sig)
        validate_window("ip3d value", s.min_ip3d_value, s.max_ip3d_value)
        validate_window("ip3d significance", s.min_ip3d_sig, s.max_ip3d_sig)

    def __call__(
        self,
        track: Track,
        ip: ImpactParameterRecord,
        jet_direction: Vector3 | None = None,
    ) -> bool:
        s = self.selection
        if s.min_total_hits is not None and track.n_valid_hits < s.min_total_hits:
            return False
        if s.min_pixel_hits is not None and track.n_pixel_hits < s.min_pixel_hits:
            return False
        if s.min_pt is not None and track.pt < s.min_pt:
            return False
        if s.max_norm_chi2 is not None and track.norm_chi2 >= s.max_norm_chi2:
            return False
        if self._min_quality is not None and track.quality_rank < self._min_quality:
            return False
        if not _in_window(ip.ip2d.value, s.min_ip2d_value, s.max_ip2d_value):
            return False
        if not _in_window(ip.ip2d.significance, s.min_ip2d_sig, s.max_ip2d_sig):
            return False
        if not _in_window(ip.ip3d.value, s.min_ip3d_value, s.max_ip3d_value):
            return False
        if not _in_window(ip.ip3d.significance, s.min_ip3d_sig, s.max_ip3d_sig):
            return False
        if (
            s.max_distance_to_jet_axis is not None
            and ip.distance_to_jet_axis.value > s.max_distance_to_jet_axis
        ):
            return False
        if s.max_decay_length is not None and ip.decay_length > s.max_decay_length:
            return False
        if (
            s.max_jet_delta_r is not None
            and jet_direction is not None
            and delta_r(track.momentum, jet_direction) > s.max_jet_delta_r
        ):
            return False
        return True

    qualifies = __call__


@dataclass
class V0Filter:
    """Veto track sets containing an opposite-charge pair compatible with a K0S."""

    k0s_mass_window: float

    def __call__(self, tracks: Sequence[Track]) -> bool:
        """Return True when the track set passes (no V0-like pair)."""
        for i in range(len(tracks)):
            for j in range(i + 1, len(tracks)):
                t1, t2 = tracks[i], tracks[j]
                if t1.charge * t2.charge >= 0:
                    continue
                mass = invariant_mass((t1, t2), PION_MASS)
                if abs(mass - K0S_MASS) < self.k0s_mass_window:
                    return False
        return True


@dataclass
class VertexFilter:
    """Reject geometrically or kinematically implausible candidates."""

    cuts: VertexCuts = field(default_factory=VertexCuts)

    def __post_init__(self) -> None:
        c = self.cuts
        validate_window("dist2d value", c.min_dist2d_value, c.max_dist2d_value)
        validate_window("dist2d significance", c.min_dist2d_sig, c.max_dist2d_sig)
        validate_window("dist3d value", c.min_dist3d_value, c.max_dist3d_value)
        validate_window("dist3d significance", c.min_dist3d_sig, c.max_dist3d_sig)
        if c.min_multiplicity < 0:
            raise ConfigurationError("min_multiplicity must be non-negative.")
        self._v0_filter = None if c.k0s_mass_window is None else V0Filter(c.k0s_mass_window)

    def vertex_tracks(self, candidate: SecondaryVertexCandidate) -> list[Track]:
        """Member tracks counted by the cuts, honouring the weight threshold."""
        if not self.cuts.use_track_weights:
            return list(candidate.tracks)
        return [
            t
            for t in candidate.tracks
            if candidate.vertex.track_weight(t) >= self.cuts.min_track_weight
        ]

    def __call__(
        self,
        pv: PrimaryVertex,
        candidate: SecondaryVertexCandidate,
        jet_direction: Vector3,
    ) -> bool:
        c = self.cuts
        tracks = self.vertex_tracks(candidate)
        if len(tracks) < c.min_multiplicity:
            return False

        if not (candidate.dist2d.has_valid_error and candidate.dist3d.has_valid_error):
            return False

        if not _passes_distance(candidate.signed_dist2d, c.min_dist2d_value, c.max_dist2d_value,
                                c.min_dist2d_sig, c.max_dist2d_sig):
            return False
        if not _passes_distance(candidate.signed_dist3d, c.min_dist3d_value, c.max_dist3d_value,
                                c.min_dist3d_sig, c.max_dist3d_sig):
            return False

        if c.max_delta_r_to_jet_axis is not None:
            flight = sub3(candidate.position, pv.position)
            if norm3(flight) <= 0.0 or delta_r(flight, jet_direction) > c.max_delta_r_to_jet_axis:
                return False

        if c.max_mass is not None and invariant_mass(tracks, PION_MASS) > c.max_mass:
            return False

        if c.max_fraction_pv < 1.0 and tracks:
            pv_tracks = set(pv.track_ids)
            shared = sum(1 for t in tracks if t.track_id in pv_tracks)
            if shared / len(tracks) > c.max_fraction_pv:
                return False

        if self._v0_filter is not None and not self._v0_filter(tracks):
            return False
        return True

    accepts = __call__


def _passes_distance(
    dist: Measurement1D,
    min_value: float | None,
    max_value: float | None,
    min_sig: float | None,
    max_sig: float | None,
) -> bool:
    return _in_window(dist.value, min_value, max_value) and _in_window(
        dist.significance, min_sig, max_sig
    )


_Ranking = tuple[Callable[[SecondaryVertexCandidate], float], bool]

_SORT_CRITERIA: dict[str, _Ranking] = {
    "dist3dError": (lambda sv: sv.dist3d.error, False),
    "dist3dValue": (lambda sv: sv.dist3d.value, True),
    "dist3dSignificance": (lambda sv: sv.dist3d.significance, True),
    "dist2dError": (lambda sv: sv.dist2d.error, False),
    "dist2dValue": (lambda sv: sv.dist2d.value, True),
    "dist2dSignificance": (lambda sv: sv.dist2d.significance, True),
}


@dataclass
class VertexSelector:
    """Pick the single best candidate of a jet.

    Error criteria prefer the smallest value, value and significance criteria
    the largest; ties go to the earliest candidate.
    """

    selection: VertexSelection = field(default_factory=VertexSelection)

    def __post_init__(self) -> None:
        try:
            self._key, self._maximise = _SORT_CRITERIA[self.selection.sort_criterion]
        except KeyError as exc:
            supported = ", ".join(_SORT_CRITERIA)
            raise ConfigurationError(
                f"Unknown vertex sort criterion '{self.selection.sort_criterion}'. "
                f"Supported names: {supported}"
            ) from exc

    def __call__(
        self, candidates: Sequence[SecondaryVertexCandidate]
    ) -> SecondaryVertexCandidate | None:
        best: SecondaryVertexCandidate | None = None
        best_key = 0.0
        for sv in candidates:
            key = self._key(sv)
            if best is None or (key > best_key if self._maximise else key < best_key):
                best, best_key = sv, key
        return best

    select = __call__
