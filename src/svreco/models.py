"""Core data models used by the secondary-vertex reconstruction.

This module defines:
- immutable physics inputs (`Track`, `ImpactParameterRecord`, `PrimaryVertex`,
  `BeamSpot`) and the per-jet input container (`JetTrackInfo`)
- fitter outputs (`FittedVertex`) and derived candidates
  (`SecondaryVertexCandidate`)
- per-jet outputs (`TrackStatus`, `TrackData`, `VertexData`,
  `JetVertexingResult`) and the event container (`EventInput`).
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Mapping, Sequence

Vector3 = tuple[float, float, float]
Matrix2x2 = tuple[tuple[float, float], tuple[float, float]]
Matrix3x3 = tuple[tuple[float, float, float], tuple[float, float, float], tuple[float, float, float]]

TRACK_QUALITY_RANKS: dict[str, int] = {
    "undefined": -1,
    "loose": 0,
    "tight": 1,
    "highPurity": 2,
}


@dataclass(frozen=True)
class Measurement1D:
    """Value with uncertainty. A negative error means the error is undefined."""

    value: float
    error: float = 0.0

    @property
    def significance(self) -> float:
        if self.error > 0.0:
            return self.value / self.error
        return 0.0

    @property
    def has_valid_error(self) -> bool:
        return self.error >= 0.0


@dataclass(frozen=True)
class Track:
    """Reconstructed charged-particle track, linearised at a reference point.

    `position_error` is the transverse position uncertainty at `(x, y, z)`;
    hit counts, `norm_chi2` and `quality` are the usual track-quality handles.
    """

    track_id: str
    x: float
    y: float
    z: float
    px: float
    py: float
    pz: float
    charge: int = 0
    position_error: float = 0.01
    n_valid_hits: int = 0
    n_pixel_hits: int = 0
    norm_chi2: float = 0.0
    quality: str = "undefined"

    @property
    def momentum(self) -> Vector3:
        return self.px, self.py, self.pz

    @property
    def p(self) -> float:
        return math.sqrt(self.px * self.px + self.py * self.py + self.pz * self.pz)

    @property
    def pt(self) -> float:
        return math.hypot(self.px, self.py)

    def direction(self) -> Vector3:
        """Return the unit momentum direction (z axis for a null momentum)."""
        p = self.p
        if p <= 0.0:
            return 0.0, 0.0, 1.0
        return self.px / p, self.py / p, self.pz / p

    @property
    def quality_rank(self) -> int:
        return TRACK_QUALITY_RANKS.get(self.quality, -1)


@dataclass(frozen=True)
class ImpactParameterRecord:
    """Impact-parameter data of one track with respect to its jet and PV."""

    ip2d: Measurement1D
    ip3d: Measurement1D
    prob2d: float | None = None
    prob3d: float | None = None
    distance_to_jet_axis: Measurement1D = Measurement1D(0.0, 0.0)
    decay_length: float = 0.0


@dataclass(frozen=True)
class PrimaryVertex:
    """Primary-vertex hypothesis associated to a jet."""

    pv_id: str
    x: float
    y: float
    z: float
    cov3: Matrix3x3
    is_valid: bool = True
    track_ids: tuple[str, ...] = ()

    @property
    def position(self) -> Vector3:
        return self.x, self.y, self.z


@dataclass(frozen=True)
class BeamSpot:
    """Beam-interaction region, used as primary vertex when a jet has none."""

    x: float = 0.0
    y: float = 0.0
    z: float = 0.0
    sigma_z: float = 0.0
    beam_width_x: float = 0.0
    beam_width_y: float = 0.0
    cov3: Matrix3x3 | None = None

    def covariance3d(self) -> Matrix3x3:
        """Return the position covariance including the transverse beam width."""
        if self.cov3 is not None:
            c = self.cov3
            return (
                (c[0][0] + self.beam_width_x**2, c[0][1], c[0][2]),
                (c[1][0], c[1][1] + self.beam_width_y**2, c[1][2]),
                (c[2][0], c[2][1], c[2][2] + self.sigma_z**2),
            )
        return (
            (self.beam_width_x**2, 0.0, 0.0),
            (0.0, self.beam_width_y**2, 0.0),
            (0.0, 0.0, self.sigma_z**2),
        )

    def as_primary_vertex(self) -> PrimaryVertex:
        """Build the fallback primary vertex from the beam-spot position."""
        return PrimaryVertex(
            pv_id="beamspot",
            x=self.x,
            y=self.y,
            z=self.z,
            cov3=self.covariance3d(),
            is_valid=False,
        )


class TrackSortCriterion(Enum):
    """Keys used to order a jet's tracks before vertex fitting."""

    IP3D_SIG = "sip3dSig"
    IP3D_VALUE = "sip3dVal"
    PROB3D = "prob3d"
    IP2D_SIG = "sip2dSig"
    IP2D_VALUE = "sip2dVal"
    PROB2D = "prob2d"

    @property
    def is_probability(self) -> bool:
        return self in (TrackSortCriterion.PROB3D, TrackSortCriterion.PROB2D)


@dataclass(frozen=True)
class JetTrackInfo:
    """Per-jet input: jet axis, optional PV, tracks and their IP records.

    `ip_data[i]` belongs to `tracks[i]`.
    """

    jet_id: str
    jet_momentum: Vector3
    tracks: tuple[Track, ...]
    ip_data: tuple[ImpactParameterRecord, ...]
    primary_vertex: PrimaryVertex | None = None

    def __post_init__(self) -> None:
        if len(self.tracks) != len(self.ip_data):
            raise ValueError(
                f"Jet '{self.jet_id}' has {len(self.tracks)} tracks but "
                f"{len(self.ip_data)} impact-parameter records."
            )

    @property
    def has_probabilities(self) -> bool:
        return bool(self.ip_data) and all(
            ip.prob2d is not None and ip.prob3d is not None for ip in self.ip_data
        )

    def sorted_indexes(self, criterion: TrackSortCriterion) -> list[int]:
        """Return track indices ordered by `criterion`.

        IP values and significances sort descending, probabilities ascending;
        ties keep the original track order. Probability sorting without
        probabilities yields an empty list.
        """
        if criterion.is_probability and not self.has_probabilities:
            return []
        keys = [_sort_key(ip, criterion) for ip in self.ip_data]
        if criterion.is_probability:
            return sorted(range(len(keys)), key=lambda i: keys[i])
        return sorted(range(len(keys)), key=lambda i: -keys[i])

    def sorted_tracks(self, indices: Sequence[int]) -> tuple[Track, ...]:
        return tuple(self.tracks[i] for i in indices)


def _sort_key(ip: ImpactParameterRecord, criterion: TrackSortCriterion) -> float:
    if criterion is TrackSortCriterion.IP3D_SIG:
        return ip.ip3d.significance
    if criterion is TrackSortCriterion.IP3D_VALUE:
        return ip.ip3d.value
    if criterion is TrackSortCriterion.IP2D_SIG:
        return ip.ip2d.significance
    if criterion is TrackSortCriterion.IP2D_VALUE:
        return ip.ip2d.value
    prob = ip.prob3d if criterion is TrackSortCriterion.PROB3D else ip.prob2d
    if prob is None:
        raise ValueError(f"Cannot sort by {criterion.value}: impact-parameter record has no probability.")
    return prob


@dataclass(frozen=True)
class FittedVertex:
    """One vertex returned by a vertex fitter.

    `tracks` are the tracks the fitter keeps as members, with their fit
    `weights`. A single adaptive fit keeps every track above its weight
    threshold, so a member may still fall below `VertexCuts.min_track_weight`.
    The producer marks all members as associated to the chosen vertex.
    """

    x: float
    y: float
    z: float
    cov3: Matrix3x3
    tracks: tuple[Track, ...]
    weights: Mapping[str, float] = field(default_factory=dict)
    chi2: float = 0.0
    ndof: float = 0.0

    @property
    def position(self) -> Vector3:
        return self.x, self.y, self.z

    def track_weight(self, track: Track) -> float:
        return self.weights.get(track.track_id, 1.0)


@dataclass(frozen=True)
class SecondaryVertexCandidate:
    """Fitted vertex with flight distances measured from the primary vertex."""

    vertex: FittedVertex
    dist2d: Measurement1D
    dist3d: Measurement1D
    flight_direction: Vector3
    jet_direction: Vector3

    @property
    def position(self) -> Vector3:
        return self.vertex.position

    @property
    def tracks(self) -> tuple[Track, ...]:
        return self.vertex.tracks

    @property
    def track_ids(self) -> tuple[str, ...]:
        return tuple(t.track_id for t in self.vertex.tracks)

    @property
    def signed_dist2d(self) -> Measurement1D:
        """2D flight distance, negative when pointing against the jet."""
        f, j = self.flight_direction, self.jet_direction
        sign = -1.0 if f[0] * j[0] + f[1] * j[1] < 0.0 else 1.0
        return Measurement1D(sign * self.dist2d.value, self.dist2d.error)

    @property
    def signed_dist3d(self) -> Measurement1D:
        """3D flight distance, negative when pointing against the jet."""
        f, j = self.flight_direction, self.jet_direction
        sign = -1.0 if f[0] * j[0] + f[1] * j[1] + f[2] * j[2] < 0.0 else 1.0
        return Measurement1D(sign * self.dist3d.value, self.dist3d.error)


class TrackStatus(Enum):
    """Association status of one track in a jet's status table."""

    SELECTED = "selected"
    USED_FOR_FIT = "usedForFit"
    ASSOCIATED_TO_VERTEX = "associatedToVertex"


@dataclass(frozen=True)
class TrackData:
    """Status of the track at `index` in the jet's sorted track list."""

    index: int
    status: TrackStatus


@dataclass(frozen=True)
class VertexData:
    """Chosen secondary vertex with its flight distances and direction."""

    vertex: SecondaryVertexCandidate
    dist2d: Measurement1D
    dist3d: Measurement1D
    direction: Vector3


@dataclass(frozen=True)
class JetVertexingResult:
    """Secondary-vertex outcome of one jet."""

    jet_id: str
    track_data: tuple[TrackData, ...]
    vertex_data: tuple[VertexData, ...]
    n_vertex_candidates: int
    source_index: int
    sorted_track_ids: tuple[str, ...] = ()
    primary_vertex_id: str | None = None
    event_id: str | None = None

    @property
    def vertex(self) -> SecondaryVertexCandidate | None:
        return self.vertex_data[0].vertex if self.vertex_data else None

    def status_of(self, index: int) -> TrackStatus | None:
        for entry in self.track_data:
            if entry.index == index:
                return entry.status
        return None

    def count_status(self, status: TrackStatus) -> int:
        return sum(1 for entry in self.track_data if entry.status is status)

    @property
    def n_selected_tracks(self) -> int:
        return len(self.track_data)

    @property
    def n_vertex_tracks(self) -> int:
        return self.count_status(TrackStatus.ASSOCIATED_TO_VERTEX)


@dataclass(frozen=True)
class EventInput:
    """One event payload: its jets and the event beam spot."""

    event_id: str
    jets: tuple[JetTrackInfo, ...]
    beamspot: BeamSpot = BeamSpot()
