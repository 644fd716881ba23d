"""Vertex-fitter boundary and reference straight-line adaptive fitters.

The producer only relies on the `VertexReconstructor` protocol and on
`fit_tracks`, which turns a `VertexFitError` into an empty `FitOutcome`.
`build_vertex_reconstructor` creates one of the bundled finders from the
opaque `vertexReco` mapping:

- `avf`: one adaptive vertex fit with annealed Fermi-function track weights
- `avr`: repeated AVF fits; tracks assigned to a vertex are removed and the
  remainder is refit until fewer than two tracks are left.

Tracks are treated as straight lines through their reference point, which
is adequate for the short flight distances of heavy-flavour decays.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, replace
from typing import Any, Callable, Mapping, Protocol, Sequence

from .errors import ConfigurationError, VertexFitError
from .models import FittedVertex, Matrix3x3, Track, Vector3
from .physics import dot3, invert_3x3, norm3, solve_3x3, sub3

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TransientTrack:
    """Track re-expressed as a line with a transverse position uncertainty."""

    point: Vector3
    direction: Vector3
    sigma: float
    track: Track


def build_transient_track(track: Track) -> TransientTrack:
    """Linearise a track at its reference point."""
    return TransientTrack(
        point=(track.x, track.y, track.z),
        direction=track.direction(),
        sigma=track.position_error,
        track=track,
    )


class VertexReconstructor(Protocol):
    """Anything that turns a track list into zero or more fitted vertices."""

    def vertices(self, tracks: Sequence[TransientTrack]) -> list[FittedVertex]:
        ...


@dataclass(frozen=True)
class FitOutcome:
    """Result of one fitter call: vertices, or the reason there are none."""

    vertices: tuple[FittedVertex, ...] = ()
    error: str | None = None

    @property
    def failed(self) -> bool:
        return self.error is not None


def fit_tracks(reco: VertexReconstructor, tracks: Sequence[TransientTrack]) -> FitOutcome:
    """Run the fitter, converting a degenerate-input failure into an empty outcome."""
    try:
        return FitOutcome(vertices=tuple(reco.vertices(tracks)))
    except VertexFitError as exc:
        return FitOutcome(error=str(exc))


@dataclass(frozen=True)
class _WeightedFit:
    position: Vector3
    cov3: Matrix3x3


def _residual_chi2(track: TransientTrack, vertex: Vector3) -> float:
    """Squared perpendicular distance of `vertex` to the track line, in sigma units."""
    d = sub3(vertex, track.point)
    along = dot3(d, track.direction)
    perp = (
        d[0] - along * track.direction[0],
        d[1] - along * track.direction[1],
        d[2] - along * track.direction[2],
    )
    return dot3(perp, perp) / (track.sigma * track.sigma)


def _weighted_fit(tracks: Sequence[TransientTrack], weights: Sequence[float]) -> _WeightedFit:
    """Weighted least-squares point closest to all track lines."""
    # Normal equations: sum_i w_i / s_i^2 * (I - u_i u_i^T) (v - p_i) = 0
    ata = [[0.0, 0.0, 0.0], [0.0, 0.0, 0.0], [0.0, 0.0, 0.0]]
    atb = [0.0, 0.0, 0.0]
    for t, w in zip(tracks, weights, strict=True):
        if w <= 0.0:
            continue
        if t.sigma <= 0.0:
            raise VertexFitError(f"Track {t.track.track_id} has a non-positive position error.")
        scale = w / (t.sigma * t.sigma)
        u = t.direction
        for i in range(3):
            for j in range(3):
                proj = (1.0 if i == j else 0.0) - u[i] * u[j]
                ata[i][j] += scale * proj
                atb[i] += scale * proj * t.point[j]
    xyz = solve_3x3(ata, atb)
    cov = invert_3x3(ata)
    if xyz is None or cov is None:
        raise VertexFitError("Track lines are parallel or too few; vertex is undetermined.")
    return _WeightedFit(position=xyz, cov3=cov)


def _fermi_weight(chi2: float, chi2_cut: float, temperature: float) -> float:
    arg = (chi2 - chi2_cut) / (2.0 * temperature)
    if arg > 700.0:
        return 0.0
    return 1.0 / (1.0 + math.exp(arg))


@dataclass
class AdaptiveVertexFitter:
    """Single adaptive vertex fit with deterministic annealing."""

    cut: float = 3.0
    t_ini: float = 256.0
    ratio: float = 0.25
    max_iterations: int = 50
    min_weight: float = 0.001
    tolerance: float = 1.0e-6

    def fit(self, tracks: Sequence[TransientTrack]) -> FittedVertex:
        if len(tracks) < 2:
            raise VertexFitError(f"Need at least two tracks to fit a vertex, got {len(tracks)}.")
        chi2_cut = self.cut * self.cut
        weights = [1.0] * len(tracks)
        fit = _weighted_fit(tracks, weights)
        temperature = self.t_ini
        for _ in range(self.max_iterations):
            weights = [
                _fermi_weight(_residual_chi2(t, fit.position), chi2_cut, temperature)
                for t in tracks
            ]
            if sum(1 for w in weights if w >= self.min_weight) < 2:
                raise VertexFitError(
                    f"Fewer than two significant tracks (w >= {self.min_weight:g})."
                )
            new_fit = _weighted_fit(tracks, weights)
            moved = norm3(sub3(new_fit.position, fit.position))
            fit = new_fit
            if temperature > 1.0:
                temperature = 1.0 + self.ratio * (temperature - 1.0)
                if temperature < 1.0001:
                    temperature = 1.0
            elif moved < self.tolerance:
                break
        return self._make_vertex(tracks, weights, fit)

    def _make_vertex(
        self,
        tracks: Sequence[TransientTrack],
        weights: Sequence[float],
        fit: _WeightedFit,
    ) -> FittedVertex:
        members = [(t, w) for t, w in zip(tracks, weights, strict=True) if w >= self.min_weight]
        chi2 = sum(w * _residual_chi2(t, fit.position) for t, w in members)
        ndof = 2.0 * sum(w for _, w in members) - 3.0
        return FittedVertex(
            x=fit.position[0],
            y=fit.position[1],
            z=fit.position[2],
            cov3=fit.cov3,
            tracks=tuple(t.track for t, _ in members),
            weights={t.track.track_id: w for t, w in members},
            chi2=chi2,
            ndof=ndof,
        )

    def vertices(self, tracks: Sequence[TransientTrack]) -> list[FittedVertex]:
        return [self.fit(tracks)]


@dataclass
class AdaptiveVertexReconstructor:
    """Iterated AVF: each pass keeps tracks above `minweight` as one vertex.

    Only the assigned tracks are members of the returned vertices, so a track
    belongs to at most one of them. Unassigned tracks are refit in later passes.
    """

    primcut: float = 1.8
    seccut: float = 6.0
    minweight: float = 0.5
    fitter_options: Mapping[str, Any] | None = None

    def vertices(self, tracks: Sequence[TransientTrack]) -> list[FittedVertex]:
        options = dict(self.fitter_options or {})
        remaining = list(tracks)
        out: list[FittedVertex] = []
        cut = self.primcut
        while len(remaining) >= 2:
            fitter = AdaptiveVertexFitter(cut=cut, **options)
            try:
                vertex = fitter.fit(remaining)
            except VertexFitError:
                if not out:
                    raise
                logger.debug("Stopping vertex search after %d vertices", len(out))
                break
            assigned = {
                tid for tid, w in vertex.weights.items() if w >= self.minweight
            }
            if len(assigned) < 2:
                break
            out.append(_keep_members(vertex, assigned))
            remaining = [t for t in remaining if t.track.track_id not in assigned]
            cut = self.seccut
        return out


def _keep_members(vertex: FittedVertex, track_ids: set[str]) -> FittedVertex:
    """Restrict a fitted vertex to the tracks assigned to it."""
    return replace(
        vertex,
        tracks=tuple(t for t in vertex.tracks if t.track_id in track_ids),
        weights={tid: w for tid, w in vertex.weights.items() if tid in track_ids},
    )


_AVF_KEYS: dict[str, str] = {
    "cut": "cut",
    "Tini": "t_ini",
    "ratio": "ratio",
    "maxIterations": "max_iterations",
    "weightthreshold": "min_weight",
}


def _avf_options(params: Mapping[str, Any]) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for key, value in params.items():
        if key in _AVF_KEYS:
            target = _AVF_KEYS[key]
            out[target] = int(value) if target == "max_iterations" else float(value)
    return out


def _make_avf(params: Mapping[str, Any]) -> VertexReconstructor:
    _check_keys("avf", params, set(_AVF_KEYS))
    return AdaptiveVertexFitter(**_avf_options(params))


def _make_avr(params: Mapping[str, Any]) -> VertexReconstructor:
    own = {"primcut", "seccut", "minweight"}
    _check_keys("avr", params, own | set(_AVF_KEYS) - {"cut"})
    return AdaptiveVertexReconstructor(
        primcut=float(params.get("primcut", 1.8)),
        seccut=float(params.get("seccut", 6.0)),
        minweight=float(params.get("minweight", 0.5)),
        fitter_options=_avf_options(params),
    )


_FINDERS: dict[str, Callable[[Mapping[str, Any]], VertexReconstructor]] = {
    "avf": _make_avf,
    "avr": _make_avr,
}


def _check_keys(finder: str, params: Mapping[str, Any], allowed: set[str]) -> None:
    unknown = sorted(set(params) - allowed)
    if unknown:
        raise ConfigurationError(
            f"Unknown vertexReco option(s) for finder '{finder}': {', '.join(unknown)}"
        )


def build_vertex_reconstructor(vertex_reco: Mapping[str, Any]) -> VertexReconstructor:
    """Create a vertex finder from a `vertexReco` mapping with a `finder` key."""
    params = dict(vertex_reco)
    name = str(params.pop("finder", "avr"))
    try:
        factory = _FINDERS[name]
    except KeyError as exc:
        supported = ", ".join(sorted(_FINDERS))
        raise ConfigurationError(
            f"Unknown vertex finder '{name}'. Supported finders: {supported}"
        ) from exc
    try:
        return factory(params)
    except (TypeError, ValueError) as exc:
        if isinstance(exc, ConfigurationError):
            raise
        raise ConfigurationError(f"Invalid vertexReco options for '{name}': {exc}") from exc
