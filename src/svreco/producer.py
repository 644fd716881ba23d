"""Per-jet secondary-vertex producer."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Callable, Sequence

from .candidate import build_candidate
from .config import SecondaryVertexConfig, parse_sort_criterion, validate_significance_mode
from .errors import CovarianceError, TrackNotFoundError
from .fitters import (
    TransientTrack,
    VertexReconstructor,
    build_transient_track,
    build_vertex_reconstructor,
    fit_tracks,
)
from .models import (
    BeamSpot,
    EventInput,
    JetTrackInfo,
    JetVertexingResult,
    PrimaryVertex,
    SecondaryVertexCandidate,
    Track,
    TrackData,
    TrackStatus,
    VertexData,
)
from .physics import sub3
from .selection import TrackSelector, VertexFilter, VertexSelector

logger = logging.getLogger(__name__)


@dataclass
class SecondaryVertexProducer:
    """Reconstruct at most one secondary vertex per jet.

    All configuration is validated on construction. `produce` is a pure
    transformation from a batch of jets to one result per jet, in input order.
    """

    config: SecondaryVertexConfig = field(default_factory=SecondaryVertexConfig)
    vertex_reconstructor: VertexReconstructor | None = None
    track_builder: Callable[[Track], TransientTrack] = build_transient_track
    max_workers: int = 1

    def __post_init__(self) -> None:
        cfg = self.config
        self.sort_criterion = parse_sort_criterion(cfg.track_sort)
        self.significance_mode = validate_significance_mode(cfg.significance_mode)
        self.track_selector = TrackSelector(cfg.track_selection)
        self.vertex_filter = VertexFilter(cfg.vertex_cuts)
        self.vertex_selector = VertexSelector(cfg.vertex_selection)
        if self.vertex_reconstructor is None:
            self.vertex_reconstructor = build_vertex_reconstructor(cfg.vertex_reco)

    def produce(
        self,
        jets: Sequence[JetTrackInfo],
        beamspot: BeamSpot | None = None,
        event_id: str | None = None,
    ) -> list[JetVertexingResult]:
        """Process a batch of jets and return one result per jet, in order.

        Workflow per jet:
        1. Resolve the PV (jet PV if valid, else the beam-spot fallback).
        2. Sort tracks and mark each `USED_FOR_FIT` or `SELECTED`.
        3. Fit the `USED_FOR_FIT` tracks.
        4. Build candidates, then filter them.
        5. Select the best candidate and mark its tracks.
        """
        fallback_pv = (beamspot or BeamSpot()).as_primary_vertex()

        def run(item: tuple[int, JetTrackInfo]) -> JetVertexingResult:
            index, jet = item
            return self.process_jet(jet, fallback_pv, source_index=index, event_id=event_id)

        items = list(enumerate(jets))
        if self.max_workers > 1 and len(items) > 1:
            with ThreadPoolExecutor(max_workers=min(self.max_workers, len(items))) as executor:
                results = list(executor.map(run, items))
        else:
            results = [run(item) for item in items]

        logger.info(
            "Event %s: %d jets, %d with a secondary vertex",
            event_id,
            len(results),
            sum(1 for r in results if r.vertex_data),
        )
        return results

    def produce_events(self, events: Sequence[EventInput]) -> list[list[JetVertexingResult]]:
        """Run `produce` on every event, keeping one result list per event."""
        return [
            self.produce(event.jets, beamspot=event.beamspot, event_id=event.event_id)
            for event in events
        ]

    def process_jet(
        self,
        jet: JetTrackInfo,
        fallback_pv: PrimaryVertex,
        source_index: int = 0,
        event_id: str | None = None,
    ) -> JetVertexingResult:
        """Reconstruct the secondary vertex of a single jet."""
        pv = resolve_primary_vertex(jet, fallback_pv)
        jet_dir = jet.jet_momentum

        indices = jet.sorted_indexes(self.sort_criterion)
        if not indices and jet.tracks:
            logger.warning(
                "Jet %s: no tracks left after sorting by %s",
                jet.jet_id,
                self.sort_criterion.value,
            )
        tracks = jet.sorted_tracks(indices)
        statuses = [
            TrackStatus.USED_FOR_FIT
            if self.track_selector(track, jet.ip_data[orig], jet_dir)
            else TrackStatus.SELECTED
            for track, orig in zip(tracks, indices, strict=True)
        ]

        fit_input = [
            self.track_builder(track)
            for track, status in zip(tracks, statuses, strict=True)
            if status is TrackStatus.USED_FOR_FIT
        ]
        candidates = self._fit_candidates(jet, fit_input, pv)
        accepted = [sv for sv in candidates if self.vertex_filter(pv, sv, jet_dir)]
        best = self.vertex_selector(accepted)

        vertex_data: tuple[VertexData, ...] = ()
        if best is not None:
            vertex_data = (
                VertexData(
                    vertex=best,
                    dist2d=best.dist2d,
                    dist3d=best.dist3d,
                    direction=sub3(best.position, pv.position),
                ),
            )
            positions = {t.track_id: i for i, t in enumerate(tracks)}
            for member in best.tracks:
                pos = positions.get(member.track_id)
                if pos is None:
                    raise TrackNotFoundError(
                        f"Could not find track '{member.track_id}' of the secondary "
                        f"vertex in the original tracks of jet '{jet.jet_id}'."
                    )
                statuses[pos] = TrackStatus.ASSOCIATED_TO_VERTEX
            logger.debug(
                "Jet %s: chose vertex with %d tracks, dist3d=%.4g (sig %.3g)",
                jet.jet_id,
                len(best.tracks),
                best.dist3d.value,
                best.dist3d.significance,
            )

        return JetVertexingResult(
            jet_id=jet.jet_id,
            track_data=tuple(TrackData(i, s) for i, s in enumerate(statuses)),
            vertex_data=vertex_data,
            n_vertex_candidates=len(accepted),
            source_index=source_index,
            sorted_track_ids=tuple(t.track_id for t in tracks),
            primary_vertex_id=pv.pv_id,
            event_id=event_id,
        )

    def _fit_candidates(
        self,
        jet: JetTrackInfo,
        fit_input: Sequence[TransientTrack],
        pv: PrimaryVertex,
    ) -> list[SecondaryVertexCandidate]:
        """Fit the selected tracks and turn each fitted vertex into a candidate."""
        assert self.vertex_reconstructor is not None
        outcome = fit_tracks(self.vertex_reconstructor, fit_input)
        if outcome.failed:
            logger.debug("Jet %s: vertex fit failed: %s", jet.jet_id, outcome.error)
            return []
        candidates: list[SecondaryVertexCandidate] = []
        for fitted in outcome.vertices:
            try:
                candidates.append(
                    build_candidate(
                        fitted,
                        pv,
                        jet.jet_momentum,
                        self.config.use_pv_error,
                        self.significance_mode,
                    )
                )
            except CovarianceError as exc:
                logger.debug("Jet %s: dropping fitted vertex: %s", jet.jet_id, exc)
        return candidates


def resolve_primary_vertex(jet: JetTrackInfo, fallback: PrimaryVertex) -> PrimaryVertex:
    """Return the jet's PV when present and valid, otherwise `fallback`."""
    if jet.primary_vertex is not None and jet.primary_vertex.is_valid:
        return jet.primary_vertex
    return fallback
