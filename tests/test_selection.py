"""Unit tests for track qualification, vertex filtering and vertex selection."""

from __future__ import annotations

import unittest

from svreco import (
    ConfigurationError,
    FittedVertex,
    ImpactParameterRecord,
    Measurement1D,
    PrimaryVertex,
    SecondaryVertexCandidate,
    Track,
    TrackSelection,
    TrackSelector,
    V0Filter,
    VertexCuts,
    VertexFilter,
    VertexSelection,
    VertexSelector,
    build_candidate,
)


def _cov3(scale: float = 1e-4):
    return ((scale, 0.0, 0.0), (0.0, scale, 0.0), (0.0, 0.0, scale))


def _pv(track_ids: tuple[str, ...] = ()) -> PrimaryVertex:
    return PrimaryVertex(pv_id="pv0", x=0.0, y=0.0, z=0.0, cov3=_cov3(), track_ids=track_ids)


def _track(track_id: str, **kwargs) -> Track:
    values = dict(x=0.0, y=0.0, z=0.0, px=3.0, py=0.0, pz=1.0, n_valid_hits=10, n_pixel_hits=3)
    values.update(kwargs)
    return Track(track_id, **values)


def _ip(sig2d: float = 5.0, sig3d: float = 5.0) -> ImpactParameterRecord:
    return ImpactParameterRecord(
        ip2d=Measurement1D(0.01 * sig2d, 0.01),
        ip3d=Measurement1D(0.01 * sig3d, 0.01),
        distance_to_jet_axis=Measurement1D(0.01, 0.001),
        decay_length=0.5,
    )


def _candidate(position, tracks, weights=None, jet=(1.0, 0.0, 0.0), pv=None) -> SecondaryVertexCandidate:
    fitted = FittedVertex(
        x=position[0], y=position[1], z=position[2], cov3=_cov3(), tracks=tuple(tracks), weights=weights or {}
    )
    return build_candidate(fitted, pv or _pv(), jet, with_pv_error=True)


class TestTrackSelector(unittest.TestCase):
    """Validate per-track cuts."""

    def test_default_selection_accepts_everything(self) -> None:
        """Unset thresholds are not applied."""
        self.assertTrue(TrackSelector()(_track("t"), _ip(-3.0, -3.0)))

    def test_hit_and_pt_requirements(self) -> None:
        """Hit counts and pT are compared against their minimums."""
        selector = TrackSelector(TrackSelection(min_total_hits=8, min_pixel_hits=2, min_pt=1.0))
        self.assertTrue(selector(_track("ok"), _ip()))
        self.assertFalse(selector(_track("few-pixels", n_pixel_hits=1), _ip()))
        self.assertFalse(selector(_track("few-hits", n_valid_hits=7), _ip()))
        self.assertFalse(selector(_track("soft", px=0.5, pz=0.1), _ip()))

    def test_impact_parameter_windows(self) -> None:
        """IP significance windows bound the eligible tracks on both sides."""
        selector = TrackSelector(TrackSelection(min_ip3d_sig=2.0, max_ip3d_sig=50.0))
        self.assertTrue(selector(_track("t"), _ip(sig3d=10.0)))
        self.assertFalse(selector(_track("t"), _ip(sig3d=1.0)))
        self.assertFalse(selector(_track("t"), _ip(sig3d=80.0)))

    def test_quality_class(self) -> None:
        """Tracks must reach the configured quality rank."""
        selector = TrackSelector(TrackSelection(quality_class="tight"))
        self.assertTrue(selector(_track("hp", quality="highPurity"), _ip()))
        self.assertFalse(selector(_track("loose", quality="loose"), _ip()))

    def test_unknown_quality_class_is_a_configuration_error(self) -> None:
        with self.assertRaises(ConfigurationError):
            TrackSelector(TrackSelection(quality_class="superb"))

    def test_inverted_window_is_a_configuration_error(self) -> None:
        with self.assertRaises(ConfigurationError):
            TrackSelector(TrackSelection(min_ip2d_sig=5.0, max_ip2d_sig=1.0))

    def test_jet_delta_r_needs_a_jet_direction(self) -> None:
        """The track-jet distance cut only applies when a jet axis is given."""
        selector = TrackSelector(TrackSelection(max_jet_delta_r=0.3))
        track = _track("t", px=0.0, py=3.0, pz=0.0)
        self.assertTrue(selector(track, _ip()))
        self.assertFalse(selector(track, _ip(), (1.0, 0.0, 0.0)))
        self.assertTrue(selector(track, _ip(), (0.0, 1.0, 0.0)))


class TestVertexFilter(unittest.TestCase):
    """Validate candidate-level cuts."""

    def setUp(self) -> None:
        self.tracks = [_track("a", px=2.0, py=0.2, pz=0.1, charge=1), _track("b", px=2.0, py=-0.2, pz=0.1, charge=1)]

    def test_multiplicity_counts_weighted_tracks(self) -> None:
        """Tracks under the weight threshold do not count towards multiplicity."""
        sv = _candidate((0.5, 0.0, 0.0), self.tracks, weights={"a": 0.9, "b": 0.3})
        self.assertFalse(VertexFilter(VertexCuts(min_multiplicity=2))(_pv(), sv, (1.0, 0.0, 0.0)))
        self.assertTrue(
            VertexFilter(VertexCuts(min_multiplicity=2, use_track_weights=False))(_pv(), sv, (1.0, 0.0, 0.0))
        )

    def test_undefined_errors_are_rejected(self) -> None:
        sv = _candidate((0.0, 0.0, 0.0), self.tracks)
        self.assertFalse(VertexFilter()(_pv(), sv, (1.0, 0.0, 0.0)))

    def test_flight_distance_significance(self) -> None:
        """2D significance is about 0.5 / sqrt(2e-4) ~ 35 here."""
        sv = _candidate((0.5, 0.0, 0.0), self.tracks)
        self.assertTrue(VertexFilter(VertexCuts(min_dist2d_sig=3.0))(_pv(), sv, (1.0, 0.0, 0.0)))
        self.assertFalse(VertexFilter(VertexCuts(min_dist2d_sig=50.0))(_pv(), sv, (1.0, 0.0, 0.0)))

    def test_backward_vertex_fails_minimum_distance(self) -> None:
        """Signed distances are used for the flight-distance window."""
        sv = _candidate((0.5, 0.0, 0.0), self.tracks, jet=(-1.0, 0.0, 0.0))
        self.assertFalse(VertexFilter(VertexCuts(min_dist2d_value=0.01))(_pv(), sv, (-1.0, 0.0, 0.0)))

    def test_delta_r_to_jet_axis(self) -> None:
        sv = _candidate((0.5, 0.0, 0.0), self.tracks)
        cuts = VertexCuts(max_delta_r_to_jet_axis=0.5)
        self.assertTrue(VertexFilter(cuts)(_pv(), sv, (1.0, 0.1, 0.0)))
        self.assertFalse(VertexFilter(cuts)(_pv(), sv, (0.0, 1.0, 0.0)))

    def test_mass_cut(self) -> None:
        """Vertex mass is computed with the pion hypothesis."""
        sv = _candidate((0.5, 0.0, 0.0), self.tracks)
        self.assertTrue(VertexFilter(VertexCuts(max_mass=6.5))(_pv(), sv, (1.0, 0.0, 0.0)))
        self.assertFalse(VertexFilter(VertexCuts(max_mass=0.2))(_pv(), sv, (1.0, 0.0, 0.0)))

    def test_tracks_shared_with_primary_vertex(self) -> None:
        sv = _candidate((0.5, 0.0, 0.0), self.tracks)
        cuts = VertexCuts(max_fraction_pv=0.65)
        self.assertTrue(VertexFilter(cuts)(_pv(("a",)), sv, (1.0, 0.0, 0.0)))
        self.assertFalse(VertexFilter(cuts)(_pv(("a", "b")), sv, (1.0, 0.0, 0.0)))

    def test_v0_veto(self) -> None:
        """An opposite-charge pion pair at the K0S mass is vetoed."""
        k0s = [
            _track("p", px=0.206, py=0.0, pz=0.0, charge=1),
            _track("m", px=-0.206, py=0.0, pz=0.0, charge=-1),
        ]
        same_sign = [
            _track("p", px=0.206, py=0.0, pz=0.0, charge=1),
            _track("m", px=-0.206, py=0.0, pz=0.0, charge=1),
        ]
        self.assertFalse(V0Filter(0.05)(k0s))
        self.assertTrue(V0Filter(0.05)(same_sign))

        sv = _candidate((0.5, 0.0, 0.0), k0s)
        self.assertFalse(VertexFilter(VertexCuts(k0s_mass_window=0.05))(_pv(), sv, (1.0, 0.0, 0.0)))
        self.assertTrue(VertexFilter(VertexCuts())(_pv(), sv, (1.0, 0.0, 0.0)))

    def test_candidates_are_judged_independently(self) -> None:
        """Rejecting one candidate does not influence the next one."""
        vf = VertexFilter(VertexCuts(min_dist2d_sig=3.0))
        bad = _candidate((0.0, 0.0, 0.0), self.tracks)
        good = _candidate((0.5, 0.0, 0.0), self.tracks)
        self.assertEqual([vf(_pv(), sv, (1.0, 0.0, 0.0)) for sv in (bad, good, bad)], [False, True, False])


class TestVertexSelector(unittest.TestCase):
    """Validate the ranking policies."""

    @staticmethod
    def _sv(tag: str, value: float, error: float) -> SecondaryVertexCandidate:
        fitted = FittedVertex(
            x=value, y=0.0, z=0.0, cov3=_cov3(), tracks=(_track(tag),)
        )
        m = Measurement1D(value, error)
        return SecondaryVertexCandidate(fitted, m, m, (value, 0.0, 0.0), (1.0, 0.0, 0.0))

    def test_empty_input_selects_nothing(self) -> None:
        self.assertIsNone(VertexSelector()([]))

    def test_significance_prefers_largest(self) -> None:
        svs = [self._sv("a", 0.5, 0.1), self._sv("b", 0.4, 0.02), self._sv("c", 1.0, 0.5)]
        self.assertIs(VertexSelector(VertexSelection("dist3dSignificance"))(svs), svs[1])

    def test_error_prefers_smallest(self) -> None:
        svs = [self._sv("a", 0.5, 0.1), self._sv("b", 0.4, 0.02), self._sv("c", 1.0, 0.01)]
        self.assertIs(VertexSelector(VertexSelection("dist3dError"))(svs), svs[2])

    def test_value_prefers_largest(self) -> None:
        svs = [self._sv("a", 0.5, 0.1), self._sv("b", 2.0, 0.5)]
        self.assertIs(VertexSelector(VertexSelection("dist2dValue"))(svs), svs[1])

    def test_ties_go_to_first_candidate(self) -> None:
        svs = [self._sv("a", 0.5, 0.1), self._sv("b", 0.5, 0.1)]
        for criterion in ("dist3dSignificance", "dist3dError", "dist2dValue"):
            self.assertIs(VertexSelector(VertexSelection(criterion))(svs), svs[0])

    def test_unknown_criterion_is_a_configuration_error(self) -> None:
        with self.assertRaises(ConfigurationError):
            VertexSelector(VertexSelection("mass"))


if __name__ == "__main__":
    unittest.main()
