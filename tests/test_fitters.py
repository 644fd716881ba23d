"""Unit tests for the reference adaptive vertex fitters and the fit boundary."""

from __future__ import annotations

import unittest

from svreco import (
    AdaptiveVertexFitter,
    AdaptiveVertexReconstructor,
    ConfigurationError,
    Track,
    VertexFitError,
    build_transient_track,
    build_vertex_reconstructor,
    fit_tracks,
)


def _line_track(track_id: str, vertex, direction, offset: float = 1.0, sigma: float = 0.01) -> Track:
    """Track whose reference point lies `offset` along `direction` from `vertex`."""
    return Track(
        track_id,
        x=vertex[0] + offset * direction[0],
        y=vertex[1] + offset * direction[1],
        z=vertex[2] + offset * direction[2],
        px=direction[0],
        py=direction[1],
        pz=direction[2],
        position_error=sigma,
    )


VERTEX = (0.1, 0.0, 0.0)
DIRECTIONS = ((1.0, 0.0, 0.0), (0.0, 0.6, 0.8), (0.6, 0.8, 0.0))


def _concurrent_tracks():
    return [
        build_transient_track(_line_track(f"t{i}", VERTEX, d, offset=0.5 + 0.1 * i))
        for i, d in enumerate(DIRECTIONS)
    ]


class TestAdaptiveVertexFitter(unittest.TestCase):
    """Validate the single adaptive fit."""

    def test_concurrent_tracks_meet_at_vertex(self) -> None:
        """Lines through one point must be fitted to that point."""
        vertex = AdaptiveVertexFitter().fit(_concurrent_tracks())
        self.assertAlmostEqual(vertex.x, VERTEX[0], places=6)
        self.assertAlmostEqual(vertex.y, VERTEX[1], places=6)
        self.assertAlmostEqual(vertex.z, VERTEX[2], places=6)
        self.assertEqual([t.track_id for t in vertex.tracks], ["t0", "t1", "t2"])
        self.assertTrue(all(w > 0.9 for w in vertex.weights.values()))
        self.assertGreater(vertex.cov3[0][0], 0.0)

    def test_outlier_track_is_downweighted(self) -> None:
        """A track far from the common vertex ends with a negligible weight."""
        tracks = _concurrent_tracks()
        tracks.append(build_transient_track(_line_track("stray", (0.1, 1.0, 0.0), (1.0, 0.0, 0.0))))
        vertex = AdaptiveVertexFitter().fit(tracks)

        self.assertNotIn("stray", vertex.weights)
        self.assertAlmostEqual(vertex.y, 0.0, places=3)

    def test_single_track_is_degenerate(self) -> None:
        with self.assertRaises(VertexFitError):
            AdaptiveVertexFitter().fit(_concurrent_tracks()[:1])

    def test_parallel_tracks_are_degenerate(self) -> None:
        tracks = [
            build_transient_track(_line_track("a", (0.0, 0.0, 0.0), (0.0, 0.0, 1.0))),
            build_transient_track(_line_track("b", (0.01, 0.0, 0.0), (0.0, 0.0, 1.0))),
        ]
        with self.assertRaises(VertexFitError):
            AdaptiveVertexFitter().fit(tracks)

    def test_incompatible_tracks_are_degenerate(self) -> None:
        """Two tracks 1 cm apart cannot keep two significant weights."""
        tracks = [
            build_transient_track(_line_track("a", (0.0, 0.0, 0.0), (1.0, 0.0, 0.0))),
            build_transient_track(_line_track("b", (0.0, 1.0, 0.0), (0.0, 0.0, 1.0))),
        ]
        with self.assertRaises(VertexFitError):
            AdaptiveVertexFitter().fit(tracks)


class TestVertexReconstruction(unittest.TestCase):
    """Validate the iterated reconstructor, the factory and the fit boundary."""

    def test_reconstructor_assigns_tracks_once(self) -> None:
        tracks = _concurrent_tracks()
        tracks.append(build_transient_track(_line_track("stray", (0.1, 1.0, 0.0), (1.0, 0.0, 0.0))))
        vertices = AdaptiveVertexReconstructor().vertices(tracks)

        self.assertEqual(len(vertices), 1)
        self.assertEqual({t.track_id for t in vertices[0].tracks}, {"t0", "t1", "t2"})
        self.assertAlmostEqual(vertices[0].x, VERTEX[0], places=3)

    def test_reconstructor_keeps_only_assigned_members(self) -> None:
        """A nearby track with a small but non-negligible weight is not a member."""
        tracks = _concurrent_tracks()
        tracks.append(build_transient_track(_line_track("near", (0.1, 0.03, 0.0), (1.0, 0.0, 0.0))))

        fitted = AdaptiveVertexFitter(cut=1.8).fit(tracks)
        self.assertIn("near", fitted.weights)
        self.assertLess(fitted.weights["near"], 0.5)

        [vertex] = AdaptiveVertexReconstructor().vertices(tracks)
        self.assertEqual([t.track_id for t in vertex.tracks], ["t0", "t1", "t2"])
        self.assertEqual(set(vertex.weights), {"t0", "t1", "t2"})
        self.assertTrue(all(w >= 0.5 for w in vertex.weights.values()))

    def test_reconstructor_with_too_few_tracks_finds_nothing(self) -> None:
        self.assertEqual(AdaptiveVertexReconstructor().vertices(_concurrent_tracks()[:1]), [])

    def test_fit_boundary_converts_degenerate_fits(self) -> None:
        outcome = fit_tracks(AdaptiveVertexFitter(), _concurrent_tracks()[:1])
        self.assertTrue(outcome.failed)
        self.assertEqual(outcome.vertices, ())
        self.assertIn("at least two tracks", outcome.error)

    def test_fit_boundary_passes_vertices_through(self) -> None:
        outcome = fit_tracks(AdaptiveVertexFitter(), _concurrent_tracks())
        self.assertFalse(outcome.failed)
        self.assertEqual(len(outcome.vertices), 1)

    def test_factory_builds_configured_finders(self) -> None:
        avf = build_vertex_reconstructor({"finder": "avf", "cut": 2.5, "Tini": 64, "maxIterations": 20})
        self.assertIsInstance(avf, AdaptiveVertexFitter)
        self.assertEqual(avf.cut, 2.5)
        self.assertEqual(avf.t_ini, 64.0)
        self.assertEqual(avf.max_iterations, 20)

        avr = build_vertex_reconstructor({"finder": "avr", "primcut": 2.0, "seccut": 5.0, "weightthreshold": 0.01})
        self.assertIsInstance(avr, AdaptiveVertexReconstructor)
        self.assertEqual(avr.primcut, 2.0)
        self.assertEqual(avr.fitter_options, {"min_weight": 0.01})

    def test_factory_rejects_bad_configuration(self) -> None:
        with self.assertRaises(ConfigurationError):
            build_vertex_reconstructor({"finder": "kalman"})
        with self.assertRaises(ConfigurationError):
            build_vertex_reconstructor({"finder": "avf", "primcut": 1.8})
        with self.assertRaises(ConfigurationError):
            build_vertex_reconstructor({"finder": "avr", "cut": 3.0})


if __name__ == "__main__":
    unittest.main()
