from __future__ import annotations

import unittest

from tests.unit._bootstrap import ensure_project_on_path


ensure_project_on_path()


class TestGradientCalculator(unittest.TestCase):
    def test_constant_grade_is_recovered(self) -> None:
        from core.gradients import compute_gradients
        from core.streams import build_stream_frame
        from tests.unit._streams import profile_streams

        frame = build_stream_frame(profile_streams([(1000.0, 6.0)]))
        grads = compute_gradients(frame)
        self.assertEqual(len(grads), len(frame))
        self.assertAlmostEqual(float(grads[50]), 6.0, places=6)
        # Fenetre tronquee en bord de trace, pente toujours exacte.
        self.assertAlmostEqual(float(grads[0]), 6.0, places=6)

    def test_sparse_window_gives_zero(self) -> None:
        from core.gradients import compute_gradients
        from core.streams import build_stream_frame
        from tests.unit._streams import northward_coords

        frame = build_stream_frame(
            {"coords": northward_coords(2, step_m=5.0), "elevation": [0.0, 5.0], "speed": [5.0, 5.0]}
        )
        self.assertEqual(compute_gradients(frame).tolist(), [0.0, 0.0])


class TestGradientBoundaryTracker(unittest.TestCase):
    def _tracker(self, seed: float = 0.0):
        import numpy as np

        from core.gradients import GradientBoundaryTracker

        return GradientBoundaryTracker(np.arange(0.0, 2000.0, 10.0), seed)

    def test_isolated_spike_is_ignored(self) -> None:
        tracker = self._tracker()
        emitted = [tracker.step(i, 10.0 if 50 <= i < 53 else 0.0) for i in range(1, 120)]
        self.assertTrue(all(b is None for b in emitted))
        self.assertEqual(tracker.sustained_m, 0.0)

    def test_sustained_change_emits_where_it_began(self) -> None:
        tracker = self._tracker()
        emitted = [(i, tracker.step(i, 6.0 if i >= 50 else 0.0)) for i in range(1, 120)]
        boundaries = [(i, b) for i, b in emitted if b is not None]

        self.assertEqual(len(boundaries), 1)
        at, boundary = boundaries[0]
        # 20 pas de 10 m pour atteindre 200 m soutenus.
        self.assertEqual(at, 69)
        self.assertEqual(boundary.index, 49)
        self.assertAlmostEqual(boundary.distance_m, 490.0)
        self.assertEqual(boundary.reason, "gradient_change")
        self.assertAlmostEqual(tracker.rolling_gradient, 6.0)

    def test_small_drift_decays_rolling_average(self) -> None:
        tracker = self._tracker(seed=0.0)
        self.assertIsNone(tracker.step(1, 2.0))
        self.assertAlmostEqual(tracker.rolling_gradient, 0.2)

    def test_seed_is_mean_of_first_gradients(self) -> None:
        import numpy as np

        from core.gradients import GradientBoundaryTracker

        grads = [1.0] * 10 + [50.0] * 5
        tracker = GradientBoundaryTracker.from_gradients(np.arange(15.0) * 10.0, grads)
        self.assertAlmostEqual(tracker.rolling_gradient, 1.0)


class TestBoundaryDeduplication(unittest.TestCase):
    def test_higher_priority_reason_wins_collision(self) -> None:
        from core.gradients import deduplicate_boundaries
        from core.models import BoundaryPoint

        result = deduplicate_boundaries(
            [
                BoundaryPoint(index=50, distance_m=500.0, reason="end"),
                BoundaryPoint(index=12, distance_m=120.0, reason="extended_stop"),
                BoundaryPoint(index=10, distance_m=100.0, reason="gradient_change"),
                BoundaryPoint(index=0, distance_m=0.0, reason="start"),
            ],
            50.0,
        )
        self.assertEqual([b.reason for b in result], ["start", "extended_stop", "end"])
        self.assertEqual(result[1].index, 12)

    def test_lower_priority_boundary_is_dropped(self) -> None:
        from core.gradients import deduplicate_boundaries
        from core.models import BoundaryPoint

        result = deduplicate_boundaries(
            [
                BoundaryPoint(index=0, distance_m=0.0, reason="start"),
                BoundaryPoint(index=3, distance_m=30.0, reason="extended_stop"),
                BoundaryPoint(index=40, distance_m=400.0, reason="extended_stop"),
                BoundaryPoint(index=42, distance_m=420.0, reason="gradient_change"),
                BoundaryPoint(index=90, distance_m=900.0, reason="end"),
            ],
            50.0,
        )
        # Le debut n'est jamais remplace.
        self.assertEqual([b.index for b in result], [0, 40, 90])

    def test_two_boundaries_are_only_sorted(self) -> None:
        from core.gradients import deduplicate_boundaries
        from core.models import BoundaryPoint

        result = deduplicate_boundaries(
            [
                BoundaryPoint(index=2, distance_m=20.0, reason="end"),
                BoundaryPoint(index=0, distance_m=0.0, reason="start"),
            ],
            50.0,
        )
        self.assertEqual([b.reason for b in result], ["start", "end"])


class TestBoundaryFinder(unittest.TestCase):
    def test_flat_trace_has_only_start_and_end(self) -> None:
        from core.gradients import compute_gradients, find_boundaries
        from core.streams import build_stream_frame
        from tests.unit._streams import flat_streams

        frame = build_stream_frame(flat_streams(200))
        boundaries = find_boundaries(frame, compute_gradients(frame), [])
        self.assertEqual([(b.index, b.reason) for b in boundaries], [(0, "start"), (199, "end")])

    def test_extended_stop_becomes_boundary(self) -> None:
        from core.gradients import compute_gradients, find_boundaries
        from core.stops import detect_stops
        from core.streams import build_stream_frame
        from tests.unit._streams import flat_streams, with_dwells

        frame = build_stream_frame(with_dwells(flat_streams(200), [100], length=6))
        stops = detect_stops(frame)
        self.assertGreaterEqual(stops[0].duration_s, 30)

        boundaries = find_boundaries(frame, compute_gradients(frame), stops)
        self.assertEqual([b.reason for b in boundaries], ["start", "extended_stop", "end"])
        self.assertEqual(boundaries[1].index, 100)

    def test_grade_change_splits_trace(self) -> None:
        from core.gradients import compute_gradients, find_boundaries
        from core.streams import build_stream_frame, smooth_elevation
        from tests.unit._streams import profile_streams

        frame = build_stream_frame(profile_streams([(1500.0, 0.0), (1500.0, 8.0), (1500.0, 0.0)]))
        smooth_elevation(frame, 5)
        boundaries = find_boundaries(frame, compute_gradients(frame), [])

        changes = [b for b in boundaries if b.reason == "gradient_change"]
        self.assertEqual(len(changes), 2)
        self.assertTrue(1300.0 <= changes[0].distance_m <= 1700.0, changes[0])
        self.assertTrue(2800.0 <= changes[1].distance_m <= 3200.0, changes[1])


if __name__ == "__main__":
    unittest.main()
