from __future__ import annotations

import unittest

from tests.unit._bootstrap import ensure_project_on_path


ensure_project_on_path()


class TestElevationAccumulation(unittest.TestCase):
    def test_small_steps_accumulate_until_threshold(self) -> None:
        from core.characterize import elevation_gain_loss

        gain, loss = elevation_gain_loss([0.0, 1.0, 2.0, 3.0, 4.0], 3.0)
        self.assertEqual((gain, loss), (3.0, 0.0))

    def test_noise_below_threshold_is_ignored(self) -> None:
        from core.characterize import elevation_gain_loss

        self.assertEqual(elevation_gain_loss([0.0, 2.0, 0.0, 2.0, 0.0], 3.0), (0.0, 0.0))

    def test_gain_and_loss(self) -> None:
        from core.characterize import elevation_gain_loss

        gain, loss = elevation_gain_loss([100.0, 110.0, 104.0, 104.5, 98.0], 3.0)
        self.assertAlmostEqual(gain, 10.0)
        self.assertAlmostEqual(loss, 12.0)

    def test_degenerate_inputs(self) -> None:
        from core.characterize import elevation_gain_loss

        self.assertEqual(elevation_gain_loss([], 3.0), (0.0, 0.0))
        self.assertEqual(elevation_gain_loss([5.0], 3.0), (0.0, 0.0))


class TestGradientStats(unittest.TestCase):
    def test_short_edges_are_skipped(self) -> None:
        import numpy as np

        from core.characterize import edge_gradients

        grads = edge_gradients(np.array([0.0, 10.0, 12.0, 22.0]), np.array([0.0, 1.0, 5.0, 6.0]), 5.0)
        self.assertTrue(np.allclose(grads, [10.0, 10.0]))

    def test_sample_std_uses_n_minus_one(self) -> None:
        from core.characterize import sample_std

        self.assertAlmostEqual(sample_std([1.0, 3.0]), 2.0**0.5)
        self.assertEqual(sample_std([4.0]), 0.0)


class TestTerrainClassification(unittest.TestCase):
    def test_decision_sequence(self) -> None:
        from core.characterize import classify_terrain

        self.assertEqual(classify_terrain(0.5, 4.0, 5.0, 1000.0), "rolling")
        self.assertEqual(classify_terrain(5.0, 4.0, 50.0, 1000.0), "climb")
        self.assertEqual(classify_terrain(1.0, 1.0, 40.0, 1000.0), "climb")
        self.assertEqual(classify_terrain(-5.0, 1.0, 0.0, 1000.0), "descent")
        self.assertEqual(classify_terrain(-4.0, 1.0, 0.0, 1000.0), "descent")
        self.assertEqual(classify_terrain(0.5, 1.0, 5.0, 1000.0), "flat")
        self.assertEqual(classify_terrain(3.0, 2.5, 10.0, 1000.0), "rolling")

    def test_thresholds_come_from_config(self) -> None:
        from core.characterize import classify_terrain
        from core.config import DetectionConfig

        config = DetectionConfig(climb_threshold_pct=2.5)
        self.assertEqual(classify_terrain(3.0, 1.0, 10.0, 1000.0, config), "climb")


class TestNormalizedPower(unittest.TestCase):
    def test_falls_back_to_average_under_min_samples(self) -> None:
        from core.characterize import normalized_power

        self.assertAlmostEqual(normalized_power([100.0, 200.0, 300.0]), 200.0)
        self.assertEqual(normalized_power([]), 0.0)

    def test_constant_power(self) -> None:
        from core.characterize import normalized_power

        self.assertAlmostEqual(normalized_power([250.0] * 120), 250.0)

    def test_variable_power_exceeds_average(self) -> None:
        from core.characterize import normalized_power

        power = ([100.0] * 30 + [400.0] * 30) * 4
        self.assertGreater(normalized_power(power), sum(power) / len(power))


class TestTurnsAndQuality(unittest.TestCase):
    def test_sharp_turns_are_counted(self) -> None:
        from core.characterize import count_sharp_turns

        # Nord, puis est, puis nord: deux virages a 90 degres.
        lat = [45.0, 45.001, 45.001, 45.002]
        lng = [6.0, 6.0, 6.0015, 6.0015]
        self.assertEqual(count_sharp_turns(lat, lng, 45.0), 2)
        self.assertEqual(count_sharp_turns(lat[:2], lng[:2], 45.0), 0)

    def test_quality_score_penalties(self) -> None:
        from core.characterize import quality_score

        self.assertEqual(quality_score(2500.0, 600.0, 1.0, 0, 0), 100)
        self.assertEqual(quality_score(1500.0, 250.0, 4.0, 1, 2), 100 - 5 - 5 - 10 - 5 - 5)
        # distance -15, duree -15, variabilite -20, arrets -25, virages -15
        self.assertEqual(quality_score(800.0, 120.0, 6.0, 3, 3), 10)

    def test_quality_score_is_clamped(self) -> None:
        from core.characterize import quality_score

        self.assertEqual(quality_score(0.0, 0.0, 10.0, 0, 0), 100 - 15 - 15 - 20)
        self.assertGreaterEqual(quality_score(100.0, 10.0, 50.0, 20, 20), 0)


class TestSegmentCharacterizer(unittest.TestCase):
    def _characterize(self, streams):
        from core.candidates import build_candidates
        from core.gradients import compute_gradients, find_boundaries
        from core.characterize import characterize_segment
        from core.stops import detect_stops
        from core.streams import build_stream_frame, smooth_elevation

        frame = build_stream_frame(streams)
        smooth_elevation(frame, 5)
        stops = detect_stops(frame)
        boundaries = find_boundaries(frame, compute_gradients(frame), stops)
        candidate = build_candidates(boundaries)[0]
        return frame, candidate, stops, characterize_segment(frame, candidate, stops)

    def test_climb_segment(self) -> None:
        from tests.unit._streams import profile_streams, sensor_channels

        streams = profile_streams([(2000.0, 6.0)], speed=4.0)
        streams.update(sensor_channels(len(streams["coords"])))
        _frame, _candidate, _stops, segment = self._characterize(streams)

        self.assertEqual(segment.terrain_type, "climb")
        self.assertAlmostEqual(segment.avg_gradient, 6.0, delta=0.3)
        self.assertGreater(segment.elevation_gain, 100.0)
        self.assertEqual(segment.elevation_loss, 0.0)
        self.assertAlmostEqual(segment.avg_speed_kmh, 14.4)
        self.assertEqual(segment.duration_seconds, 500)
        self.assertEqual(segment.avg_hr, 145)
        self.assertEqual(segment.avg_cadence, 88)
        self.assertTrue(200 <= segment.avg_power <= 240)
        self.assertAlmostEqual(segment.normalized_power, segment.avg_power, delta=10)
        self.assertEqual(segment.sharp_turn_count, 0)
        self.assertGreaterEqual(segment.quality_score, 95)

    def test_coordinates_are_lng_lat_pairs(self) -> None:
        from tests.unit._streams import flat_streams

        frame, candidate, _stops, segment = self._characterize(flat_streams(120))
        self.assertEqual(len(segment.coordinates), candidate.end_idx - candidate.start_idx + 1)
        lng, lat = segment.coordinates[0]
        self.assertAlmostEqual(lng, 6.0)
        self.assertAlmostEqual(lat, segment.start_lat)
        self.assertEqual((segment.end_lng, segment.end_lat), segment.coordinates[-1])

    def test_missing_sensors_give_zero(self) -> None:
        from tests.unit._streams import flat_streams

        _frame, _candidate, _stops, segment = self._characterize(flat_streams(120))
        self.assertEqual(
            (segment.avg_power, segment.max_power, segment.normalized_power, segment.avg_hr, segment.avg_cadence),
            (0, 0, 0, 0, 0),
        )

    def test_embedded_stops(self) -> None:
        from tests.unit._streams import flat_streams, with_dwells

        _frame, _candidate, stops, segment = self._characterize(with_dwells(flat_streams(200), [50, 120]))
        self.assertEqual(segment.stop_count, 2)
        self.assertEqual(segment.stops, tuple(stops))
        self.assertAlmostEqual(segment.stops_per_km, round(2 / 1.99, 2))

    def test_characterizer_is_idempotent(self) -> None:
        from core.characterize import characterize_segment
        from tests.unit._streams import profile_streams, sensor_channels

        streams = profile_streams([(800.0, 0.0), (800.0, 5.0)])
        streams.update(sensor_channels(len(streams["coords"])))
        frame, candidate, stops, first = self._characterize(streams)
        second = characterize_segment(frame, candidate, stops)
        self.assertEqual(first, second)


if __name__ == "__main__":
    unittest.main()
