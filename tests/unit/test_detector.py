from __future__ import annotations

import unittest

from tests.unit._bootstrap import ensure_project_on_path


ensure_project_on_path()


class TestSegmentDetector(unittest.TestCase):
    def test_too_few_points_gives_empty_result(self) -> None:
        from core.detector import detect_segments
        from tests.unit._streams import flat_streams

        result = detect_segments(flat_streams(9))
        self.assertEqual(result.segments, [])
        self.assertEqual(result.stops, [])
        self.assertEqual(result.total_points, 9)

        empty = detect_segments({"coords": []})
        self.assertEqual((empty.segments, empty.total_points), ([], 0))

    def test_totals(self) -> None:
        from core.detector import SegmentDetector
        from tests.unit._streams import flat_streams

        result = SegmentDetector().detect(flat_streams(301, speed=5.0))
        self.assertEqual(result.total_points, 301)
        self.assertAlmostEqual(result.total_distance_m, 3000.0, places=3)
        self.assertAlmostEqual(result.total_duration_s, 600.0, places=3)

    def test_flat_climb_flat(self) -> None:
        from core.detector import detect_segments
        from tests.unit._streams import profile_streams

        result = detect_segments(profile_streams([(1500.0, 0.0), (1500.0, 8.0), (1500.0, 0.0)]))
        self.assertEqual([s.terrain_type for s in result.segments], ["flat", "climb", "flat"])

        # Segments contigus couvrant toute la trace.
        self.assertEqual(result.segments[0].start_idx, 0)
        self.assertEqual(result.segments[-1].end_idx, result.total_points - 1)
        for prev, cur in zip(result.segments, result.segments[1:]):
            self.assertEqual(prev.end_idx, cur.start_idx)

    def test_long_stop_splits_trace(self) -> None:
        from core.detector import detect_segments
        from tests.unit._streams import flat_streams, with_dwells

        result = detect_segments(with_dwells(flat_streams(200), [100], length=6))
        self.assertEqual(len(result.segments), 2)
        self.assertEqual(result.segments[0].end_idx, 100)
        self.assertEqual(len(result.stops), 1)

    def test_custom_config_is_used(self) -> None:
        from core.config import DetectionConfig
        from core.detector import SegmentDetector
        from tests.unit._streams import flat_streams

        detector = SegmentDetector(DetectionConfig(min_stream_points=500))
        self.assertEqual(detector.detect(flat_streams(300)).segments, [])

    def test_detection_is_deterministic(self) -> None:
        from core.detector import detect_segments
        from tests.unit._streams import profile_streams, sensor_channels, with_dwells

        streams = with_dwells(profile_streams([(1200.0, 1.0), (1200.0, 6.0)]), [40, 170])
        streams.update(sensor_channels(len(streams["coords"])))
        self.assertEqual(detect_segments(streams), detect_segments(streams))


if __name__ == "__main__":
    unittest.main()
