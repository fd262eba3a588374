from __future__ import annotations

import unittest

from tests.unit._bootstrap import ensure_project_on_path


ensure_project_on_path()


class TestStreamBuilder(unittest.TestCase):
    def test_empty_coords_give_empty_frame(self) -> None:
        from core.contracts.stream_contract import STREAM_COLUMNS
        from core.streams import build_stream_frame

        frame = build_stream_frame({"coords": []})
        self.assertTrue(frame.empty)
        self.assertEqual(list(frame.columns), list(STREAM_COLUMNS))

    def test_ragged_channels_resolve_to_zero(self) -> None:
        from core.streams import build_stream_frame
        from tests.unit._streams import northward_coords

        frame = build_stream_frame(
            {
                "coords": northward_coords(4),
                "elevation": [100.0, None],
                "speed": [5.0, 5.0, 5.0, 5.0],
                "heartRate": [140, 141],
                "watts": [float("nan"), 200.0, 210.0],
            }
        )
        self.assertEqual(len(frame), 4)
        self.assertEqual(frame["elevation"].tolist(), [100.0, 0.0, 0.0, 0.0])
        self.assertEqual(frame["heart_rate"].tolist(), [140.0, 141.0, 0.0, 0.0])
        self.assertEqual(frame["power"].tolist(), [0.0, 200.0, 210.0, 0.0])
        self.assertEqual(frame["cadence"].tolist(), [0.0] * 4)
        self.assertFalse(frame.isna().any().any())

    def test_distance_is_cumulative_haversine(self) -> None:
        from core.streams import build_stream_frame
        from tests.unit._streams import northward_coords

        frame = build_stream_frame({"coords": northward_coords(5, step_m=25.0), "speed": [5.0] * 5})
        self.assertAlmostEqual(float(frame["distance_m"].iat[0]), 0.0)
        self.assertAlmostEqual(float(frame["distance_m"].iat[-1]), 100.0, places=5)

    def test_time_uses_previous_speed_then_default(self) -> None:
        from core.config import DetectionConfig
        from core.streams import build_stream_frame
        from tests.unit._streams import northward_coords

        frame = build_stream_frame(
            {"coords": northward_coords(3, step_m=10.0), "speed": [2.0]},
            DetectionConfig(default_speed_m_s=5.0),
        )
        elapsed = frame["elapsed_s"].tolist()
        self.assertAlmostEqual(elapsed[0], 0.0)
        # Point 1: pas de vitesse -> vitesse du point 0 (2 m/s).
        self.assertAlmostEqual(elapsed[1], 5.0, places=5)
        # Point 2: ni vitesse ni precedente -> defaut (5 m/s).
        self.assertAlmostEqual(elapsed[2], 7.0, places=5)
        self.assertEqual(frame["speed"].tolist(), [2.0, 0.0, 0.0])

    def test_stopped_points_accumulate_time_at_walking_pace(self) -> None:
        from core.streams import build_stream_frame
        from tests.unit._streams import northward_coords

        frame = build_stream_frame({"coords": northward_coords(3, step_m=14.0), "speed": [0.0, 0.0, 0.0]})
        self.assertAlmostEqual(float(frame["elapsed_s"].iat[-1]), 20.0, places=4)

    def test_bad_coords_raise_value_error(self) -> None:
        from core.streams import build_stream_frame

        with self.assertRaises(ValueError):
            build_stream_frame({"coords": [[6.0]]})

    def test_stream_points_iterate_rows(self) -> None:
        from core.streams import build_stream_frame, iter_stream_points
        from tests.unit._streams import northward_coords

        frame = build_stream_frame({"coords": northward_coords(3), "speed": [4.0] * 3})
        points = list(iter_stream_points(frame))
        self.assertEqual([p.index for p in points], [0, 1, 2])
        self.assertAlmostEqual(points[0].lng, 6.0)
        self.assertAlmostEqual(points[2].speed, 4.0)


class TestElevationSmoother(unittest.TestCase):
    def test_centered_window_with_shrinking_edges(self) -> None:
        import pandas as pd

        from core.streams import smooth_elevation

        frame = pd.DataFrame({"elevation": [0.0, 0.0, 10.0, 0.0, 0.0, 0.0]})
        smooth_elevation(frame, 5)
        values = frame["elevation"].tolist()
        self.assertAlmostEqual(values[0], 10.0 / 3.0)
        self.assertAlmostEqual(values[2], 2.0)
        self.assertAlmostEqual(values[5], 0.0)

    def test_short_frame_is_left_untouched(self) -> None:
        import pandas as pd

        from core.streams import smooth_elevation

        frame = pd.DataFrame({"elevation": [0.0, 10.0, 0.0]})
        smooth_elevation(frame, 5)
        self.assertEqual(frame["elevation"].tolist(), [0.0, 10.0, 0.0])


class TestStreamContract(unittest.TestCase):
    def test_built_frame_satisfies_contract(self) -> None:
        from core.contracts.stream_contract import validate_stream_frame
        from core.streams import build_stream_frame
        from tests.unit._streams import flat_streams

        report = validate_stream_frame(build_stream_frame(flat_streams(50)))
        self.assertTrue(report.ok, report.issues)

    def test_non_monotone_distance_is_reported(self) -> None:
        from core.contracts.stream_contract import assert_stream_frame_contract, validate_stream_frame
        from core.streams import build_stream_frame
        from tests.unit._streams import flat_streams

        frame = build_stream_frame(flat_streams(20))
        frame.loc[10, "distance_m"] = 0.0
        report = validate_stream_frame(frame)
        self.assertFalse(report.ok)
        self.assertIn("distance_non_monotone", [i.code for i in report.issues])
        with self.assertRaises(ValueError):
            assert_stream_frame_contract(frame)

    def test_missing_columns_are_reported(self) -> None:
        import pandas as pd

        from core.contracts.stream_contract import validate_stream_frame

        report = validate_stream_frame(pd.DataFrame({"lat": [45.0]}))
        self.assertFalse(report.ok)
        self.assertEqual(report.issues[0].code, "missing_columns")


if __name__ == "__main__":
    unittest.main()
