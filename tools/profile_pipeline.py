from __future__ import annotations

import argparse
import json
import sys
import time
import tracemalloc
from pathlib import Path
from typing import Any


def _ensure_project_on_path() -> Path:
    project_dir = Path(__file__).resolve().parents[1]
    for path in (project_dir / "backend", project_dir):
        if str(path) not in sys.path:
            sys.path.insert(0, str(path))
    return project_dir


def _p95(values: list[float]) -> float:
    if not values:
        return 0.0
    ordered = sorted(values)
    # Nearest-rank p95.
    idx = int((0.95 * len(ordered)) + 0.999999) - 1
    idx = max(0, min(idx, len(ordered) - 1))
    return float(ordered[idx])


def _median(values: list[float]) -> float:
    if not values:
        return 0.0
    ordered = sorted(values)
    mid = len(ordered) // 2
    if len(ordered) % 2:
        return float(ordered[mid])
    return float((ordered[mid - 1] + ordered[mid]) / 2.0)


def _stage(
    name: str,
    func,
    *,
    tracemalloc_enabled: bool,
) -> tuple[Any, dict[str, Any]]:
    if tracemalloc_enabled:
        tracemalloc.reset_peak()
        before_current, _ = tracemalloc.get_traced_memory()
    else:
        before_current = 0

    t0 = time.perf_counter()
    out = func()
    t1 = time.perf_counter()

    meta: dict[str, Any] = {"stage": name, "time_s": float(t1 - t0), "tracemalloc": None}
    if tracemalloc_enabled:
        after_current, after_peak = tracemalloc.get_traced_memory()
        meta["tracemalloc"] = {
            "before_current_bytes": int(before_current),
            "after_current_bytes": int(after_current),
            "after_peak_bytes": int(after_peak),
        }
    return out, meta


def _run_once(
    *,
    data: bytes,
    name: str,
    mode: str,
    cache: Any | None,
    tracemalloc_enabled: bool,
) -> dict[str, Any]:
    from core.candidates import build_candidates, merge_candidates
    from core.characterize import characterize_segment
    from core.config import DetectionConfig
    from core.gradients import compute_gradients, find_boundaries
    from core.stops import detect_stops
    from core.streams import build_stream_frame, smooth_elevation
    from services.analysis_service import analyze_segment, load_activity

    config = DetectionConfig()
    results: dict[str, Any] = {
        "input": {"name": str(name), "bytes": int(len(data))},
        "mode": str(mode),
        "warm_cache": bool(cache is not None),
        "stages": [],
    }

    def run(stage_name: str, func):
        out, meta = _stage(stage_name, func, tracemalloc_enabled=tracemalloc_enabled)
        results["stages"].append(meta)
        return out

    loaded = run("load_activity", lambda: load_activity(data=data, name=name, cache=cache))
    results["points"] = loaded.point_count
    if mode == "load":
        return results

    frame = run("build_stream_frame", lambda: build_stream_frame(loaded.streams, config))
    if len(frame) < config.min_stream_points:
        results["segments"] = 0
        return results

    run("smooth_elevation", lambda: smooth_elevation(frame, config.elevation_smooth_window))
    stops = run("detect_stops", lambda: detect_stops(frame, config))
    gradients = run("compute_gradients", lambda: compute_gradients(frame, config))
    boundaries = run("find_boundaries", lambda: find_boundaries(frame, gradients, stops, config))
    candidates = run(
        "build_candidates",
        lambda: merge_candidates(build_candidates(boundaries, config), config),
    )
    segments = run(
        "characterize_segments",
        lambda: [characterize_segment(frame, c, stops, config) for c in candidates],
    )
    results["stops"] = len(stops)
    results["segments"] = len(segments)

    if mode == "all":
        run("analyze_segments", lambda: [analyze_segment(s) for s in segments])
    return results


def main() -> int:
    _ensure_project_on_path()

    parser = argparse.ArgumentParser(description="SegmentScope profiling harness")
    parser.add_argument("--input", required=True, help="Path to GPX/FIT file")
    parser.add_argument(
        "--mode",
        default="all",
        choices=["load", "detect", "all"],
        help="Which pipeline stages to run",
    )
    parser.add_argument("--repeat", type=int, default=3, help="Number of measured runs")
    parser.add_argument(
        "--warm-cache",
        action="store_true",
        help="Warm up an in-memory cache before measuring",
    )
    parser.add_argument(
        "--tracemalloc",
        action="store_true",
        help="Enable tracemalloc and record peak bytes per stage",
    )
    parser.add_argument(
        "--json-out",
        default=None,
        help="Write results to a JSON file (path). If omitted, no file is written.",
    )

    args = parser.parse_args()

    input_path = Path(args.input)
    if not input_path.exists():
        raise SystemExit(f"Input file not found: {input_path}")

    data = input_path.read_bytes()
    name = input_path.name
    mode = str(args.mode)
    repeats = max(1, int(args.repeat))

    if args.tracemalloc:
        tracemalloc.start()

    cache = None
    if args.warm_cache:
        from services.cache import InMemoryCache

        cache = InMemoryCache(max_items=32)
        _run_once(data=data, name=name, mode=mode, cache=cache, tracemalloc_enabled=bool(args.tracemalloc))

    runs = [
        _run_once(data=data, name=name, mode=mode, cache=cache, tracemalloc_enabled=bool(args.tracemalloc))
        for _ in range(repeats)
    ]

    # Summaries per stage.
    by_stage: dict[str, list[float]] = {}
    by_stage_peak: dict[str, list[int]] = {}
    for r in runs:
        for s in r.get("stages", []):
            stage = str(s.get("stage"))
            by_stage.setdefault(stage, []).append(float(s.get("time_s", 0.0)))
            if s.get("tracemalloc"):
                by_stage_peak.setdefault(stage, []).append(int(s["tracemalloc"]["after_peak_bytes"]))

    summary: dict[str, Any] = {
        "input": {"path": str(input_path), "name": str(name), "bytes": int(len(data))},
        "mode": mode,
        "repeat": repeats,
        "warm_cache": bool(args.warm_cache),
        "tracemalloc": bool(args.tracemalloc),
        "points": runs[-1].get("points"),
        "segments": runs[-1].get("segments"),
        "stages": {},
    }
    for stage, times_s in by_stage.items():
        stage_summary: dict[str, Any] = {
            "median_s": _median(times_s),
            "p95_s": _p95(times_s),
            "runs": len(times_s),
        }
        peaks = by_stage_peak.get(stage, [])
        if peaks:
            stage_summary["peak_bytes_median"] = int(_median([float(p) for p in peaks]))
            stage_summary["peak_bytes_p95"] = int(_p95([float(p) for p in peaks]))
        summary["stages"][stage] = stage_summary

    # Human-readable output.
    print("SegmentScope profile")
    print(f"- input: {summary['input']['path']} ({summary['input']['bytes']} bytes)")
    print(f"- mode: {mode} | repeat: {repeats} | warm_cache: {bool(args.warm_cache)}")
    print(f"- points: {summary['points']} | segments: {summary['segments']}")
    for stage, s in summary["stages"].items():
        line = f"- {stage}: median {s['median_s']:.4f}s | p95 {s['p95_s']:.4f}s"
        if "peak_bytes_median" in s:
            line += f" | peak(median) {s['peak_bytes_median']} bytes"
        print(line)

    if args.json_out:
        out_path = Path(args.json_out)
        out_path.parent.mkdir(parents=True, exist_ok=True)
        out_path.write_text(
            json.dumps({"summary": summary, "runs": runs}, indent=2, sort_keys=True),
            encoding="utf-8",
        )
        print(f"Wrote JSON: {out_path}")

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
