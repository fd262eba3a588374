"""Points d'entree backend de haut niveau pour la detection (sans couche UI).

Ce module expose des points d'entree compatibles FastAPI qui travaillent sur
des bytes ou des flux et renvoient des objets metier.

Ce module est consomme par l'API (FastAPI) et l'outil de profiling.
"""

from __future__ import annotations

import logging
from dataclasses import asdict

from core.classifiers import classify_topology, obstruction_score
from core.config import DetectionConfig, LibraryConfig
from core.contracts.stream_contract import SCHEMA_VERSION
from core.detector import SegmentDetector
from core.models import ActivityStreams, DetectedSegment
from core.naming import segment_identity
from services import activity_service
from services.cache import KeyValueCache, NullCache, make_cache_key, sha256_bytes
from services.models import AnalyzedSegment, DetectionReport, LoadedActivity


logger = logging.getLogger("segmentscope.analysis")

HomePoint = tuple[float, float]


def load_activity(
    *,
    data: bytes,
    name: str,
    cache: KeyValueCache | None = None,
) -> LoadedActivity:
    cache = cache or NullCache()
    key = make_cache_key(
        namespace="activity:load",
        version=SCHEMA_VERSION,
        payload={"name": name, "sha256": sha256_bytes(data)},
    )
    cached = cache.get(key)
    if isinstance(cached, LoadedActivity):
        return cached
    loaded = activity_service.load_activity_from_bytes(data=data, name=name)
    cache.set(key, loaded)
    return loaded


def analyze_segment(
    segment: DetectedSegment,
    home: HomePoint | None = None,
    library: LibraryConfig | None = None,
) -> AnalyzedSegment:
    """Score d'obstruction, topologie et nom d'un segment detecte."""
    lib = library or LibraryConfig()
    home_lat, home_lng = home if home is not None else (None, None)
    return AnalyzedSegment(
        segment=segment,
        obstruction=obstruction_score(segment),
        topology=classify_topology(
            segment,
            loop_max_gap_m=lib.loop_max_gap_m,
            out_and_back_max_gap_m=lib.out_and_back_max_gap_m,
            midpoint_factor=lib.out_and_back_midpoint_factor,
        ),
        identity=segment_identity(segment, home_lat, home_lng),
    )


def detect(
    streams: ActivityStreams,
    *,
    config: DetectionConfig | None = None,
    home: HomePoint | None = None,
    library: LibraryConfig | None = None,
) -> DetectionReport:
    detector = SegmentDetector(config)
    frame = activity_service.build_validated_frame(streams, detector.config)
    result = detector.detect_frame(frame)
    report = DetectionReport(result=result, segments=[analyze_segment(s, home, library) for s in result.segments])
    logger.info(
        "segments_detected",
        extra={
            "points": result.total_points,
            "segments": len(result.segments),
            "stops": len(result.stops),
        },
    )
    return report


def detect_upload(
    *,
    data: bytes,
    name: str,
    config: DetectionConfig | None = None,
    home: HomePoint | None = None,
    library: LibraryConfig | None = None,
    cache: KeyValueCache | None = None,
) -> tuple[LoadedActivity, DetectionReport]:
    cache = cache or NullCache()
    config = config or DetectionConfig()
    library = library or LibraryConfig()
    loaded = load_activity(data=data, name=name, cache=cache)

    key = make_cache_key(
        namespace="segments:detect",
        version=SCHEMA_VERSION,
        payload={
            "sha256": sha256_bytes(data),
            "config": asdict(config),
            "library": asdict(library),
            "home": list(home) if home is not None else None,
        },
    )
    cached = cache.get(key)
    if isinstance(cached, DetectionReport):
        logger.info("segments_detect_cache_hit", extra={"activity_name": name})
        return loaded, cached

    report = detect(loaded.streams, config=config, home=home, library=library)
    cache.set(key, report)
    return loaded, report
