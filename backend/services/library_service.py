"""Bibliotheque de segments par utilisateur.

Pipeline d'une sortie:
- eligibilite (points, distance, duree)
- detection
- prefiltre spatial via le store (boite englobante elargie)
- deduplication: rattachement au meilleur segment existant, ou creation

Les lectures de matching se font sans verrou sur un instantane du store. La
decision d'ecriture est serialisee par utilisateur: si le store a change
entre-temps (compteur `version`), le matching est refait sous verrou.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import replace
from datetime import datetime, timezone
from threading import Lock
from typing import Callable

import pandas as pd

from core.config import EngineConfig
from core.detector import SegmentDetector
from core.matching import find_matching_segments, merge_segment_geometry, segment_bounding_box
from core.models import ActivityStreams, DetectedSegment, SegmentMatch, StoredSegment
from core.profile import build_ride_record, build_segment_profile, reference_threshold_changed
from services.activity_service import build_validated_frame
from services.analysis_service import analyze_segment
from services.models import LibraryEntry, LibraryUpdate
from storage.segment_store import SegmentStore


logger = logging.getLogger("segmentscope.library")

Clock = Callable[[], datetime]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class SegmentLibraryService:
    def __init__(
        self,
        store: SegmentStore,
        config: EngineConfig | None = None,
        clock: Clock | None = None,
    ) -> None:
        self.store = store
        self.config = config or EngineConfig()
        self._clock = clock or _utc_now
        self._detector = SegmentDetector(self.config.detection)
        # Un verrou par utilisateur, jamais libere: borne par le nombre d'utilisateurs du processus.
        self._locks: dict[str, Lock] = {}
        self._locks_guard = Lock()

    def _user_lock(self, user_id: str) -> Lock:
        with self._locks_guard:
            lock = self._locks.get(user_id)
            if lock is None:
                lock = Lock()
                self._locks[user_id] = lock
            return lock

    def activity_eligibility(self, frame: pd.DataFrame) -> tuple[bool, str | None]:
        """Une sortie trop courte n'alimente pas la bibliotheque."""
        cfg = self.config.library
        if len(frame) < cfg.min_stream_points:
            return False, "too_few_points"
        if float(frame["distance_m"].iat[-1]) < cfg.min_activity_distance_m:
            return False, "too_short_distance"
        if float(frame["elapsed_s"].iat[-1]) < cfg.min_activity_duration_s:
            return False, "too_short_duration"
        return True, None

    def _matches(self, user_id: str, segment: DetectedSegment) -> list[SegmentMatch]:
        bbox = segment_bounding_box(segment, self.config.matching.bbox_expansion_deg)
        candidates = self.store.find_candidates(user_id, bbox)
        return find_matching_segments(segment, candidates, self.config.matching)

    def process_activity(
        self,
        user_id: str,
        streams: ActivityStreams,
        *,
        activity_id: str | None = None,
        ridden_at: datetime | None = None,
        ftp: float | None = None,
        max_hr: float | None = None,
        home: tuple[float, float] | None = None,
    ) -> LibraryUpdate:
        activity_id = activity_id or uuid.uuid4().hex
        ridden_at = ridden_at or self._clock()

        frame = build_validated_frame(streams, self.config.detection)
        eligible, reason = self.activity_eligibility(frame)
        if not eligible:
            logger.info(
                "library_activity_skipped",
                extra={"user_id": user_id, "activity_id": activity_id, "reason": reason},
            )
            return LibraryUpdate(activity_id=activity_id, eligible=False, reason=reason)

        result = self._detector.detect_frame(frame)
        created: list[str] = []
        updated: list[str] = []

        for segment in result.segments:
            version = self.store.version(user_id)
            matches = self._matches(user_id, segment)
            ride = build_ride_record(segment, activity_id, ridden_at, ftp=ftp, max_hr=max_hr)

            with self._user_lock(user_id):
                if self.store.version(user_id) != version:
                    matches = self._matches(user_id, segment)
                if matches:
                    updated.append(self._attach_ride(user_id, matches[0], segment, ride))
                else:
                    created.append(self._create_entry(user_id, segment, ride, home))

        return LibraryUpdate(
            activity_id=activity_id,
            eligible=True,
            segments_detected=len(result.segments),
            created=created,
            updated=updated,
        )

    def _attach_ride(self, user_id: str, match: SegmentMatch, segment: DetectedSegment, ride) -> str:
        entry = self.store.get(user_id, match.existing_segment_id)
        now = self._clock()

        geometry = merge_segment_geometry(
            entry.stored, segment, self.config.matching.geometry_replace_point_ratio
        )
        stored = replace(entry.stored, **geometry) if geometry else entry.stored
        # Un meme passage (activity_id) n'est compte qu'une fois.
        rides = tuple(r for r in entry.rides if r.activity_id != ride.activity_id) + (ride,)
        profile = build_segment_profile(
            rides,
            entry.reference.terrain_type,
            entry.obstruction,
            now,
            reference_changed=reference_threshold_changed(rides, self.config.library.reference_change_ratio),
        )
        self.store.save(replace(entry, stored=stored, rides=rides, profile=profile, updated_at=now))
        logger.info(
            "library_segment_updated",
            extra={
                "user_id": user_id,
                "segment_id": entry.id,
                "overlap_ratio": match.overlap_ratio,
                "reversed": match.reversed,
                "geometry_replaced": bool(geometry),
                "ride_count": len(rides),
            },
        )
        return entry.id

    def _create_entry(self, user_id: str, segment: DetectedSegment, ride, home) -> str:
        segment_id = str(uuid.uuid4())
        now = self._clock()
        analyzed = analyze_segment(segment, home, self.config.library)
        rides = (ride,)
        entry = LibraryEntry(
            id=segment_id,
            user_id=user_id,
            stored=StoredSegment.from_detected(segment_id, segment),
            reference=segment,
            name=analyzed.identity.auto_name,
            description=analyzed.identity.description,
            topology=analyzed.topology,
            obstruction=analyzed.obstruction,
            rides=rides,
            profile=build_segment_profile(rides, segment.terrain_type, analyzed.obstruction, now),
            created_at=now,
            updated_at=now,
        )
        self.store.save(entry)
        logger.info(
            "library_segment_created",
            extra={
                "user_id": user_id,
                "segment_id": segment_id,
                "terrain_type": segment.terrain_type,
                "distance_m": segment.distance_meters,
            },
        )
        return segment_id

    def get_entry(self, user_id: str, segment_id: str) -> LibraryEntry:
        return self.store.get(user_id, segment_id)

    def list_entries(self, user_id: str) -> list[LibraryEntry]:
        return self.store.list_entries(user_id)
