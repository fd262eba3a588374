from abc import ABC, abstractmethod
from collections import defaultdict
from datetime import datetime
from pathlib import Path
from threading import RLock
from typing import Any, Dict, List
import json
import shutil

from core.matching import BoundingBox, bbox_overlap, segment_bounding_box
from core.models import DetectedSegment, DetectedStop, ObstructionScore, StoredSegment, TopologyResult
from core.profile import RideRecord, SegmentProfile
from services.models import LibraryEntry
from services.serialization import to_jsonable


class SegmentStore(ABC):
    @abstractmethod
    def save(self, entry: LibraryEntry) -> None:
        """Cree ou remplace une entree de bibliotheque"""
        pass

    @abstractmethod
    def get(self, user_id: str, segment_id: str) -> LibraryEntry:
        """Charge une entree par ID (KeyError si absente)"""
        pass

    @abstractmethod
    def list_entries(self, user_id: str) -> List[LibraryEntry]:
        """Liste les entrees d'un utilisateur (ordre de creation)"""
        pass

    @abstractmethod
    def delete(self, user_id: str, segment_id: str) -> bool:
        """Supprime une entree"""
        pass

    @abstractmethod
    def version(self, user_id: str) -> int:
        """Compteur incremente a chaque ecriture pour cet utilisateur"""
        pass

    def find_candidates(self, user_id: str, bbox: BoundingBox) -> List[StoredSegment]:
        """Prefiltre spatial: segments dont la boite englobante recoupe `bbox`"""
        return [
            entry.stored
            for entry in self.list_entries(user_id)
            if bbox_overlap(segment_bounding_box(entry.stored), bbox)
        ]


class InMemorySegmentStore(SegmentStore):
    """Stockage en memoire (tests, API sans persistance)"""

    def __init__(self):
        self._lock = RLock()
        self._entries: Dict[str, Dict[str, LibraryEntry]] = defaultdict(dict)
        self._versions: Dict[str, int] = defaultdict(int)

    def save(self, entry: LibraryEntry) -> None:
        with self._lock:
            self._entries[entry.user_id][entry.id] = entry
            self._versions[entry.user_id] += 1

    def get(self, user_id: str, segment_id: str) -> LibraryEntry:
        with self._lock:
            try:
                return self._entries[user_id][segment_id]
            except KeyError:
                raise KeyError(f"Segment {segment_id} not found for user {user_id}") from None

    def list_entries(self, user_id: str) -> List[LibraryEntry]:
        with self._lock:
            return list(self._entries.get(user_id, {}).values())

    def delete(self, user_id: str, segment_id: str) -> bool:
        with self._lock:
            removed = self._entries.get(user_id, {}).pop(segment_id, None)
            if removed is None:
                return False
            self._versions[user_id] += 1
            return True

    def version(self, user_id: str) -> int:
        with self._lock:
            return self._versions.get(user_id, 0)


def _coords(raw) -> tuple:
    return tuple((float(lng), float(lat)) for lng, lat in raw or [])


def _dt(raw: str | None) -> datetime | None:
    if not raw:
        return None
    return datetime.fromisoformat(raw.replace("Z", "+00:00"))


def _detected_from_dict(raw: Dict[str, Any]) -> DetectedSegment:
    data = dict(raw)
    data["coordinates"] = _coords(data.get("coordinates"))
    data["stops"] = tuple(DetectedStop(**s) for s in data.get("stops") or [])
    return DetectedSegment(**data)


def _ride_from_dict(raw: Dict[str, Any]) -> RideRecord:
    data = dict(raw)
    data["ridden_at"] = _dt(data["ridden_at"])
    return RideRecord(**data)


def _profile_from_dict(raw: Dict[str, Any]) -> SegmentProfile:
    data = dict(raw)
    data["typical_days"] = tuple(data.get("typical_days") or ())
    data["zone_distribution"] = dict(data.get("zone_distribution") or {})
    data["last_ridden_at"] = _dt(data.get("last_ridden_at"))
    return SegmentProfile(**data)


def entry_from_dict(raw: Dict[str, Any]) -> LibraryEntry:
    stored = dict(raw["stored"])
    stored["coordinates"] = _coords(stored.get("coordinates"))
    return LibraryEntry(
        id=raw["id"],
        user_id=raw["user_id"],
        stored=StoredSegment(**stored),
        reference=_detected_from_dict(raw["reference"]),
        name=raw["name"],
        description=raw["description"],
        topology=TopologyResult(**raw["topology"]),
        obstruction=ObstructionScore(**raw["obstruction"]),
        rides=tuple(_ride_from_dict(r) for r in raw.get("rides") or []),
        profile=_profile_from_dict(raw["profile"]),
        created_at=_dt(raw["created_at"]),
        updated_at=_dt(raw["updated_at"]),
    )


class LocalJsonSegmentStore(SegmentStore):
    """Stockage local: un dossier par utilisateur, `segments.json` dedans"""

    def __init__(self, base_dir: str = "./data/segments"):
        self.base_dir = Path(base_dir)
        self.base_dir.mkdir(parents=True, exist_ok=True)
        self._lock = RLock()
        self._versions: Dict[str, int] = defaultdict(int)

    def _get_user_file(self, user_id: str) -> Path:
        """Retourne le chemin du fichier segments.json de l'utilisateur"""
        safe = "".join(ch if ch.isalnum() or ch in "-_" else "_" for ch in str(user_id))
        if not safe:
            raise ValueError("user_id invalide")
        return self.base_dir / safe / "segments.json"

    def _read(self, user_id: str) -> Dict[str, Dict[str, Any]]:
        path = self._get_user_file(user_id)
        if not path.exists():
            return {}
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)

    def _write(self, user_id: str, raw: Dict[str, Dict[str, Any]]) -> None:
        path = self._get_user_file(user_id)
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = path.with_suffix(".json.tmp")
        try:
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(raw, f, indent=2)
            tmp_path.replace(path)
        except OSError as e:
            tmp_path.unlink(missing_ok=True)
            raise RuntimeError(f"Failed to store segments for user {user_id}: {e}") from e
        self._versions[user_id] += 1

    def save(self, entry: LibraryEntry) -> None:
        with self._lock:
            raw = self._read(entry.user_id)
            raw[entry.id] = to_jsonable(entry)
            self._write(entry.user_id, raw)

    def get(self, user_id: str, segment_id: str) -> LibraryEntry:
        with self._lock:
            raw = self._read(user_id)
        if segment_id not in raw:
            raise KeyError(f"Segment {segment_id} not found for user {user_id}")
        return entry_from_dict(raw[segment_id])

    def list_entries(self, user_id: str) -> List[LibraryEntry]:
        with self._lock:
            raw = self._read(user_id)
        return [entry_from_dict(item) for item in raw.values()]

    def delete(self, user_id: str, segment_id: str) -> bool:
        with self._lock:
            raw = self._read(user_id)
            if raw.pop(segment_id, None) is None:
                return False
            self._write(user_id, raw)
            return True

    def version(self, user_id: str) -> int:
        with self._lock:
            return self._versions.get(user_id, 0)

    def cleanup_all(self) -> None:
        """Suppression complete du dossier"""
        with self._lock:
            if self.base_dir.exists():
                shutil.rmtree(self.base_dir, ignore_errors=True)
            self.base_dir.mkdir(parents=True, exist_ok=True)
            self._versions.clear()
