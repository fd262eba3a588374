import logging

from fastapi import APIRouter, HTTPException, Request

from api.routes.segments import streams_from_payload
from api.schemas import (
    LibraryActivityRequest,
    LibrarySegmentDetail,
    LibrarySegmentListResponse,
    LibrarySegmentSummary,
    LibraryUpdateResponse,
)
from services.library_service import SegmentLibraryService
from services.models import LibraryEntry
from services.serialization import to_jsonable


router = APIRouter()


def _get_logger(request: Request) -> logging.Logger:
    return request.app.state.logger


def _get_request_id(request: Request) -> str:
    return getattr(getattr(request, "state", None), "request_id", "-")


def get_library_service(request: Request) -> SegmentLibraryService:
    return request.app.state.library


def _summary(entry: LibraryEntry) -> LibrarySegmentSummary:
    return LibrarySegmentSummary(
        id=entry.id,
        name=entry.name,
        description=entry.description,
        terrain_type=entry.reference.terrain_type,
        distance_meters=entry.stored.distance_meters,
        topology=entry.topology.topology,
        ride_count=entry.ride_count,
        frequency_tier=entry.profile.frequency_tier,
        relevance_score=entry.profile.relevance_score,
        updated_at=entry.updated_at,
    )


@router.post("/library/{user_id}/activities", response_model=LibraryUpdateResponse)
async def process_activity_endpoint(request: Request, user_id: str, body: LibraryActivityRequest):
    """Ajoute une sortie a la bibliotheque de segments de l'utilisateur"""
    logger = _get_logger(request)
    request_id = _get_request_id(request)
    library = get_library_service(request)

    try:
        streams = streams_from_payload(body.streams)
        update = library.process_activity(
            user_id,
            streams,
            activity_id=body.activity_id,
            ridden_at=body.ridden_at,
            ftp=body.ftp,
            max_hr=body.max_hr,
            home=(body.home.lat, body.home.lng) if body.home is not None else None,
        )
    except ValueError as e:
        logger.warning(
            "library_activity_validation_failed",
            extra={"request_id": request_id, "user_id": user_id, "error": str(e)},
        )
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.exception("library_activity_failed", extra={"request_id": request_id, "user_id": user_id})
        raise HTTPException(status_code=500, detail=f"Library update failed: {str(e)}")

    logger.info(
        "library_activity_ok",
        extra={
            "request_id": request_id,
            "user_id": user_id,
            "activity_id": update.activity_id,
            "created_count": len(update.created),
            "updated_count": len(update.updated),
        },
    )
    return LibraryUpdateResponse(**to_jsonable(update))


@router.get("/library/{user_id}/segments", response_model=LibrarySegmentListResponse)
async def list_segments_endpoint(request: Request, user_id: str):
    library = get_library_service(request)
    return LibrarySegmentListResponse(segments=[_summary(e) for e in library.list_entries(user_id)])


@router.get("/library/{user_id}/segments/{segment_id}", response_model=LibrarySegmentDetail)
async def get_segment_endpoint(request: Request, user_id: str, segment_id: str):
    logger = _get_logger(request)
    library = get_library_service(request)
    try:
        entry = library.get_entry(user_id, segment_id)
    except KeyError:
        logger.info(
            "library_segment_not_found",
            extra={"request_id": _get_request_id(request), "user_id": user_id, "segment_id": segment_id},
        )
        raise HTTPException(status_code=404, detail="Segment not found")
    return LibrarySegmentDetail(**to_jsonable(entry))
