import logging
from pathlib import Path
from typing import Optional

from fastapi import APIRouter, File, Form, Header, HTTPException, Request, UploadFile

from api.schemas import (
    AnalyzedSegmentOut,
    DetectRequest,
    DetectResponse,
    MatchRequest,
    MatchResponse,
    SegmentOut,
    StoredSegmentIn,
    StreamsPayload,
)
from core.config import EngineConfig
from core.matching import find_matching_segments
from core.models import ActivityStreams, DetectedSegment, DetectedStop, StoredSegment
from services import analysis_service
from services.models import DetectionReport
from services.serialization import to_jsonable


router = APIRouter()


def _get_logger(request: Request) -> logging.Logger:
    return request.app.state.logger


def _get_request_id(request: Request) -> str:
    return getattr(getattr(request, "state", None), "request_id", "-")


def _get_config(request: Request) -> EngineConfig:
    return request.app.state.config


def _model_to_dict(model):
    if hasattr(model, "model_dump"):
        return model.model_dump()
    return model.dict()


def streams_from_payload(payload: StreamsPayload) -> ActivityStreams:
    return ActivityStreams.from_mapping(_model_to_dict(payload))


def _segment_from_payload(payload: SegmentOut) -> DetectedSegment:
    data = _model_to_dict(payload)
    data["coordinates"] = tuple((float(p[0]), float(p[1])) for p in data["coordinates"])
    data["stops"] = tuple(DetectedStop(**s) for s in data["stops"])
    return DetectedSegment(**data)


def _stored_from_payload(payload: StoredSegmentIn) -> StoredSegment:
    data = _model_to_dict(payload)
    data["coordinates"] = tuple((float(p[0]), float(p[1])) for p in data["coordinates"])
    return StoredSegment(**data)


def build_detect_response(report: DetectionReport, *, source=None, name=None) -> DetectResponse:
    result = report.result
    segments = [
        AnalyzedSegmentOut(
            segment=to_jsonable(item.segment),
            obstruction=to_jsonable(item.obstruction),
            topology=to_jsonable(item.topology),
            name=item.identity.auto_name,
            description=item.identity.description,
            short_description=item.identity.short_description,
        )
        for item in report.segments
    ]
    return DetectResponse(
        segments=segments,
        stops=to_jsonable(result.stops),
        total_points=result.total_points,
        total_distance_m=result.total_distance_m,
        total_duration_s=result.total_duration_s,
        source=source,
        name=name,
    )


@router.post("/segments/detect", response_model=DetectResponse)
async def detect_segments_endpoint(request: Request, body: DetectRequest):
    """Detecte les segments d'une sortie fournie en flux JSON"""
    logger = _get_logger(request)
    request_id = _get_request_id(request)
    config = _get_config(request)

    try:
        streams = streams_from_payload(body.streams)
        home = (body.home.lat, body.home.lng) if body.home is not None else None
        report = analysis_service.detect(streams, config=config.detection, home=home, library=config.library)
    except ValueError as e:
        logger.warning(
            "segments_detect_validation_failed",
            extra={"request_id": request_id, "error": str(e)},
        )
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.exception("segments_detect_failed", extra={"request_id": request_id})
        raise HTTPException(status_code=500, detail=f"Segment detection failed: {str(e)}")

    logger.info(
        "segments_detect_ok",
        extra={
            "request_id": request_id,
            "points": report.result.total_points,
            "segments": len(report.segments),
        },
    )
    return build_detect_response(report, source="streams")


@router.post("/segments/detect/upload", response_model=DetectResponse)
async def detect_upload_endpoint(
    request: Request,
    file: UploadFile = File(...),
    home_lat: Optional[float] = Form(None),
    home_lng: Optional[float] = Form(None),
    max_size: int = Header(100_000_000),
):
    """Detecte les segments d'un fichier GPX/FIT"""
    logger = _get_logger(request)
    request_id = _get_request_id(request)
    config = _get_config(request)

    if not file.filename:
        raise HTTPException(status_code=400, detail="Missing filename")

    allowed_extensions = {".gpx", ".fit"}
    if not any(file.filename.lower().endswith(ext) for ext in allowed_extensions):
        raise HTTPException(
            status_code=400,
            detail=f"Invalid file extension. Allowed: {', '.join(sorted(allowed_extensions))}",
        )

    file_bytes = await file.read()
    logger.info(
        "upload_file_read",
        extra={
            "request_id": request_id,
            "upload_filename": file.filename,
            "extension": Path(file.filename).suffix.lower(),
            "size_bytes": len(file_bytes),
            "max_size": max_size,
        },
    )
    if len(file_bytes) > max_size:
        raise HTTPException(
            status_code=413,
            detail=f"File too large. Max size: {max_size / (1024 * 1024):.1f}MB",
        )

    home = (home_lat, home_lng) if home_lat is not None and home_lng is not None else None
    try:
        loaded, report = analysis_service.detect_upload(
            data=file_bytes,
            name=file.filename,
            config=config.detection,
            home=home,
            library=config.library,
            cache=request.app.state.cache,
        )
    except ValueError as e:
        logger.warning(
            "upload_validation_failed",
            extra={"request_id": request_id, "upload_filename": file.filename, "error": str(e)},
        )
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.exception(
            "upload_detect_failed",
            extra={"request_id": request_id, "upload_filename": file.filename},
        )
        raise HTTPException(status_code=500, detail=f"Failed to process file: {str(e)}")

    logger.info(
        "upload_detect_ok",
        extra={
            "request_id": request_id,
            "source": loaded.source,
            "points": loaded.point_count,
            "segments": len(report.segments),
        },
    )
    return build_detect_response(report, source=loaded.source, name=loaded.name)


@router.post("/segments/match", response_model=MatchResponse)
async def match_segments_endpoint(request: Request, body: MatchRequest):
    """Compare un segment detecte a des segments stockes"""
    logger = _get_logger(request)
    request_id = _get_request_id(request)
    config = _get_config(request)

    try:
        segment = _segment_from_payload(body.segment)
        candidates = [_stored_from_payload(c) for c in body.candidates]
    except (TypeError, ValueError) as e:
        logger.warning("segments_match_validation_failed", extra={"request_id": request_id, "error": str(e)})
        raise HTTPException(status_code=400, detail=str(e))

    matches = find_matching_segments(segment, candidates, config.matching)
    logger.info(
        "segments_match_ok",
        extra={"request_id": request_id, "candidates": len(candidates), "matches": len(matches)},
    )
    return MatchResponse(matches=to_jsonable(matches))
