from fastapi import APIRouter, Query

from api.schemas import ZoneResponse
from core.classifiers import classify_hr_zone, classify_power_zone


router = APIRouter()


def _ratio(value: float, reference: float) -> float:
    # Reference nulle: zone "unknown", rapport 0.
    return round(value / reference, 3) if reference > 0 else 0.0


@router.get("/zones/power", response_model=ZoneResponse)
async def power_zone_endpoint(avg_power: float = Query(..., ge=0), ftp: float = Query(..., ge=0)):
    """Zone de puissance (rapport a la FTP)"""
    return ZoneResponse(zone=classify_power_zone(avg_power, ftp), ratio=_ratio(avg_power, ftp))


@router.get("/zones/hr", response_model=ZoneResponse)
async def hr_zone_endpoint(avg_hr: float = Query(..., ge=0), max_hr: float = Query(..., ge=0)):
    """Zone cardiaque (rapport a la FC max)"""
    return ZoneResponse(zone=classify_hr_zone(avg_hr, max_hr), ratio=_ratio(avg_hr, max_hr))
