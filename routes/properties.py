from typing import Any, Dict, Optional

from fastapi import APIRouter, Query
from fastapi.concurrency import run_in_threadpool

from config import settings
from dependencies import PropertySearch

router = APIRouter()


@router.get("/nearby")
async def nearby_properties(
        search: PropertySearch,
        lat: Optional[float] = Query(None, ge=-90, le=90),
        lng: Optional[float] = Query(None, ge=-180, le=180),
        address: Optional[str] = Query(None, max_length=200),
        radius_meters: float = Query(settings.NEARBY_DEFAULT_RADIUS_METERS, alias="radiusMeters", gt=0, le=50_000),
        limit: int = Query(10, ge=1, le=settings.NEARBY_PAGE_MAX),
        offset: int = Query(0, ge=0),
) -> Dict[str, Any]:
    """
    Find property listings near a point.
    Either lat+lng or a free-text address (geocoded through OpenStreetMap) is required.
    """
    origin_lat, origin_lng = await search.locate(lat, lng, address)
    result = await run_in_threadpool(search.nearby, origin_lat, origin_lng, radius_meters, limit, offset)
    return {"success": True, **result.to_json()}
