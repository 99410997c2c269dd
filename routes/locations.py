import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Query
from google.api_core.exceptions import GoogleAPIError

from dependencies import Community, CurrentUser, Firestore
from models.location import Apartment, City
from services.errors import PersistenceFailure
from services.validation import validate

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/cities")
def list_cities(db: Firestore) -> Dict[str, Any]:
    """Cities that posts can be scoped to"""
    try:
        rows = db.get_cities()
    except GoogleAPIError as e:
        logger.exception("Failed to fetch cities")
        raise PersistenceFailure() from e
    return {"success": True, "data": [City.model_validate(row).to_json() for row in rows]}


@router.get("/apartments")
def list_apartments(
        db: Firestore,
        city_id: Optional[str] = Query(None, alias="cityId"),
        q: Optional[str] = Query(None, min_length=1, max_length=100),
) -> Dict[str, Any]:
    """Apartments, optionally in one city and/or matching a name prefix"""
    try:
        rows = db.get_apartments(city_id=city_id or None, prefix=q.strip() if q else None)
    except GoogleAPIError as e:
        logger.exception("Failed to fetch apartments")
        raise PersistenceFailure() from e
    return {"success": True, "data": [Apartment.model_validate(row).to_json() for row in rows]}


@router.get("/user-locations")
def get_user_locations(service: Community, current_user: CurrentUser) -> Dict[str, Any]:
    """The caller's saved cities and apartments, primary first"""
    locations = service.list_user_locations(current_user)
    return {"success": True, "data": [location.to_json() for location in locations]}


@router.post("/user-locations")
def add_user_location(
        service: Community,
        current_user: CurrentUser,
        payload: Any = Body(None),
) -> Dict[str, Any]:
    request = validate("location-add", payload)
    location = service.add_user_location(request, current_user)
    return {"success": True, "data": location.to_json(), "message": "Location preference added"}


@router.put("/user-locations")
def set_primary_location(
        service: Community,
        current_user: CurrentUser,
        payload: Any = Body(None),
) -> Dict[str, Any]:
    """Switch the caller's primary location"""
    request = validate("location-primary", payload)
    location = service.set_primary_location(request, current_user)
    return {"success": True, "data": location.to_json(), "message": "Primary location updated"}


@router.delete("/user-locations")
def remove_user_location(
        service: Community,
        current_user: CurrentUser,
        location_id: str = Query(..., alias="locationId", min_length=1),
) -> Dict[str, Any]:
    service.remove_user_location(location_id, current_user)
    return {"success": True, "message": "Location preference removed"}
