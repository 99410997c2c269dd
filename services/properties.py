import logging
from typing import Optional

from aiohttp import ClientSession
from google.api_core.exceptions import GoogleAPIError

from models.property import NearbyProperty, NearbyResult, Pagination
from services.errors import PersistenceFailure, ValidationError
from services.firestore import FirestoreDB
from utils.coordinates import get_coordinates, haversine_meters, latitude_band

logger = logging.getLogger(__name__)


class PropertySearchService:
    """Radius search over property listings"""

    def __init__(self, db: FirestoreDB, session: ClientSession):
        self.db = db
        self.session = session

    async def locate(self, lat: Optional[float], lng: Optional[float], address: Optional[str]) -> tuple[float, float]:
        if lat is not None and lng is not None:
            return lat, lng
        if address:
            coordinates = await get_coordinates(self.session, address.strip())
            if coordinates is None:
                raise ValidationError(
                    "Could not find that address",
                    errors=[{"field": "address", "message": "Address could not be geocoded"}],
                )
            return coordinates
        raise ValidationError(
            "Latitude and longitude are required",
            errors=[{"field": "lat", "message": "Provide lat and lng, or an address"}],
        )

    def nearby(self, lat: float, lng: float, radius_meters: float, limit: int, offset: int) -> NearbyResult:
        """
        Listings within radius_meters of (lat, lng), nearest first.
        Firestore narrows candidates to a latitude band; exact distance does the rest.
        """
        min_lat, max_lat = latitude_band(lat, radius_meters)
        try:
            candidates = self.db.get_properties_in_latitude_band(min_lat, max_lat)
        except GoogleAPIError as e:
            logger.exception("Firestore call failed during nearby search")
            raise PersistenceFailure() from e

        matches = []
        for row in candidates:
            if row.get("latitude") is None or row.get("longitude") is None:
                continue
            distance = haversine_meters(lat, lng, row["latitude"], row["longitude"])
            if distance <= radius_meters:
                matches.append(NearbyProperty.model_validate({**row, "distance_meters": round(distance, 1)}))

        matches.sort(key=lambda p: (p.distance_meters, p.id))
        total = len(matches)
        return NearbyResult(
            data=matches[offset:offset + limit],
            pagination=Pagination(total=total, limit=limit, offset=offset, has_more=total > offset + limit),
        )
