import asyncio
import logging
import math
from typing import Optional

import aiohttp
from async_lru import alru_cache

from config import settings

logger = logging.getLogger(__name__)

EARTH_RADIUS_METERS = 6_371_000.0
METERS_PER_DEGREE_LAT = 111_320.0


@alru_cache(maxsize=256)
async def get_coordinates(session: aiohttp.ClientSession, location: str) -> Optional[tuple[float, float]]:
    """
    Get the coordinates of an address using OSM with caching
    :return: the coordinates as a tuple of (lat, lon), or None if the address is unknown
    """
    if not location:
        return None

    try:
        async with session.get(
                url=settings.NOMINATIM_URL,
                params={
                    "format": "json",
                    "q": location,
                    "countrycodes": "vn",
                    "limit": 1,
                },
                headers={
                    "User-Agent": settings.NOMINATIM_USER_AGENT
                }
        ) as response:
            if response.status != 200:
                return None

            data = await response.json()
            if data:
                return float(data[0]["lat"]), float(data[0]["lon"])

    except (aiohttp.ClientError, asyncio.TimeoutError, ValueError, IndexError, KeyError):
        logger.warning("Error getting coordinates for %s", location)

    return None


def haversine_meters(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance between two points in meters"""
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)
    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    return 2 * EARTH_RADIUS_METERS * math.asin(math.sqrt(a))


def latitude_band(lat: float, radius_meters: float) -> tuple[float, float]:
    """Latitudes that can contain a point within radius_meters of lat"""
    delta = radius_meters / METERS_PER_DEGREE_LAT
    return max(lat - delta, -90.0), min(lat + delta, 90.0)
