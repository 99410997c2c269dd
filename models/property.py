from datetime import datetime
from typing import List, Optional

from models.post import CamelModel


class NearbyProperty(CamelModel):
    id: str
    title: Optional[str] = None
    price: Optional[float] = None
    property_type: Optional[str] = None
    address: Optional[str] = None
    latitude: float
    longitude: float
    created_at: Optional[datetime] = None
    distance_meters: float


class Pagination(CamelModel):
    total: int
    limit: int
    offset: int
    has_more: bool


class NearbyResult(CamelModel):
    data: List[NearbyProperty]
    pagination: Pagination
