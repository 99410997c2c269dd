from datetime import datetime
from typing import Optional

from pydantic import Field

from models.post import CamelModel, RequestModel


class City(CamelModel):
    id: str
    name: str
    name_ko: Optional[str] = None
    name_en: Optional[str] = None
    is_major_city: bool = False


class Apartment(CamelModel):
    id: str
    name: str
    name_ko: Optional[str] = None
    city_id: str
    district: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    is_featured: bool = False


class UserLocation(CamelModel):
    """A city, optionally narrowed to an apartment, that a user follows"""

    id: str
    user_id: str
    city_id: str
    apartment_id: Optional[str] = None
    is_primary: bool = False
    created_at: datetime


class AddLocationRequest(RequestModel):
    city_id: str = Field(min_length=1)
    apartment_id: Optional[str] = Field(default=None, min_length=1)
    make_primary: bool = False


class PrimaryLocationRequest(RequestModel):
    city_id: str = Field(min_length=1)
    apartment_id: Optional[str] = Field(default=None, min_length=1)
