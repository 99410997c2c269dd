from typing import Optional

from pydantic import BaseModel


class Principal(BaseModel):
    user_id: str
    email: Optional[str] = None
    is_admin: bool = False
