from typing import List, Optional

from pydantic import BaseModel


class CityValidation(BaseModel):
    """Verdict for one city + order amount."""
    is_deliverable: bool
    delivery_cost: float = 0.0
    is_free_delivery: bool = False
    message: str
    zone_name: Optional[str] = None
    city: Optional[str] = None  # display spelling of the matched city


class DeliverableCities(BaseModel):
    cities: List[str]
