"""Public delivery zone lookups for the storefront."""
from fastapi import APIRouter, Depends, Query

from app.api.deps import get_services
from app.schemas.delivery import CityValidation, DeliverableCities
from app.services.container import Services

router = APIRouter()


@router.get("/validate", response_model=CityValidation)
async def validate_city(
    city: str = Query(..., min_length=1, max_length=100),
    amount: float = Query(0.0, ge=0),
    services: Services = Depends(get_services),
):
    return await services.resolver.validate_city(city, amount)


@router.get("/cities", response_model=DeliverableCities)
async def deliverable_cities(services: Services = Depends(get_services)):
    return DeliverableCities(cities=await services.resolver.get_deliverable_cities())
