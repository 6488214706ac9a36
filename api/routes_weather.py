# api/routes_weather.py
from fastapi import APIRouter, Depends, Query

from core.container import Services
from core.response import ok
from models.subscription import Location
from api.routes_user import get_services

router = APIRouter()


@router.get("/city")
async def weather_by_city(
    name: str = Query(..., min_length=1),
    region: str = Query(..., min_length=1),
    country: str = Query(..., min_length=1),
    services: Services = Depends(get_services),
):
    """Normalized forecast for a (city, region, country) triple."""
    location = Location.parse(f"{name},{region},{country}")
    report = await services.provider.fetch(location)
    return ok(report.model_dump(mode="json"))


@router.get("/coords")
async def weather_by_coords(
    lat: float = Query(..., ge=-90, le=90),
    lon: float = Query(..., ge=-180, le=180),
    services: Services = Depends(get_services),
):
    """Normalized forecast for coordinates (used by "my location" in the client)."""
    report = await services.provider.fetch_by_coords(lat, lon)
    return ok(report.model_dump(mode="json"))
