from fastapi import APIRouter, Depends, Query

from ...geocoding import reverse_geocode
from ...schemas import AuthSession, GeocodeResponse
from ...state import AppState
from ..deps import get_state, require_surveyor

router = APIRouter(prefix="/api/geocode", tags=["geocode"])


@router.get("/reverse", response_model=GeocodeResponse)
async def reverse(
    lat: float = Query(..., ge=-90, le=90),
    lon: float = Query(..., ge=-180, le=180),
    state: AppState = Depends(get_state),
    _: AuthSession = Depends(require_surveyor),
):
    settings = state.settings
    address = await reverse_geocode(
        lat,
        lon,
        url=settings.geocoder_url,
        user_agent=settings.geocoder_user_agent,
        timeout=settings.geocoder_timeout_seconds,
    )
    return GeocodeResponse(latitude=lat, longitude=lon, address=address)
