import logging
from typing import Any, Dict, Optional

import httpx

logger = logging.getLogger(__name__)

NOMINATIM_URL = "https://nominatim.openstreetmap.org/reverse"
ADDRESS_UNAVAILABLE = "Dirección no disponible"
ADDRESS_ERROR = "Error al obtener la dirección"


def format_address(data: Dict[str, Any]) -> str:
    if data.get("display_name"):
        return data["display_name"]
    address = data.get("address")
    if not address:
        return ADDRESS_UNAVAILABLE
    parts = [address.get("road"), address.get("house_number"), address.get("suburb")]
    parts.append(address.get("city") or address.get("town") or address.get("village"))
    parts.extend([address.get("state"), address.get("country")])
    formatted = ", ".join(p for p in parts if p)
    return formatted or ADDRESS_UNAVAILABLE


async def reverse_geocode(
    latitude: float,
    longitude: float,
    url: str = NOMINATIM_URL,
    user_agent: str = "SocialVox/1.0",
    timeout: float = 10.0,
    client: Optional[httpx.AsyncClient] = None,
) -> str:
    """
    Resolves coordinates to a readable address.

    Never raises: lookup problems come back as a placeholder string so a
    survey can still be completed without an address.
    """
    params = {
        "format": "json",
        "lat": latitude,
        "lon": longitude,
        "zoom": 18,
        "addressdetails": 1,
    }
    headers = {"Accept-Language": "es", "User-Agent": user_agent}
    try:
        if client is None:
            async with httpx.AsyncClient(timeout=timeout) as own_client:
                response = await own_client.get(url, params=params, headers=headers)
        else:
            response = await client.get(url, params=params, headers=headers)
        response.raise_for_status()
        data = response.json()
    except (httpx.HTTPError, ValueError) as exc:
        logger.error("Reverse geocoding failed for (%s, %s): %s", latitude, longitude, exc)
        return ADDRESS_ERROR

    if not isinstance(data, dict) or data.get("error"):
        logger.error("Reverse geocoding returned an error: %s", data)
        return ADDRESS_ERROR
    return format_address(data)
