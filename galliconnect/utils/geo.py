from __future__ import annotations

import logging
import math
from typing import Iterable, List, Optional, Tuple

from ..domain import Shop
from ..errors import GeolocationUnavailable

logger = logging.getLogger(__name__)

EARTH_RADIUS_KM = 6371.0

Coordinates = Tuple[float, float]


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lon / 2) ** 2
    )
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def _coordinates(lat_raw, lng_raw) -> Coordinates:
    if lat_raw in (None, '') or lng_raw in (None, ''):
        raise GeolocationUnavailable('no position supplied')
    try:
        lat, lng = float(lat_raw), float(lng_raw)
    except (TypeError, ValueError) as exc:
        raise GeolocationUnavailable(f'unreadable position {lat_raw!r}, {lng_raw!r}') from exc
    if not (-90 <= lat <= 90 and -180 <= lng <= 180):
        raise GeolocationUnavailable(f'position out of range {lat}, {lng}')
    return lat, lng


def parse_coordinates(lat_raw, lng_raw, purpose: str = 'request') -> Optional[Coordinates]:
    """Position posted by the browser, or None when it was denied or timed out."""
    try:
        return _coordinates(lat_raw, lng_raw)
    except GeolocationUnavailable as exc:
        logger.warning('Location unavailable for %s: %s', purpose, exc)
        return None


def distance_to(shop: Shop, origin: Optional[Coordinates]) -> Optional[float]:
    if origin is None or not shop.has_location:
        return None
    return haversine_km(origin[0], origin[1], shop.latitude, shop.longitude)


def sort_by_distance(shops: Iterable[Shop], origin: Optional[Coordinates]) -> List[Shop]:
    """Nearest first; shops without stored coordinates keep their order at the end."""
    rows = list(shops)
    if origin is None:
        return rows

    def key(shop: Shop) -> Tuple[bool, float]:
        km = distance_to(shop, origin)
        return (km is None, km if km is not None else 0.0)

    return sorted(rows, key=key)


def format_distance(km: Optional[float]) -> str:
    if km is None:
        return ''
    if km < 1:
        return f'{km * 1000:.0f}m away'
    return f'{km:.1f}km away'
