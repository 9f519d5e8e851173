import json
import logging
import math
from typing import Optional, Tuple

import redis
import requests

from classifieds.core.config import settings
from classifieds.core.redis import get_cache_client

logger = logging.getLogger(__name__)

EARTH_RADIUS_MILES = 3959
GEOCODE_CACHE_TTL_SECONDS = 7 * 24 * 60 * 60


def haversine_miles(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lon / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_MILES * c


def is_searchable_zipcode(zipcode: Optional[str]) -> bool:
    """Only 5-digit US zip codes are geocoded."""
    return bool(zipcode) and len(zipcode) == 5 and zipcode.isdigit()


def _cache_get(key: str) -> Optional[str]:
    try:
        return get_cache_client().get(key)
    except redis.RedisError as e:
        logger.warning("Geocode cache read failed for %s: %s", key, e)
        return None


def _cache_set(key: str, value: str) -> None:
    try:
        get_cache_client().setex(key, GEOCODE_CACHE_TTL_SECONDS, value)
    except redis.RedisError as e:
        logger.warning("Geocode cache write failed for %s: %s", key, e)


def fetch_zipcode_place(zipcode: str) -> Optional[dict]:
    url = f"{settings.ZIPCODE_API_URL}/{zipcode}"
    try:
        response = requests.get(url, timeout=settings.GEOCODE_TIMEOUT_SECONDS)
    except requests.exceptions.RequestException as e:
        logger.warning("Zipcode API error for %s: %s", zipcode, e)
        return None
    if response.status_code != 200:
        # 404 for zip codes the service doesn't know
        logger.info("Zipcode API returned %s for %s", response.status_code, zipcode)
        return None
    try:
        return response.json()
    except ValueError:
        logger.warning("Zipcode API returned a non-JSON body for %s", zipcode)
        return None


def extract_coordinates(response: dict) -> Optional[Tuple[float, float]]:
    places = response.get("places") or []
    if not places:
        return None
    try:
        return float(places[0]["latitude"]), float(places[0]["longitude"])
    except (KeyError, TypeError, ValueError):
        return None


def get_zipcode_coords(zipcode: str) -> Optional[Tuple[float, float]]:
    """Resolve a zip code to (lat, lon), cached in Redis. Returns None when unknown."""
    if not is_searchable_zipcode(zipcode):
        return None

    cache_key = f"zip_coords:{zipcode}"
    cached = _cache_get(cache_key)
    if cached:
        data = json.loads(cached)
        return data["lat"], data["lon"]

    place = fetch_zipcode_place(zipcode)
    if place is None:
        return None
    coords = extract_coordinates(place)
    if coords is None:
        return None

    _cache_set(cache_key, json.dumps({"lat": coords[0], "lon": coords[1]}))
    return coords
