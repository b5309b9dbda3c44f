"""Current weather from OpenWeatherMap, cached per city"""
import logging

import requests
from django.conf import settings
from django.core.cache import cache

from stockhub.core.model_cache import get_weather_cache_key

logger = logging.getLogger('stockhub.notifications')


def fallback_weather(city):
    return {
        'city': city,
        'available': False,
        'temperature': None,
        'humidity': None,
        'wind_speed': None,
        'description': 'Weather unavailable',
    }


def get_weather(city=None):
    """
    Weather payload for `city` (DEFAULT_WEATHER_CITY when empty).

    Never raises: any provider problem yields fallback_weather(city).
    """
    city = (city or '').strip() or settings.DEFAULT_WEATHER_CITY
    cache_key = get_weather_cache_key(city)
    cached = cache.get(cache_key)
    if cached is not None:
        logger.debug(f"Cache hit for weather ({city})")
        return cached

    if not settings.OPENWEATHER_API_KEY:
        logger.warning("OPENWEATHER_API_KEY is not set; returning fallback weather")
        return fallback_weather(city)

    try:
        response = requests.get(
            settings.OPENWEATHER_URL,
            params={'q': city, 'appid': settings.OPENWEATHER_API_KEY, 'units': 'metric'},
            timeout=settings.HTTP_TIMEOUT_SECONDS,
        )
        response.raise_for_status()
        data = response.json()
        payload = {
            'city': data.get('name') or city,
            'available': True,
            'temperature': round(data['main']['temp']),
            'humidity': data['main'].get('humidity'),
            'wind_speed': data.get('wind', {}).get('speed'),
            'description': (data.get('weather') or [{}])[0].get('description', ''),
        }
    except (requests.RequestException, ValueError, KeyError, TypeError) as e:
        logger.warning(f"Weather lookup for {city} failed: {str(e)}")
        return fallback_weather(city)

    cache.set(cache_key, payload, settings.WEATHER_CACHE_TTL)
    return payload
