"""Current weather with an ordered fallback across two public sources."""

from __future__ import annotations

import logging
from typing import Any, Dict, Mapping, Optional
from urllib.parse import quote

import httpx

from .config import Settings, get_settings
from .fallback import FallbackChain, FetchOutcome
from .location_codes import is_international, lookup_location_code
from .user_record import WeatherSnapshot

logger = logging.getLogger(__name__)

XIAOMI_ENDPOINT = "https://weatherapi.market.xiaomi.com/wtr-v3/weather/all"
XIAOMI_APP_KEY = "weather20151024"
XIAOMI_SIGN = "zUFJoAR2ZVrDy1vF3D07"
XIAOMI_USER_AGENT = (
    "Mozilla/5.0 (Linux; Android 12; Pixel 6) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Mobile Safari/537.36"
)
WTTR_ENDPOINT = "https://wttr.in/{city}"
USER_AGENT = "MyEdge-Portfolio"

PRIMARY_SOURCE = "xiaomi"
SECONDARY_SOURCE = "wttr.in"

XIAOMI_DESCRIPTIONS: Dict[int, str] = {
    0: "Sunny",
    1: "Cloudy",
    2: "Overcast",
    3: "Showers",
    4: "Thunderstorm",
    5: "Thunderstorm with hail",
    6: "Sleet",
    7: "Light rain",
    8: "Moderate rain",
    9: "Heavy rain",
    10: "Rainstorm",
    11: "Heavy rainstorm",
    12: "Severe rainstorm",
    13: "Snow showers",
    14: "Light snow",
    15: "Moderate snow",
    16: "Heavy snow",
    17: "Snowstorm",
    18: "Fog",
    19: "Freezing rain",
    20: "Sandstorm",
    21: "Light to moderate rain",
    22: "Moderate to heavy rain",
    23: "Heavy rain to rainstorm",
    24: "Rainstorm to heavy rainstorm",
    25: "Heavy to severe rainstorm",
    26: "Light to moderate snow",
    27: "Moderate to heavy snow",
    28: "Heavy snow to snowstorm",
    29: "Floating dust",
    30: "Blowing sand",
    31: "Severe sandstorm",
    32: "Squall",
    33: "Tornado",
    34: "Blowing snow",
    35: "Mist",
    53: "Haze",
    99: "Unknown",
}

WTTR_ICON_GROUPS = (
    ({113}, "☀️"),
    ({116}, "⛅"),
    ({119, 122}, "☁️"),
    ({143, 248, 260}, "🌫️"),
    (
        {176, 263, 266, 281, 284, 293, 296, 299, 302, 305, 308, 311, 314, 317, 320, 353, 356, 359, 362, 365},
        "🌧️",
    ),
    ({179, 182, 185, 227, 230, 323, 326, 329, 332, 335, 338, 350, 368, 371, 374, 377}, "❄️"),
    ({200, 386, 389, 392, 395}, "⛈️"),
)

DEFAULT_ICON = "🌤️"


def xiaomi_description(code: int) -> str:
    return XIAOMI_DESCRIPTIONS.get(code, "Unknown")


def xiaomi_icon(code: int) -> str:
    if code == 0:
        return "☀️"
    if code == 1:
        return "⛅"
    if code == 2:
        return "☁️"
    if code in (3, 21):
        return "🌦️"
    if code in (4, 5):
        return "⛈️"
    if code in (6, 13, 19):
        return "🌨️"
    if 7 <= code <= 12 or 22 <= code <= 25:
        return "🌧️"
    if 14 <= code <= 17 or 26 <= code <= 28 or code == 34:
        return "❄️"
    if code in (18, 35):
        return "🌫️"
    if code in (20, 29, 30, 31):
        return "🏜️"
    if code in (32, 33):
        return "🌪️"
    if code == 53:
        return "😷"
    if code == 99:
        return "❓"
    return DEFAULT_ICON


def wttr_icon(code: int) -> str:
    for codes, icon in WTTR_ICON_GROUPS:
        if code in codes:
            return icon
    return DEFAULT_ICON


def _to_int(value: Any, default: int) -> int:
    try:
        return int(round(float(value)))
    except (TypeError, ValueError):
        return default


def _nested(payload: Any, *path: Any) -> Any:
    current = payload
    for key in path:
        if isinstance(current, Mapping):
            current = current.get(key)
        elif isinstance(current, list) and isinstance(key, int):
            current = current[key] if len(current) > key else None
        else:
            return None
    return current


def default_weather(city: str) -> WeatherSnapshot:
    return WeatherSnapshot(
        city=city,
        temp=22,
        feels=23,
        humidity=50,
        wind=10,
        desc="Updating",
        icon=DEFAULT_ICON,
        source="fallback",
    )


def parse_xiaomi(city: str, payload: Any) -> Optional[WeatherSnapshot]:
    current = _nested(payload, "current")
    if not isinstance(current, Mapping):
        return None
    code = _to_int(current.get("weather"), 0)
    temperature = _nested(current, "temperature", "value")
    aqi = _nested(payload, "aqi") or {}
    return WeatherSnapshot(
        city=city,
        temp=_to_int(temperature, 22),
        feels=_to_int(_nested(current, "feelsLike", "value") or temperature, 22),
        humidity=_to_int(_nested(current, "humidity", "value"), 50),
        wind=_to_int(_nested(current, "wind", "speed", "value"), 10),
        desc=xiaomi_description(code),
        icon=xiaomi_icon(code),
        source=PRIMARY_SOURCE,
        aqi=aqi.get("aqi") or None,
        pm25=aqi.get("pm25") or None,
        pm10=aqi.get("pm10") or None,
        uv_index=current.get("uvIndex") or None,
        pressure=_nested(current, "pressure", "value") or None,
        visibility=_nested(current, "visibility", "value") or None,
        pub_time=current.get("pubTime") or None,
    )


def parse_wttr(city: str, payload: Any) -> Optional[WeatherSnapshot]:
    current = _nested(payload, "current_condition", 0)
    if not isinstance(current, Mapping):
        return None
    return WeatherSnapshot(
        city=_nested(payload, "nearest_area", 0, "areaName", 0, "value") or city,
        temp=_to_int(current.get("temp_C"), 22),
        feels=_to_int(current.get("FeelsLikeC"), 23),
        humidity=_to_int(current.get("humidity"), 50),
        wind=_to_int(current.get("windspeedKmph"), 10),
        desc=_nested(current, "weatherDesc", 0, "value") or "Clear",
        icon=wttr_icon(_to_int(current.get("weatherCode"), 0)),
        source=SECONDARY_SOURCE,
    )


class WeatherService:
    """Location-code source first, wttr.in second, static default last."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        *,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        resolved = settings or get_settings()
        self._timeout = resolved.upstream_timeout_seconds
        self._client = client
        self._chain: FallbackChain[str, WeatherSnapshot] = FallbackChain(
            "weather",
            [(PRIMARY_SOURCE, self._by_location_code), (SECONDARY_SOURCE, self.secondary)],
            default_weather,
            timeout_seconds=self._timeout,
        )

    async def _get_json(self, url: str, *, params: Optional[Dict[str, str]] = None, headers: Dict[str, str]) -> Any:
        local_client = self._client or httpx.AsyncClient(timeout=self._timeout)
        close_client = self._client is None
        try:
            response = await local_client.get(url, params=params, headers=headers)
            response.raise_for_status()
            return response.json()
        finally:
            if close_client:
                await local_client.aclose()

    async def _by_location_code(self, city: str) -> Optional[WeatherSnapshot]:
        code = lookup_location_code(city)
        if code is None:
            logger.debug("No location code for %r; using freeform lookup", city)
            return None
        return await self.primary(code, city=city)

    async def primary(self, location_code: str, *, city: Optional[str] = None) -> Optional[WeatherSnapshot]:
        params = {
            "latitude": "0",
            "longitude": "0",
            "locationKey": f"weathercn:{location_code}",
            "days": "1",
            "appKey": XIAOMI_APP_KEY,
            "sign": XIAOMI_SIGN,
            "isGlobal": "false",
            "locale": "zh_cn",
        }
        payload = await self._get_json(XIAOMI_ENDPOINT, params=params, headers={"User-Agent": XIAOMI_USER_AGENT})
        return parse_xiaomi(city or location_code, payload)

    async def secondary(self, city: str) -> Optional[WeatherSnapshot]:
        url = WTTR_ENDPOINT.format(city=quote(city.strip(), safe=""))
        payload = await self._get_json(url, params={"format": "j1"}, headers={"User-Agent": USER_AGENT})
        return parse_wttr(city, payload)

    async def fetch(self, city: str) -> FetchOutcome[WeatherSnapshot]:
        skip = (PRIMARY_SOURCE,) if is_international(city) else ()
        outcome = await self._chain.fetch(city.strip(), skip=skip)
        if outcome.degraded:
            logger.info("Weather for %r served by %s (%s)", city, outcome.source, "; ".join(outcome.errors))
        return outcome


__all__ = [
    "WeatherService",
    "default_weather",
    "parse_wttr",
    "parse_xiaomi",
    "wttr_icon",
    "xiaomi_description",
    "xiaomi_icon",
]
