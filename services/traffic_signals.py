"""
Derive device, browser and traffic source from what the client reports.
"""

from typing import Any, Optional
from urllib.parse import urlparse, parse_qs

from services.enums import DeviceType, TrafficSource

MOBILE_MAX_WIDTH = 768
TABLET_MAX_WIDTH = 1024

SEARCH_ENGINE_HOSTS = ('google', 'bing', 'yahoo')
SOCIAL_HOSTS = ('facebook', 'twitter', 'linkedin', 'instagram')


def derive_device_type(viewport_width: Any) -> str:
    """mobile below 768px, tablet below 1024px, otherwise desktop"""
    try:
        width = float(viewport_width)
    except (TypeError, ValueError):
        return DeviceType.DESKTOP.value

    if width < MOBILE_MAX_WIDTH:
        return DeviceType.MOBILE.value
    if width < TABLET_MAX_WIDTH:
        return DeviceType.TABLET.value
    return DeviceType.DESKTOP.value


def derive_browser(user_agent: Optional[str]) -> str:
    if not user_agent:
        return 'unknown'
    # Order matters: Edge and Chrome user agents also mention Chrome and Safari
    if 'Edg' in user_agent:
        return 'edge'
    if 'Chrome' in user_agent or 'CriOS' in user_agent:
        return 'chrome'
    if 'Firefox' in user_agent or 'FxiOS' in user_agent:
        return 'firefox'
    if 'Safari' in user_agent:
        return 'safari'
    return 'other'


def derive_traffic_source(referrer: Optional[str]) -> str:
    """
    Classify the referring URL.

    Search engines count as paid when the referrer carries a gclid parameter.
    A missing or unparseable referrer is treated as direct traffic.
    """
    if not referrer:
        return TrafficSource.DIRECT.value

    try:
        parsed = urlparse(referrer)
        host = (parsed.hostname or '').lower()
    except ValueError:
        return TrafficSource.DIRECT.value

    if not host:
        return TrafficSource.DIRECT.value

    if any(name in host for name in SEARCH_ENGINE_HOSTS):
        if parse_qs(parsed.query).get('gclid'):
            return TrafficSource.PAID.value
        return TrafficSource.ORGANIC.value

    if any(name in host for name in SOCIAL_HOSTS):
        return TrafficSource.SOCIAL.value

    return TrafficSource.REFERRAL.value
