from datetime import date
from typing import Any, Dict, List, Optional

import config
from geo import calculate_age


def base_url_from_headers(headers) -> str:
    proto = headers.get("x-forwarded-proto") or "http"
    host = headers.get("host") or "localhost"
    return f"{proto}://{host}"


def _local_photo_url(filename: str, base_url: str) -> Optional[str]:
    if filename and (config.UPLOADS_DIR / "profile-photos" / filename).is_file():
        return f"{base_url}{config.UPLOADS_PREFIX}{filename}"
    return None


def resolve_image_url(raw: Any, base_url: str) -> str:
    """Absolute URL for a stored photo reference, or the default asset."""
    default_url = f"{base_url}{config.DEFAULT_PROFILE_IMAGE}"
    if not raw or not isinstance(raw, str):
        return default_url

    if raw.startswith("http://") or raw.startswith("https://"):
        # external images are served as-is, our own uploads are re-based
        if config.UPLOADS_PREFIX not in raw:
            return raw
        filename = raw.rsplit("/", 1)[-1]
        return _local_photo_url(filename, base_url) or default_url

    if config.UPLOADS_PREFIX in raw:
        raw = raw[raw.rfind(config.UPLOADS_PREFIX) + len(config.UPLOADS_PREFIX):]
    # file:///... paths from the mobile client keep only the basename
    filename = raw.rsplit("/", 1)[-1]
    return _local_photo_url(filename, base_url) or default_url


def profile_image_url(user: Dict[str, Any], base_url: str) -> str:
    photos = user.get("photos") or []
    raw = user.get("profileImage") or (photos[0] if photos else None)
    return resolve_image_url(raw, base_url)


def portfolio_image_urls(user: Dict[str, Any], base_url: str) -> List[str]:
    return [resolve_image_url(p, base_url) for p in (user.get("photos") or [])]


def to_card(user: Dict[str, Any], base_url: str, today: Optional[date] = None) -> Dict[str, Any]:
    return {
        "id": str(user["_id"]),
        "name": user.get("name"),
        "age": calculate_age(user.get("birthday"), today),
        "currentCity": user.get("currentCity") or None,
        "profileType": user.get("profileType") or "personal",
        "profileImage": profile_image_url(user, base_url),
        "portfolioImages": portfolio_image_urls(user, base_url),
    }
