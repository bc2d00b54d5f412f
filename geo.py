import math
from datetime import date, datetime, timedelta
from typing import Any, List, Optional, Tuple

from bson import ObjectId

EARTH_RADIUS_MILES = 3958.8
MAX_AGE = 120


def haversine_miles(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance in miles between two coordinates."""
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    dphi = math.radians(lat2 - lat1)
    dlambda = math.radians(lon2 - lon1)
    a = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlambda / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_MILES * c


def has_coordinates(doc: Optional[dict]) -> bool:
    return bool(doc) and doc.get("latitude") is not None and doc.get("longitude") is not None


def within_distance(me: Optional[dict], other: dict, max_miles: Optional[float]) -> bool:
    # Either side without coordinates is never filtered out.
    if max_miles is None or not has_coordinates(me) or not has_coordinates(other):
        return True
    miles = haversine_miles(float(me["latitude"]), float(me["longitude"]),
                            float(other["latitude"]), float(other["longitude"]))
    return miles <= max_miles


def calculate_age(birthday: Any, today: Optional[date] = None) -> Optional[int]:
    if not birthday:
        return None
    if isinstance(birthday, str):
        try:
            birthday = datetime.fromisoformat(birthday)
        except ValueError:
            return None
    if isinstance(birthday, datetime):
        birthday = birthday.date()
    today = today or date.today()
    if isinstance(today, datetime):
        today = today.date()
    age = today.year - birthday.year
    if (today.month, today.day) < (birthday.month, birthday.day):
        age -= 1
    return age


def _years_before(day: date, years: int) -> date:
    try:
        return day.replace(year=day.year - years)
    except ValueError:
        # Feb 29 -> Feb 28 in non-leap years
        return day.replace(year=day.year - years, day=28)


def birthday_range(min_age: int, max_age: int, now: datetime) -> Tuple[datetime, datetime]:
    """
    Birthday bounds for an inclusive age band at day precision.

    Returns (lower, upper_exclusive): a birthday b is in the band iff
    lower <= b < upper_exclusive. The upper edge is the youngest allowed
    birthday (min_age years ago, whole day included); the lower edge is the
    day after (max_age + 1) years ago.
    """
    today = now.date() if isinstance(now, datetime) else now
    min_age = min(max(min_age, 0), MAX_AGE)
    max_age = min(max(max_age, 0), MAX_AGE)
    youngest = _years_before(today, min_age) + timedelta(days=1)
    oldest = _years_before(today, max_age + 1) + timedelta(days=1)
    return (datetime.combine(oldest, datetime.min.time()),
            datetime.combine(youngest, datetime.min.time()))


def age_in_band(birthday: Any, min_age: Optional[float], max_age: Optional[float], today: date) -> bool:
    if min_age is None and max_age is None:
        return True
    age = calculate_age(birthday, today)
    if age is None:
        return False
    if min_age is not None and age < min_age:
        return False
    if max_age is not None and age > max_age:
        return False
    return True


# Query coercion: malformed values are ignored rather than rejected.

def to_number(value: Any) -> Optional[float]:
    if value is None:
        return None
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value) if math.isfinite(value) else None
    text = str(value).strip()
    if not text:
        return None
    try:
        number = float(text)
    except ValueError:
        return None
    return number if math.isfinite(number) else None


def to_int(value: Any) -> Optional[int]:
    number = to_number(value)
    return int(number) if number is not None else None


def to_age(value: Any) -> Optional[int]:
    """Age query value, or None when missing, malformed or outside 0..MAX_AGE."""
    age = to_int(value)
    if age is None or not 0 <= age <= MAX_AGE:
        return None
    return age


def split_csv(value: Optional[str]) -> List[str]:
    if not value:
        return []
    return [part.strip() for part in str(value).split(",") if part.strip()]


def object_ids(values) -> List[ObjectId]:
    return [ObjectId(v) if not isinstance(v, ObjectId) else v
            for v in values if isinstance(v, ObjectId) or ObjectId.is_valid(str(v))]


def to_object_id(value: Any) -> Optional[ObjectId]:
    if isinstance(value, ObjectId):
        return value
    if value is None or not ObjectId.is_valid(str(value)):
        return None
    return ObjectId(str(value))
