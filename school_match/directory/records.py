"""School directory records.

Raw directory profiles are nested, partially localized JSON objects maintained by the school
directory (`basic_info`, `education`, `services`, `finance`, `reviews`, `system`, `media`,
`location`). The filter engine works on a flat, read-only `SchoolRecord` instead; every fallback
chain (e.g. "reviews.average_rating, else system.rating") is resolved here, once, at normalization
time rather than inside filter predicates.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

import dateparser
from dateparser.conf import Settings as DateparserSettings

from school_match.query.schema import to_number
from school_match.search.geo import GeoPoint

logger = logging.getLogger(__name__)

DEFAULT_LOCALE = "ru"

_DATEPARSER_SETTINGS = DateparserSettings().replace(
    DATE_ORDER="DMY",
    TIMEZONE="UTC",
    TO_TIMEZONE="UTC",
    RETURN_AS_TIMEZONE_AWARE=True,
)

SAFETY_SERVICES = ("security", "cameras", "access_control")
TOP_LEVEL_SERVICES = ("after_school", "transport", "inclusive_education", "medical_office")


@dataclass(frozen=True)
class SchoolRecord:
    """Flattened school attributes used for filtering and sorting.

    Optional values are real optionals: `None` means the directory has no value.
    """

    school_id: str
    name: str
    city: str = ""
    district: str = ""
    address: str = ""
    region: str = ""
    type: str = ""
    phone: str = ""
    languages: str = ""
    meals: str = ""
    curricula: tuple[str, ...] = ()
    subjects: tuple[str, ...] = ()
    specialists: tuple[str, ...] = ()
    clubs: tuple[str, ...] = ()
    services: frozenset[str] = field(default_factory=frozenset)
    has_license: bool = False
    has_certificates: bool = False
    entrance_exam_required: bool = False
    average_class_size: float | None = None
    rating: float | None = None
    reviews_count: int = 0
    monthly_fee: float | None = None
    coordinates: GeoPoint | None = None
    updated_at: datetime | None = None

    def search_text(self) -> str:
        """Lowercased concatenation of every free-text searchable field."""

        parts = [
            self.name,
            self.address,
            self.region,
            self.district,
            self.type,
            self.city,
            self.phone,
            self.languages,
            ", ".join(self.curricula),
            ", ".join(self.subjects),
            ", ".join(self.specialists),
            self.meals,
            ", ".join(self.clubs),
        ]
        return " ".join(p for p in parts if p).lower()


def _as_dict(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _to_int(value: Any) -> int | None:
    number = to_number(value)
    return int(number) if number is not None else None


def localized_text(value: Any, locale: str = DEFAULT_LOCALE) -> str:
    """Resolve a `{ru, en}` localized value: the locale first, then Russian, then English."""

    if isinstance(value, str):
        return value.strip()
    if not isinstance(value, dict):
        return ""
    for key in (locale, "ru", "en"):
        candidate = value.get(key)
        if isinstance(candidate, str) and candidate.strip():
            return candidate.strip()
    return ""


def localized_map_text(value: Any, locale: str = DEFAULT_LOCALE) -> str:
    """Like `localized_text`, but a localized value may itself be a mapping of parts."""

    if isinstance(value, str):
        return value.strip()
    if not isinstance(value, dict):
        return ""
    for key in (locale, "ru", "en"):
        candidate = value.get(key)
        if isinstance(candidate, str) and candidate.strip():
            return candidate.strip()
        if isinstance(candidate, dict):
            joined = ", ".join(str(v).strip() for v in candidate.values() if v and str(v).strip())
            if joined:
                return joined
    return ""


def split_list(value: Any) -> tuple[str, ...]:
    """Split comma-separated text (or a list of such texts) into trimmed, non-empty items."""

    if value is None:
        return ()
    if isinstance(value, (list, tuple)):
        items: list[str] = []
        for item in value:
            items.extend(split_list(item))
        return tuple(items)
    if not isinstance(value, str):
        return ()
    return tuple(part.strip() for part in value.split(",") if part.strip())


def _join_text(*values: Any) -> str:
    parts: list[str] = []
    for value in values:
        if isinstance(value, (list, tuple)):
            parts.extend(split_list(value))
        elif isinstance(value, str) and value.strip():
            parts.append(value.strip())
    return ", ".join(parts)


def parse_timestamp(value: Any) -> datetime | None:
    """Parse a last-updated value: ISO/RU date strings via dateparser, epoch seconds or millis."""

    if value is None or value == "" or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo is not None else value.replace(tzinfo=UTC)
    if isinstance(value, (int, float)):
        if not math.isfinite(value):
            return None
        seconds = value / 1000 if abs(value) > 1e11 else value
        try:
            return datetime.fromtimestamp(seconds, tz=UTC)
        except (OverflowError, OSError, ValueError):
            return None
    if not isinstance(value, str):
        return None

    try:
        dt = datetime.fromisoformat(value.strip())
    except ValueError:
        dt = dateparser.parse(value, languages=["ru", "en"], settings=_DATEPARSER_SETTINGS)
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt


def _has_text(value: Any) -> bool:
    return isinstance(value, str) and bool(value.strip())


def school_record_from_profile(profile: dict[str, Any], *, locale: str = DEFAULT_LOCALE) -> SchoolRecord:
    """Flatten a raw directory profile into a `SchoolRecord`."""

    basic_info = _as_dict(profile.get("basic_info"))
    education = _as_dict(profile.get("education"))
    services = _as_dict(profile.get("services"))
    safety = _as_dict(services.get("safety"))
    finance = _as_dict(profile.get("finance"))
    reviews = _as_dict(profile.get("reviews"))
    system = _as_dict(profile.get("system"))
    media = _as_dict(profile.get("media"))
    location = _as_dict(profile.get("location"))
    coordinates = _as_dict(basic_info.get("coordinates"))
    license_details = _as_dict(basic_info.get("license_details"))
    entrance_exam = _as_dict(education.get("entrance_exam"))
    curricula = _as_dict(education.get("curricula"))

    school_id = str(profile.get("school_id") or "").strip()
    name = (
        localized_text(basic_info.get("display_name"), locale)
        or localized_text(basic_info.get("name"), locale)
        or school_id
    )

    rating = to_number(reviews.get("average_rating"))
    if rating is None:
        rating = to_number(system.get("rating"))

    reviews_count = _to_int(reviews.get("count"))
    if reviews_count is None:
        reviews_count = _to_int(system.get("reviews_count"))

    latitude = to_number(coordinates.get("latitude"))
    longitude = to_number(coordinates.get("longitude"))

    exam_format = entrance_exam.get("format")
    entrance_exam_required = bool(exam_format and exam_format != "None") or bool(entrance_exam.get("required"))

    has_license = _has_text(basic_info.get("license_accreditation")) or any(
        _has_text(license_details.get(key)) for key in ("number", "issued_at", "valid_until")
    )

    service_flags = {key for key in TOP_LEVEL_SERVICES if services.get(key)}
    service_flags.update(key for key in SAFETY_SERVICES if safety.get(key))

    updated_raw = system.get("updated_at") or basic_info.get("updated_at") or profile.get("updated_at")

    return SchoolRecord(
        school_id=school_id,
        name=name,
        city=str(basic_info.get("city") or "").strip(),
        district=str(basic_info.get("district") or "").strip(),
        address=localized_text(basic_info.get("address"), locale),
        region=localized_map_text(location.get("service_area"), locale),
        type=str(basic_info.get("type") or "").strip(),
        phone=str(basic_info.get("phone") or "").strip(),
        languages=_join_text(education.get("languages"), localized_text(education.get("languages_other"), locale)),
        meals=str(services.get("meals_status") or services.get("meals") or "").strip(),
        curricula=(
            *split_list(curricula.get("national")),
            *split_list(curricula.get("international")),
            *split_list(curricula.get("additional")),
            *split_list(localized_text(curricula.get("other"), locale)),
        ),
        subjects=(
            *split_list(education.get("advanced_subjects")),
            *split_list(localized_text(education.get("advanced_subjects_other"), locale)),
        ),
        specialists=(
            *split_list(services.get("specialists")),
            *split_list(localized_text(services.get("specialists_other"), locale)),
        ),
        clubs=(
            *split_list(services.get("clubs")),
            *split_list(localized_map_text(services.get("clubs_other"), locale)),
        ),
        services=frozenset(service_flags),
        has_license=has_license,
        has_certificates=_has_text(media.get("certificates")),
        entrance_exam_required=entrance_exam_required,
        average_class_size=to_number(education.get("average_class_size")),
        rating=rating,
        reviews_count=reviews_count or 0,
        monthly_fee=to_number(finance.get("monthly_fee")),
        coordinates=GeoPoint(latitude, longitude) if latitude is not None and longitude is not None else None,
        updated_at=parse_timestamp(updated_raw),
    )


def school_records_from_profiles(
        profiles: Iterable[Any],
        *,
        locale: str = DEFAULT_LOCALE,
) -> list[SchoolRecord]:
    """Normalize many raw profiles, skipping (and logging) entries that are not JSON objects."""

    records: list[SchoolRecord] = []
    for index, profile in enumerate(profiles):
        if not isinstance(profile, dict):
            logger.warning("skipping malformed school profile index=%d type=%s", index, type(profile).__name__)
            continue
        records.append(school_record_from_profile(profile, locale=locale))
    return records
