"""Resolve the "nearby" constraint against the caller's location.

The user location comes from an external capability (a shared Telegram location, a device API)
before filtering starts. When it is missing the search still runs: `use_nearby` is switched off
and a user-facing message explains why.
"""

from __future__ import annotations

from dataclasses import dataclass

from school_match.query.schema import ParsedFilter
from school_match.search.geo import GeoPoint

LOCATION_UNAVAILABLE_MESSAGE = (
    "Не удалось определить ваше местоположение: поиск рядом отключён. "
    "Отправьте геолокацию, чтобы искать школы поблизости."
)


@dataclass(frozen=True)
class NearbyResolution:
    """Filters ready for the engine plus an optional user-facing location error."""

    filters: ParsedFilter
    user_location: GeoPoint | None
    error: str | None = None


def resolve_nearby(filters: ParsedFilter, user_location: GeoPoint | None) -> NearbyResolution:
    """Force `use_nearby=False` when the nearby filter is requested without a usable location."""

    if user_location is not None and not user_location.is_finite:
        user_location = None

    if filters.use_nearby and user_location is None:
        return NearbyResolution(
            filters=filters.model_copy(update={"use_nearby": False}),
            user_location=None,
            error=LOCATION_UNAVAILABLE_MESSAGE,
        )
    return NearbyResolution(filters=filters, user_location=user_location)
