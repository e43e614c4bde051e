"""ParsedFilter schema (Pydantic models) and canonical filter domains.

This schema is the contract between the query parsers (local rules / remote LLM) and the
deterministic filter/sort engine. Every parser output passes through `ParsedFilter` validation,
which coerces instead of rejecting: values outside a canonical domain are dropped, numbers are
clamped into range, and anything unusable falls back to the field default.
"""

from __future__ import annotations

import math
from enum import StrEnum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

PRICE_MIN = 0
PRICE_MAX = 400_000
MAX_QUERY_LENGTH = 1500


class City(StrEnum):
    """Cities covered by the school directory."""

    almaty = "Almaty"
    astana = "Astana"
    karaganda = "Karaganda"


class SchoolType(StrEnum):
    """Ownership type of a school."""

    state = "State"
    private = "Private"
    international = "International"


class Language(StrEnum):
    """Languages of instruction."""

    english = "English"
    russian = "Russian"
    kazakh = "Kazakh"


class Curriculum(StrEnum):
    """Curricula and educational programs."""

    state_program = "State program (Kazakhstan)"
    updated_content = "Updated content"
    nis = "NIS Integrated Program"
    cambridge_primary = "Cambridge Primary"
    cambridge_lower_secondary = "Cambridge Lower Secondary"
    cambridge_igcse = "Cambridge IGCSE"
    cambridge_a_level = "Cambridge A-Level"
    ib_pyp = "IB PYP"
    steam = "STEAM"
    stem = "STEM"
    montessori = "Montessori"
    waldorf = "Waldorf"
    american = "American Curriculum"
    british = "British National Curriculum"
    bilingual = "Bilingual Program"
    author = "Author program"


class Subject(StrEnum):
    """Advanced (in-depth) subjects."""

    mathematics = "Mathematics"
    physics = "Physics"
    chemistry = "Chemistry"
    biology = "Biology"
    computer_science = "Computer Science"
    robotics = "Robotics"
    engineering = "Engineering"
    artificial_intelligence = "Artificial Intelligence"
    data_science = "Data Science"
    economics = "Economics"
    business = "Business"
    entrepreneurship = "Entrepreneurship"
    english_language = "English Language"
    world_history = "World History"
    geography = "Geography"
    design_technology = "Design & Technology"
    art_design = "Art & Design"
    music = "Music"
    media_studies = "Media Studies"
    psychology = "Psychology"


class Specialist(StrEnum):
    """Support specialists on staff."""

    psychologist = "Psychologist"
    speech_therapist = "Speech therapist"
    social_worker = "Social worker"
    tutor = "Tutor"
    special_education_teacher = "Special education teacher"
    nurse = "Nurse"
    defectologist = "Defectologist"


class Service(StrEnum):
    """Boolean service flags of a school."""

    after_school = "after_school"
    transport = "transport"
    inclusive_education = "inclusive_education"
    security = "security"
    cameras = "cameras"
    access_control = "access_control"
    medical_office = "medical_office"


class Meal(StrEnum):
    """Meal arrangements."""

    free = "Free"
    paid = "Paid"
    no_meals = "No meals"


class Accreditation(StrEnum):
    """Accreditation documents a school can present."""

    license = "License"
    certificates = "Certificates"


class SortOption(StrEnum):
    """Total orders supported by the filter/sort engine."""

    relevance = "relevance"
    rating_desc = "rating_desc"
    price_asc = "price_asc"
    price_desc = "price_desc"
    name_asc = "name_asc"
    reviews_desc = "reviews_desc"
    distance_asc = "distance_asc"
    updated_desc = "updated_desc"


ExamRequirement = Literal["Yes", "No"]

CITY_AREAS: dict[City, tuple[str, ...]] = {
    City.almaty: ("Almaly", "Auezov", "Bostandyk", "Zhetysu", "Medeu", "Nauryzbay"),
    City.astana: ("Almaty district", "Baikonur", "Yesil", "Saryarka", "Nura"),
    City.karaganda: ("City", "Maikudyk", "South-East", "Prishakhtinsk", "Sortirovka"),
}


def to_number(value: Any) -> float | None:
    """Coerce numbers and numeric strings ("4,5") to a finite float; anything else is `None`."""

    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, str):
        value = value.strip().replace(",", ".")
        if not value:
            return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def _to_non_negative_int(value: Any) -> int:
    number = to_number(value)
    if number is None:
        return 0
    return max(0, round(number))


def _filter_allowed(value: Any, domain: type[StrEnum]) -> list[StrEnum]:
    """Keep only items that belong to `domain`, de-duplicated in first-seen order."""

    if not isinstance(value, (list, tuple)):
        return []
    allowed = {member.value: member for member in domain}
    result: list[StrEnum] = []
    for item in value:
        if not isinstance(item, str):
            continue
        member = allowed.get(item.strip())
        if member is not None and member not in result:
            result.append(member)
    return result


def clamp_price(value: float) -> int:
    """Clamp a price into `[PRICE_MIN, PRICE_MAX]`."""

    return int(min(PRICE_MAX, max(PRICE_MIN, round(value))))


def normalize_price_range(value: Any) -> tuple[int, int]:
    """Coerce an arbitrary value into a valid `(min, max)` price range."""

    if not isinstance(value, (list, tuple)) or len(value) < 2:
        return PRICE_MIN, PRICE_MAX
    low = to_number(value[0])
    high = to_number(value[1])
    if low is None and high is None:
        return PRICE_MIN, PRICE_MAX
    low_price = clamp_price(PRICE_MIN if low is None else low)
    high_price = clamp_price(PRICE_MAX if high is None else high)
    if low_price > high_price:
        return high_price, low_price
    return low_price, high_price


class ParsedFilter(BaseModel):
    """Structured school filter produced from a free-text query.

    Field names are snake_case in Python and camelCase on the wire (`cityAreas`, `priceRange`, ...).
    Every list field only ever holds members of its canonical domain.
    """

    model_config = ConfigDict(
        extra="ignore",
        populate_by_name=True,
        str_strip_whitespace=True,
    )

    query: str = ""
    cities: list[City] = Field(default_factory=list)
    city_areas: dict[City, list[str]] = Field(default_factory=dict, alias="cityAreas")
    types: list[SchoolType] = Field(default_factory=list)
    languages: list[Language] = Field(default_factory=list)
    curricula: list[Curriculum] = Field(default_factory=list)
    subjects: list[Subject] = Field(default_factory=list)
    specialists: list[Specialist] = Field(default_factory=list)
    services: list[Service] = Field(default_factory=list)
    meals: list[Meal] = Field(default_factory=list)
    accreditations: list[Accreditation] = Field(default_factory=list)
    exam: ExamRequirement | None = None
    rating: float | None = None
    min_clubs: int = Field(default=0, alias="minClubs")
    min_class_size: int = Field(default=0, alias="minClassSize")
    price_range: tuple[int, int] = Field(default=(PRICE_MIN, PRICE_MAX), alias="priceRange")
    use_nearby: bool = Field(default=False, alias="useNearby")
    sort_option: SortOption | None = Field(default=None, alias="sortOption")

    @field_validator("query", mode="before")
    @classmethod
    def coerce_query(cls, value: Any) -> str:
        """Non-string queries become empty."""

        return value if isinstance(value, str) else ""

    @field_validator("cities", mode="before")
    @classmethod
    def coerce_cities(cls, value: Any) -> list[StrEnum]:
        return _filter_allowed(value, City)

    @field_validator("types", mode="before")
    @classmethod
    def coerce_types(cls, value: Any) -> list[StrEnum]:
        return _filter_allowed(value, SchoolType)

    @field_validator("languages", mode="before")
    @classmethod
    def coerce_languages(cls, value: Any) -> list[StrEnum]:
        return _filter_allowed(value, Language)

    @field_validator("curricula", mode="before")
    @classmethod
    def coerce_curricula(cls, value: Any) -> list[StrEnum]:
        return _filter_allowed(value, Curriculum)

    @field_validator("subjects", mode="before")
    @classmethod
    def coerce_subjects(cls, value: Any) -> list[StrEnum]:
        return _filter_allowed(value, Subject)

    @field_validator("specialists", mode="before")
    @classmethod
    def coerce_specialists(cls, value: Any) -> list[StrEnum]:
        return _filter_allowed(value, Specialist)

    @field_validator("services", mode="before")
    @classmethod
    def coerce_services(cls, value: Any) -> list[StrEnum]:
        return _filter_allowed(value, Service)

    @field_validator("meals", mode="before")
    @classmethod
    def coerce_meals(cls, value: Any) -> list[StrEnum]:
        return _filter_allowed(value, Meal)

    @field_validator("accreditations", mode="before")
    @classmethod
    def coerce_accreditations(cls, value: Any) -> list[StrEnum]:
        return _filter_allowed(value, Accreditation)

    @field_validator("city_areas", mode="before")
    @classmethod
    def coerce_city_areas(cls, value: Any) -> dict[City, list[str]]:
        """Keep known cities and, per city, only that city's known areas.

        A city with every one of its areas selected is the same as no area constraint, so it is
        dropped from the mapping.
        """

        if not isinstance(value, dict):
            return {}
        result: dict[City, list[str]] = {}
        for raw_city, raw_areas in value.items():
            cities = _filter_allowed([raw_city], City)
            if not cities or not isinstance(raw_areas, (list, tuple)):
                continue
            city = City(cities[0])
            known = CITY_AREAS[city]
            areas: list[str] = []
            for area in raw_areas:
                if isinstance(area, str) and area.strip() in known and area.strip() not in areas:
                    areas.append(area.strip())
            if areas and len(areas) < len(known):
                result[city] = areas
        return result

    @field_validator("exam", mode="before")
    @classmethod
    def coerce_exam(cls, value: Any) -> str | None:
        return value if value in ("Yes", "No") else None

    @field_validator("rating", mode="before")
    @classmethod
    def coerce_rating(cls, value: Any) -> float | None:
        number = to_number(value)
        if number is None:
            return None
        return max(0.0, min(5.0, number))

    @field_validator("min_clubs", "min_class_size", mode="before")
    @classmethod
    def coerce_min_counts(cls, value: Any) -> int:
        return _to_non_negative_int(value)

    @field_validator("price_range", mode="before")
    @classmethod
    def coerce_price_range(cls, value: Any) -> tuple[int, int]:
        return normalize_price_range(value)

    @field_validator("use_nearby", mode="before")
    @classmethod
    def coerce_use_nearby(cls, value: Any) -> bool:
        return bool(value)

    @field_validator("sort_option", mode="before")
    @classmethod
    def coerce_sort_option(cls, value: Any) -> str | None:
        allowed = {option.value for option in SortOption}
        return value if isinstance(value, str) and value in allowed else None

    @model_validator(mode="after")
    def include_area_cities(self) -> ParsedFilter:
        """Every city with selected areas must also be a selected city."""

        missing = [city for city in self.city_areas if city not in self.cities]
        if missing:
            self.cities = [*self.cities, *missing]
        return self

    @property
    def has_price_filter(self) -> bool:
        return self.price_range != (PRICE_MIN, PRICE_MAX)

    @property
    def active_areas(self) -> list[str]:
        """Union of selected areas across the selected cities."""

        return [area for city in self.cities for area in self.city_areas.get(city, [])]

    def has_structured_filters(self) -> bool:
        """Whether anything besides the free-text remainder narrows the result set."""

        return bool(
            self.cities
            or self.city_areas
            or self.types
            or self.languages
            or self.curricula
            or self.subjects
            or self.specialists
            or self.services
            or self.meals
            or self.accreditations
            or self.exam is not None
            or self.rating is not None
            or self.min_clubs > 0
            or self.min_class_size > 0
            or self.has_price_filter
            or self.use_nearby
        )

    def to_wire(self) -> dict[str, Any]:
        """Serialize using the camelCase wire names."""

        return self.model_dump(mode="json", by_alias=True)


def parsed_filter_from_obj(obj: Any) -> ParsedFilter:
    """Validate and sanitize a ParsedFilter from an arbitrary decoded JSON object.

    Raises:
        ValueError: If `obj` is not a JSON object at all.
    """

    if not isinstance(obj, dict):
        raise ValueError("ParsedFilter payload must be a JSON object")
    return ParsedFilter.model_validate(obj)
