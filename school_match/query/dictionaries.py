"""Keyword tables (English / Russian / Kazakh) for the school query parser.

Each table maps a canonical filter value to the lowercase keywords that select it. Keywords are
matched against normalized text (see `normalize_query`): a keyword must start at a word boundary,
and short keywords (three characters or fewer) must also end at one, so "гос" or "ai" never fire
inside unrelated words. Longer keywords act as stems ("англ" matches "английский") unless they
are listed in `WHOLE_WORD_KEYWORDS`.

Tables are read-only module data and their declaration order is the output order of the parser.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Generic, TypeVar

from school_match.query.schema import (
    Accreditation,
    City,
    Curriculum,
    Language,
    Meal,
    Service,
    SchoolType,
    SortOption,
    Specialist,
    Subject,
)

T = TypeVar("T")

SHORT_KEYWORD_LENGTH = 3

# Longer keywords that are whole words, not stems ("near" must not match "nearly").
WHOLE_WORD_KEYWORDS: frozenset[str] = frozenset({"near", "free", "paid", "data", "media", "state"})

CITY_KEYWORDS: dict[City, tuple[str, ...]] = {
    # Case forms are listed explicitly: a bare stem would also match "алматинский" or
    # "карагандинский", which name districts and regions of other cities.
    City.almaty: ("almaty", "алматы", "алмата", "алмате", "алмату", "алматой"),
    City.astana: (
        "astana",
        "астана",
        "астаны",
        "астане",
        "астану",
        "астаной",
        "nursultan",
        "nur-sultan",
        "нурсултан",
        "нур-султан",
        "нур султан",
    ),
    City.karaganda: ("karaganda", "караганда", "караганды", "караганде", "караганду", "карагандой"),
}

# Areas are keyed by their canonical (directory) name; "City" in Karaganda is only reachable
# through explicit district phrases.
AREA_KEYWORDS: dict[City, dict[str, tuple[str, ...]]] = {
    City.almaty: {
        "Almaly": ("almaly", "алмалин"),
        "Auezov": ("auezov", "ауэзов", "әуезов"),
        "Bostandyk": ("bostandyk", "бостандык"),
        "Zhetysu": ("zhetysu", "жетысу", "жетісу"),
        "Medeu": ("medeu", "медеу"),
        "Nauryzbay": ("nauryzbay", "наурызбай"),
    },
    City.astana: {
        "Almaty district": ("almaty district", "алматинск", "алматы район", "район алматы"),
        "Baikonur": ("baikonur", "байконур", "байконыр"),
        "Yesil": ("yesil", "esil", "есиль", "есил", "есіл"),
        "Saryarka": ("saryarka", "сарыарк"),
        "Nura": ("nura district", "район нура", "нуринский"),
    },
    City.karaganda: {
        "City": ("city district", "kazybek bi", "казыбек би", "район казыбек"),
        "Maikudyk": ("maikudyk", "майкудук"),
        "South-East": ("south-east", "south east", "юго-восток"),
        "Prishakhtinsk": ("prishakhtinsk", "пришахтинск"),
        "Sortirovka": ("sortirovka", "сортировк"),
    },
}

TYPE_KEYWORDS: dict[SchoolType, tuple[str, ...]] = {
    SchoolType.state: ("state", "public", "государ", "гос"),
    SchoolType.private: ("private", "частн"),
    SchoolType.international: ("international", "междунар"),
}

LANGUAGE_KEYWORDS: dict[Language, tuple[str, ...]] = {
    Language.english: ("english", "англ"),
    Language.russian: ("russian", "русск"),
    Language.kazakh: ("kazakh", "казах", "қазақ"),
}

CURRICULA_KEYWORDS: dict[Curriculum, tuple[str, ...]] = {
    Curriculum.state_program: ("state program", "гос программа", "государственная программа", "госпрограмм"),
    Curriculum.updated_content: ("updated content", "обновленное содержание", "обновлен"),
    Curriculum.nis: ("nis", "ниш", "назарбаев", "интегрированная программа"),
    Curriculum.cambridge_primary: ("cambridge primary",),
    Curriculum.cambridge_lower_secondary: ("cambridge lower", "lower secondary"),
    Curriculum.cambridge_igcse: ("igcse", "cambridge igcse"),
    Curriculum.cambridge_a_level: ("a-level", "a level", "alevel"),
    Curriculum.ib_pyp: ("ib pyp", "pyp", "international baccalaureate"),
    Curriculum.steam: ("steam",),
    Curriculum.stem: ("stem",),
    Curriculum.montessori: ("montessori", "монтессори"),
    Curriculum.waldorf: ("waldorf", "вальдорф"),
    Curriculum.american: ("american curriculum", "american", "американск"),
    Curriculum.british: ("british national", "british curriculum", "британск"),
    Curriculum.bilingual: ("bilingual", "билингв", "двуязыч"),
    Curriculum.author: ("author program", "авторская программа", "авторск"),
}

CAMBRIDGE_KEYWORD = "cambridge"
# A bare "cambridge" with no specific Cambridge program falls back to IGCSE, the most common
# Cambridge qualification offered in the directory.
CAMBRIDGE_DEFAULT = Curriculum.cambridge_igcse
CAMBRIDGE_CURRICULA: frozenset[Curriculum] = frozenset(
    {
        Curriculum.cambridge_primary,
        Curriculum.cambridge_lower_secondary,
        Curriculum.cambridge_igcse,
        Curriculum.cambridge_a_level,
    }
)

SUBJECT_KEYWORDS: dict[Subject, tuple[str, ...]] = {
    Subject.mathematics: ("math", "математ", "алгебр", "геометр"),
    Subject.physics: ("physics", "физик"),
    Subject.chemistry: ("chem", "хими"),
    Subject.biology: ("biology", "биолог"),
    Subject.computer_science: ("computer science", "cs", "информат", "программир", "компьютерн"),
    Subject.robotics: ("robot", "робот"),
    Subject.engineering: ("engineering", "инженер"),
    Subject.artificial_intelligence: ("artificial intelligence", "искусственный интеллект", "ии", "ai"),
    Subject.data_science: ("data science", "data", "анализ данных", "аналитик"),
    Subject.economics: ("econom", "эконом"),
    Subject.business: ("business", "бизнес"),
    Subject.entrepreneurship: ("entrepreneur", "предприним"),
    Subject.english_language: ("english language", "английский язык"),
    Subject.world_history: ("world history", "history", "истор"),
    Subject.geography: ("geograph", "географ"),
    Subject.design_technology: ("design & technology", "design and technology", "design technology", "дизайн и технолог"),
    Subject.art_design: ("art", "arts", "art & design", "искусство", "искусства", "изобразительн", "рисован"),
    Subject.music: ("music", "музык"),
    Subject.media_studies: ("media", "медиа", "журналист"),
    Subject.psychology: ("psychology", "психологи"),
}

SPECIALIST_KEYWORDS: dict[Specialist, tuple[str, ...]] = {
    Specialist.psychologist: ("psychologist", "психолог"),
    Specialist.speech_therapist: ("speech therapist", "логопед"),
    Specialist.social_worker: ("social worker", "соц работник", "социальный педагог", "социальный работник"),
    Specialist.tutor: ("tutor", "тьютор"),
    Specialist.special_education_teacher: ("special education", "спец педагог", "special needs teacher"),
    Specialist.nurse: ("nurse", "медсестр"),
    Specialist.defectologist: ("defectologist", "дефектолог"),
}

SERVICE_KEYWORDS: dict[Service, tuple[str, ...]] = {
    Service.after_school: ("after school", "after-school", "продленного дня", "продленк", "продлен"),
    Service.transport: ("transport", "bus", "buses", "shuttle", "транспорт", "подвоз", "автобус"),
    Service.inclusive_education: ("inclusive", "инклюзив", "особые", "special needs", "овз"),
    Service.security: ("security", "охрана", "охраной", "безопасн"),
    Service.cameras: ("cctv", "camera", "видеонаблюд", "камер"),
    Service.access_control: ("access control", "пропуск", "турникет", "контроль доступа"),
    Service.medical_office: ("medical office", "medical", "медпункт", "мед кабинет", "медицин"),
}

MEAL_KEYWORDS: dict[Meal, tuple[str, ...]] = {
    Meal.free: ("free meals", "free lunch", "free", "бесплат"),
    Meal.paid: ("paid meals", "paid", "платн"),
    Meal.no_meals: ("no meals", "без питания", "нет питания"),
}

ACCREDITATION_KEYWORDS: dict[Accreditation, tuple[str, ...]] = {
    Accreditation.license: ("license", "licence", "лиценз"),
    Accreditation.certificates: ("certificate", "сертификат"),
}

# "No" phrases win over "Yes" phrases when both are present.
EXAM_NO_KEYWORDS: tuple[str, ...] = (
    "no exam",
    "no entrance exam",
    "without exam",
    "without entrance exam",
    "без экзамен",
    "без вступительн",
)
EXAM_YES_KEYWORDS: tuple[str, ...] = (
    "exam required",
    "with exam",
    "entrance exam",
    "с экзамен",
    "вступительн",
)
# Leftover exam vocabulary removed from the remainder once an exam requirement is detected.
EXAM_STEMS: tuple[str, ...] = ("exam", "экзамен", "вступительн", "entrance", "required", "обязательн")

SORT_KEYWORDS: dict[SortOption, tuple[str, ...]] = {
    SortOption.rating_desc: ("rating", "по рейтингу", "рейтинг"),
    SortOption.price_asc: ("дешев", "cheap", "low price", "price low", "подешевле"),
    SortOption.price_desc: ("дорог", "expensive", "price high", "подороже"),
    SortOption.reviews_desc: ("reviews", "отзыв"),
    SortOption.distance_asc: ("near", "nearby", "nearest", "рядом", "близко", "недалеко", "поблизости"),
    SortOption.name_asc: ("by name", "sort by name", "по названию", "по алфавиту", "alphabetical"),
    SortOption.updated_desc: ("recently updated", "newest", "новые", "свежие"),
}

NEARBY_SORT = SortOption.distance_asc

STOP_WORDS: frozenset[str] = frozenset(
    {
        "school",
        "schools",
        "школа",
        "школы",
        "школу",
        "школе",
        "в",
        "во",
        "на",
        "по",
        "для",
        "с",
        "и",
        "или",
        "рядом",
        "near",
        "nearby",
        "нужна",
        "нужны",
        "нужен",
        "хочу",
        "ищу",
        "найти",
        "найди",
        "помогите",
        "подобрать",
        "подберите",
        "можно",
        "пожалуйста",
        "please",
        "with",
        "and",
        "the",
        "for",
        "from",
        "in",
        "home",
        "дом",
        "дома",
        "домом",
        "want",
        "need",
        "looking",
        "find",
        "район",
        "района",
        "районе",
        "district",
    }
)


@dataclass(frozen=True)
class TableMatch(Generic[T]):
    """Canonical values selected by a keyword table and the keywords that selected them."""

    values: tuple[T, ...]
    keywords: tuple[str, ...]


@lru_cache(maxsize=None)
def keyword_pattern(keyword: str) -> re.Pattern[str]:
    """Compile the boundary-aware pattern used for a keyword."""

    whole_word = len(keyword) <= SHORT_KEYWORD_LENGTH or keyword in WHOLE_WORD_KEYWORDS
    end = r"(?!\w)" if whole_word else ""
    return re.compile(rf"(?<!\w){re.escape(keyword)}{end}")


def contains_keyword(text: str, keyword: str) -> bool:
    """Whether `keyword` occurs in already-normalized `text`."""

    return keyword_pattern(keyword).search(text) is not None


def contains_any(text: str, keywords: tuple[str, ...] | list[str]) -> bool:
    return any(contains_keyword(text, kw) for kw in keywords)


def match_table(text: str, table: dict[T, tuple[str, ...]]) -> TableMatch[T]:
    """Select every canonical value whose keywords occur in `text`.

    Matches are inclusive: two values of the same table may both be selected by one phrase.
    Values come out in table declaration order; keywords are de-duplicated in first-seen order.
    """

    values: list[T] = []
    keywords: list[str] = []
    for value, value_keywords in table.items():
        for kw in value_keywords:
            if not contains_keyword(text, kw):
                continue
            if value not in values:
                values.append(value)
            if kw not in keywords:
                keywords.append(kw)
    return TableMatch(values=tuple(values), keywords=tuple(keywords))


def keyword_spans(text: str, keywords: tuple[str, ...] | list[str]) -> list[tuple[int, int]]:
    """Return `(start, end)` spans for every occurrence of every keyword."""

    spans: list[tuple[int, int]] = []
    for kw in keywords:
        spans.extend(m.span() for m in keyword_pattern(kw).finditer(text))
    return sorted(spans)


def area_keywords(city: City, area: str) -> tuple[str, ...]:
    """Keywords of a city's area; unknown areas fall back to their lowercased name."""

    return AREA_KEYWORDS.get(city, {}).get(area, (area.lower(),))
