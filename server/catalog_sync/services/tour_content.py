"""
Parser for the per-tour content-detail document.

The provider delivers overview, day narratives and inclusion lists as
loosely structured HTML fragments. This module understands a deliberately
small grammar of that markup:

* tags ``p br b strong i em u ul ol li span div h1..h6`` are removed, block
  tags become line breaks and ``li`` becomes a ``- `` bullet;
* the entities ``&nbsp; &amp; &lt; &gt; &quot; &#39; &apos; &rsquo; &lsquo;
  &rdquo; &ldquo; &ndash; &mdash; &hellip;`` are replaced;
* a place name is the text of ``<span class="city">``;
* a section title is the text of the first heading, else a leading
  ``<strong>``/``<b>``.

Anything outside that grammar is not interpreted. The extraction is fragile
against upstream markup changes: a miss yields ``None`` (field absent) and
never an exception, so content problems cannot fail a tour.
"""

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from ..models.tour import InclusionType
from ..schemas.catalog import CatalogTourContent

_BLOCK_TAGS = ("p", "div", "ul", "ol", "h1", "h2", "h3", "h4", "h5", "h6")
_INLINE_TAGS = ("b", "strong", "i", "em", "u", "span")

_BR_RE = re.compile(r"<br\s*/?>", re.IGNORECASE)
_LI_OPEN_RE = re.compile(r"<li(\s[^>]*)?>", re.IGNORECASE)
_LI_CLOSE_RE = re.compile(r"</li\s*>", re.IGNORECASE)
_BLOCK_RE = re.compile(r"</?(?:%s)(\s[^>]*)?>" % "|".join(_BLOCK_TAGS), re.IGNORECASE)
_INLINE_RE = re.compile(r"</?(?:%s)(\s[^>]*)?>" % "|".join(_INLINE_TAGS), re.IGNORECASE)
_LI_ITEM_RE = re.compile(r"<li(?:\s[^>]*)?>(.*?)</li\s*>", re.IGNORECASE | re.DOTALL)

_CITY_RE = re.compile(
    r"<span[^>]*\bclass\s*=\s*[\"']city[\"'][^>]*>(.*?)</span\s*>",
    re.IGNORECASE | re.DOTALL,
)
_HEADING_RE = re.compile(r"<h([1-6])(?:\s[^>]*)?>(.*?)</h\1\s*>", re.IGNORECASE | re.DOTALL)
_LEADING_BOLD_RE = re.compile(
    r"^\s*(?:<(?:p|div)(?:\s[^>]*)?>\s*)?<(strong|b)(?:\s[^>]*)?>(.*?)</\1\s*>",
    re.IGNORECASE | re.DOTALL,
)

ENTITIES = {
    "&nbsp;": " ",
    "&lt;": "<",
    "&gt;": ">",
    "&quot;": '"',
    "&#39;": "'",
    "&apos;": "'",
    "&rsquo;": "\u2019",
    "&lsquo;": "\u2018",
    "&rdquo;": "\u201d",
    "&ldquo;": "\u201c",
    "&ndash;": "\u2013",
    "&mdash;": "\u2014",
    "&hellip;": "\u2026",
}


def _replace_entities(text: str) -> str:
    for entity, char in ENTITIES.items():
        text = text.replace(entity, char)
    # Last, so "&amp;lt;" stays a literal "&lt;"
    return text.replace("&amp;", "&")


def _collapse_whitespace(text: str) -> str:
    lines = (" ".join(line.split()) for line in text.splitlines())
    return "\n".join(line for line in lines if line)


def strip_markup(markup: Optional[str]) -> str:
    """Convert a content fragment to plain text."""
    if not markup:
        return ""
    text = _BR_RE.sub("\n", markup)
    text = _LI_OPEN_RE.sub("\n- ", text)
    text = _LI_CLOSE_RE.sub("\n", text)
    text = _BLOCK_RE.sub("\n", text)
    text = _INLINE_RE.sub("", text)
    return _collapse_whitespace(_replace_entities(text))


def _inline_text(markup: str) -> Optional[str]:
    text = " ".join(strip_markup(markup).split())
    return text or None


def extract_place_name(markup: Optional[str]) -> Optional[str]:
    """Text of the first ``<span class="city">``, ``None`` when there is none."""
    if not markup:
        return None
    match = _CITY_RE.search(markup)
    return _inline_text(match.group(1)) if match else None


def extract_section_title(markup: Optional[str]) -> Optional[str]:
    """Text of the first heading, else of a leading bold run."""
    if not markup:
        return None
    match = _HEADING_RE.search(markup)
    if match:
        return _inline_text(match.group(2))
    match = _LEADING_BOLD_RE.search(markup)
    return _inline_text(match.group(2)) if match else None


def split_list_items(markup: Optional[str]) -> list[str]:
    """List entries of a fragment: its ``<li>`` items, else its non-empty lines."""
    if not markup:
        return []
    items = [_inline_text(m) for m in _LI_ITEM_RE.findall(markup)]
    if not items:
        items = [line.lstrip("- ").strip() for line in strip_markup(markup).splitlines()]
    return [i for i in items if i]


class ContentCategory(str, Enum):
    """Content types of the content-detail document."""
    OVERVIEW = "Vacation Overview"
    ITINERARY = "Vacation Itinerary"
    HIGHLIGHTS = "Highlights"
    INCLUDED = "What's Included"
    NOT_INCLUDED = "Not Included"
    MEALS = "Meals"
    NOTES = "Notes"
    DAY_CITY = "Day City"
    DAY_DESCRIPTION = "Day Description"
    UNMAPPED = "UNMAPPED"

    @classmethod
    def parse(cls, value: Optional[str]) -> "ContentCategory":
        if value:
            normalized = " ".join(value.split()).lower()
            for category in cls:
                if category.value.lower() == normalized:
                    return category
        return cls.UNMAPPED


# Categories absent from this table are not inclusions
INCLUSION_TYPES: dict[ContentCategory, InclusionType] = {
    ContentCategory.HIGHLIGHTS: InclusionType.HIGHLIGHT,
    ContentCategory.INCLUDED: InclusionType.INCLUDED,
    ContentCategory.MEALS: InclusionType.INCLUDED,
    ContentCategory.NOT_INCLUDED: InclusionType.EXCLUDED,
}


def inclusion_type_for(category: ContentCategory) -> Optional[InclusionType]:
    return INCLUSION_TYPES.get(category)


@dataclass
class ParsedDay:
    day_number: int
    title: Optional[str] = None
    description: Optional[str] = None
    city: Optional[str] = None


@dataclass
class ParsedInclusion:
    inclusion_type: InclusionType
    category: Optional[str]
    description: str


@dataclass
class ParsedTourContent:
    overview: Optional[str] = None
    days: dict[int, ParsedDay] = field(default_factory=dict)
    inclusions: list[ParsedInclusion] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (self.overview or self.days or self.inclusions)


def parse_tour_content(payload: Optional[CatalogTourContent]) -> ParsedTourContent:
    """
    Reduce a content-detail document to overview, day narratives and inclusions.

    A day block flagged ``use_previous_day`` continues the narrative of the
    day before it.
    """
    parsed = ParsedTourContent()
    if payload is None:
        return parsed

    for item in payload.tour_media:
        category = ContentCategory.parse(item.content_type)
        if category is ContentCategory.OVERVIEW:
            overview = strip_markup(item.content)
            if overview and not parsed.overview:
                parsed.overview = overview
            continue

        inclusion_type = inclusion_type_for(category)
        if inclusion_type is None:
            continue
        for line in split_list_items(item.content):
            parsed.inclusions.append(
                ParsedInclusion(
                    inclusion_type=inclusion_type,
                    category=item.category or category.value,
                    description=line,
                )
            )

    for item in sorted(payload.day_media, key=lambda d: d.start_day_num):
        category = ContentCategory.parse(item.content_type)
        day_number = item.start_day_num
        if item.use_previous_day and day_number > 1:
            day_number -= 1
        day = parsed.days.setdefault(day_number, ParsedDay(day_number=day_number))

        if category is ContentCategory.DAY_CITY:
            day.city = day.city or extract_place_name(item.content) or _inline_text(item.content)
        elif category in (ContentCategory.DAY_DESCRIPTION, ContentCategory.ITINERARY):
            day.title = day.title or extract_section_title(item.content)
            text = strip_markup(item.content)
            if text:
                day.description = f"{day.description}\n\n{text}" if day.description else text
            day.city = day.city or extract_place_name(item.content)

    parsed.days = {n: d for n, d in parsed.days.items() if d.title or d.description or d.city}
    return parsed
