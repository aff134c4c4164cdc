"""Heuristic field extraction from rendered or retrieved markup.

Target layouts are inconsistent across listings and over time, so each
field is extracted by an ordered list of typed strategies. A strategy
returns a value or None; the first non-None value wins.

Parsing uses BeautifulSoup with the lxml parser.
"""

import re
from dataclasses import dataclass
from datetime import date
from typing import Callable, Generic, Iterable, TypeVar

from bs4 import BeautifulSoup, Tag

from househunt.exceptions import RecordValidationError
from househunt.logger import get_logger
from househunt.models import (
    METRICS,
    AssessmentScoreSet,
    FloorPlan,
    PriceRange,
    PropertyRecord,
    RoomCounts,
    SchoolCategory,
    SchoolRecord,
    YearLevelScores,
)

log = get_logger(__name__)

T = TypeVar("T")

PRICE_TOKEN_RE = re.compile(r"\$[\d,]+")
INDICATIVE_PRICE_RE = re.compile(
    r"Indicative price:\s*\$?([\d,]+(?:\.\d{2})?)\s*-\s*\$?([\d,]+(?:\.\d{2})?)",
    re.IGNORECASE,
)
AUCTION_RE = re.compile(
    r"Auction\s+(\w+)\s+(\d+)\s+(\w+)(?:\s+at\s+(\d+:\d+\s*(?:am|pm)))?",
    re.IGNORECASE,
)
BEDROOMS_RE = re.compile(r"(\d+)\s*bedroom", re.IGNORECASE)
BATHROOMS_RE = re.compile(r"(\d+)\s*bathroom", re.IGNORECASE)
CAR_SPACES_RE = re.compile(r"(\d+)\s*car", re.IGNORECASE)
AREA_RE = re.compile(r"(\d+)\s*m²", re.IGNORECASE)
PROPERTY_TYPE_RE = re.compile(r"^(\w+)\s+with", re.IGNORECASE)
FIRST_NUMBER_RE = re.compile(r"(\d+)")
LEADING_INT_RE = re.compile(r"^\s*(\d+)")
REPORT_YEAR_RE = re.compile(r"20(2[3-9]|[3-9]\d)")

MONTH_ABBREVIATIONS = ("jan", "feb", "mar", "apr", "may", "jun", "jul", "aug", "sep", "oct", "nov", "dec")

COMPOSITE_FEATURES_SELECTOR = '[class*="primary-features"], ul[aria-label]'
ADDRESS_SEPARATOR = ", "

YEAR_LEVEL_LABELS = {
    "year3": ("year 3", "3"),
    "year5": ("year 5", "5"),
    "year7": ("year 7", "7"),
    "year9": ("year 9", "9"),
}
ASSESSMENT_TABLE_MARKERS = ("reading", "numeracy")


@dataclass(frozen=True)
class ExtractionStrategy(Generic[T]):
    """A named way of reading one field from a parsed document."""

    name: str
    extract: Callable[[BeautifulSoup], T | None]


def first_match(strategies: Iterable[ExtractionStrategy[T]], soup: BeautifulSoup, field: str) -> T | None:
    """Run strategies in order and return the first non-None value."""
    for strategy in strategies:
        value = strategy.extract(soup)
        if value is not None:
            log.debug("Field extracted", field=field, strategy=strategy.name)
            return value
    log.debug("No strategy matched", field=field)
    return None


def make_soup(html: str) -> BeautifulSoup:
    return BeautifulSoup(html, "lxml")


def document_text(soup: BeautifulSoup) -> str:
    """Whitespace-normalized visible text of the whole document."""
    return " ".join(soup.stripped_strings)


def _element_text(element: Tag | None) -> str | None:
    if element is None:
        return None
    text = " ".join(element.get_text(" ").split())
    return text or None


# ---------------------------------------------------------------------------
# Price
# ---------------------------------------------------------------------------


def parse_price(text: str | None) -> PriceRange:
    """Parse every ``$``-prefixed amount in ``text`` into a range.

    ``"$1,250,000 - $1,350,000"`` gives min 1250000 and max 1350000; a
    single amount gives min == max; no amount gives both None.
    """
    if not text:
        return PriceRange()

    tokens = PRICE_TOKEN_RE.findall(text)
    amounts = [int(digits) for token in tokens if (digits := token.replace("$", "").replace(",", ""))]
    if not amounts:
        return PriceRange(display_text=text.strip())

    return PriceRange(min=min(amounts), max=max(amounts), display_text=text.strip())


def _indicative_price(soup: BeautifulSoup) -> PriceRange | None:
    match = INDICATIVE_PRICE_RE.search(document_text(soup))
    if match is None:
        return None
    return parse_price(match.group(0))


def _price_element(soup: BeautifulSoup) -> PriceRange | None:
    text = _element_text(soup.select_one('[class*="price"]'))
    if text is None:
        return None
    return parse_price(text)


PRICE_STRATEGIES: list[ExtractionStrategy[PriceRange]] = [
    ExtractionStrategy("indicative-price-text", _indicative_price),
    ExtractionStrategy("price-classed-element", _price_element),
]


# ---------------------------------------------------------------------------
# Auction date
# ---------------------------------------------------------------------------


def resolve_month(name: str) -> int | None:
    """Month number for a name matched on its first three letters."""
    lowered = name.lower()
    for index, abbreviation in enumerate(MONTH_ABBREVIATIONS):
        if lowered.startswith(abbreviation):
            return index + 1
    return None


def parse_auction_date(text: str, today: date | None = None) -> date | str | None:
    """Find "Auction <weekday> <day> <month>[ at <time>]" and resolve it.

    The date is placed in the current year, or next year if it has already
    passed. If the month cannot be resolved the readable text is returned.
    """
    match = AUCTION_RE.search(text)
    if match is None:
        return None

    weekday, day, month, at_time = match.groups()
    readable = f"{weekday} {day} {month}" + (f" at {at_time}" if at_time else "")

    month_number = resolve_month(month)
    if month_number is None:
        log.debug("Auction month not recognised", auction=readable)
        return readable

    today = today or date.today()
    try:
        auction = date(today.year, month_number, int(day))
        if auction < today:
            auction = auction.replace(year=today.year + 1)
    except ValueError:
        log.debug("Auction date out of range", auction=readable)
        return readable
    return auction


# ---------------------------------------------------------------------------
# Rooms and area
# ---------------------------------------------------------------------------


def _composite_label(soup: BeautifulSoup) -> str:
    element = soup.select_one(COMPOSITE_FEATURES_SELECTOR)
    if element is None:
        return ""
    return element.get("aria-label") or ""


def _regex_strategy(name: str, pattern: re.Pattern[str], source: Callable[[BeautifulSoup], str]) -> ExtractionStrategy[int]:
    def extract(soup: BeautifulSoup) -> int | None:
        match = pattern.search(source(soup))
        return int(match.group(1)) if match else None

    return ExtractionStrategy(name, extract)


def _dedicated_element_strategy(name: str, selector: str) -> ExtractionStrategy[int]:
    def extract(soup: BeautifulSoup) -> int | None:
        text = _element_text(soup.select_one(selector))
        if text is None:
            return None
        match = FIRST_NUMBER_RE.search(text)
        return int(match.group(1)) if match else None

    return ExtractionStrategy(name, extract)


def _field_strategies(field: str, pattern: re.Pattern[str], selector: str) -> list[ExtractionStrategy[int]]:
    return [
        _regex_strategy(f"{field}-composite-label", pattern, _composite_label),
        _dedicated_element_strategy(f"{field}-dedicated-element", selector),
        _regex_strategy(f"{field}-document-text", pattern, document_text),
    ]


BEDROOM_STRATEGIES = _field_strategies(
    "bedrooms", BEDROOMS_RE, '[aria-label*="bedroom"] p, [aria-label*="bedroom"]'
)
BATHROOM_STRATEGIES = _field_strategies(
    "bathrooms", BATHROOMS_RE, '[aria-label*="bathroom"] p, [aria-label*="bathroom"]'
)
CAR_SPACE_STRATEGIES = _field_strategies(
    "car_spaces", CAR_SPACES_RE, '[aria-label*="car"] p, [aria-label*="car"]'
)
LAND_SIZE_STRATEGIES = _field_strategies(
    "land_size", AREA_RE, '[aria-label*="land size"] p, [aria-label*="m²"]'
)

ADDRESS_STRATEGIES: list[ExtractionStrategy[str]] = [
    ExtractionStrategy("property-info-address", lambda soup: _element_text(soup.select_one(".property-info-address"))),
    ExtractionStrategy("address-heading", lambda soup: _element_text(soup.select_one('h1[class*="address"]'))),
]


def _property_type(soup: BeautifulSoup) -> str:
    match = PROPERTY_TYPE_RE.search(_composite_label(soup))
    return match.group(1) if match else ""


def _canonical_url(soup: BeautifulSoup) -> str | None:
    link = soup.select_one('link[rel="canonical"]')
    if link is None:
        return None
    return link.get("href") or None


def parse_property_html(html: str, source_url: str | None = None, today: date | None = None) -> PropertyRecord:
    """Extract a PropertyRecord from a listing page.

    Missing fields keep their defaults; call ``ensure_valid_property`` to
    reject records without an address or room counts.
    """
    soup = make_soup(html)
    text = document_text(soup)

    record = PropertyRecord(
        address=first_match(ADDRESS_STRATEGIES, soup, "address") or "",
        url=_canonical_url(soup) or source_url or "",
        rooms=RoomCounts(
            bedrooms=first_match(BEDROOM_STRATEGIES, soup, "bedrooms") or 0,
            bathrooms=first_match(BATHROOM_STRATEGIES, soup, "bathrooms") or 0,
            car_spaces=first_match(CAR_SPACE_STRATEGIES, soup, "car_spaces") or 0,
        ),
        price=first_match(PRICE_STRATEGIES, soup, "price") or PriceRange(),
        auction_date=parse_auction_date(text, today),
        floor_plan=FloorPlan(land_size=first_match(LAND_SIZE_STRATEGIES, soup, "land_size")),
        property_type=_property_type(soup),
    )

    log.info(
        "Property extracted",
        address=record.address or None,
        bedrooms=record.rooms.bedrooms,
        bathrooms=record.rooms.bathrooms,
        price_min=record.price.min,
        price_max=record.price.max,
    )
    return record


def validate_property(record: PropertyRecord) -> list[str]:
    """List the reasons ``record`` is unusable; empty when valid."""
    errors: list[str] = []

    if not record.address:
        errors.append("Address is required")

    if record.rooms.bedrooms == 0 and record.rooms.bathrooms == 0:
        errors.append("Room information could not be extracted")

    return errors


def ensure_valid_property(record: PropertyRecord) -> PropertyRecord:
    """Return ``record`` unchanged if valid.

    Raises:
        RecordValidationError: Enumerating every missing field.
    """
    errors = validate_property(record)
    if errors:
        raise RecordValidationError(errors=errors, source=record.url or None)
    return record


# ---------------------------------------------------------------------------
# Schools
# ---------------------------------------------------------------------------


def join_address_segments(segments: Iterable[str | None]) -> str | None:
    """Join non-empty address parts with the fixed separator."""
    parts = [" ".join(segment.split()) for segment in segments if segment and segment.strip()]
    return ADDRESS_SEPARATOR.join(parts) or None


def parse_school_html(html: str, school_type: SchoolCategory) -> SchoolRecord:
    """Read a school locator result panel.

    The header label is the school name; the info table supplies address,
    phone, campus years and website; distance comes from the first entry
    of the nearest-schools list when present.
    """
    soup = make_soup(html)
    name = _element_text(soup.select_one("#SchoolInfo-header"))
    if name is None:
        return SchoolRecord(school_type=school_type, success=False, message="School header not found")

    details: dict[str, str | None] = {}
    for row in soup.select("#SchoolInfo table tr"):
        header, cell = row.find("th"), row.find("td")
        if header is None or cell is None:
            continue
        label = header.get_text(" ", strip=True).lower()
        if "address" in label:
            details["address"] = join_address_segments(cell.stripped_strings)
        elif "phone" in label:
            details["phone"] = _element_text(cell)
        elif "campus years" in label:
            details["years"] = _element_text(cell)
        elif "website" in label:
            link = cell.find("a")
            if link is not None:
                details["website"] = link.get("href")

    distance = _element_text(soup.select_one("#NearestSchools .container .distance"))

    return SchoolRecord(
        school_type=school_type,
        success=True,
        name=name,
        distance=distance,
        **details,
    )


# ---------------------------------------------------------------------------
# Assessment results
# ---------------------------------------------------------------------------


def _year_level_for(label: str) -> str | None:
    for level, (phrase, bare) in YEAR_LEVEL_LABELS.items():
        if phrase in label or label == bare:
            return level
    return None


def _metric_columns(header_cells: list[Tag]) -> dict[str, int]:
    columns: dict[str, int] = {}
    for index, cell in enumerate(header_cells):
        text = cell.get_text(" ", strip=True).lower()
        for metric in METRICS:
            if metric in text and metric not in columns:
                columns[metric] = index
                break
    return columns


def _score(cell: Tag) -> int | None:
    match = LEADING_INT_RE.match(cell.get_text(" ", strip=True))
    if match is None:
        return None
    value = int(match.group(1))
    return value if 0 < value < 1000 else None


def parse_assessment_tables(html: str) -> AssessmentScoreSet:
    """Extract per-year-level NAPLAN averages from a results page.

    Scans tables whose header row mentions both reading and numeracy,
    maps metric names to column indices, and reads rows labelled with a
    recognised year level. Stops at the first table yielding any scores.
    """
    soup = make_soup(html)
    report_year = REPORT_YEAR_RE.search(document_text(soup))
    scores = AssessmentScoreSet(year=report_year.group(0) if report_year else None)

    for table in soup.find_all("table"):
        header_row = table.find("tr")
        if header_row is None:
            continue
        header_text = header_row.get_text(" ", strip=True).lower()
        if not all(marker in header_text for marker in ASSESSMENT_TABLE_MARKERS):
            continue

        columns = _metric_columns(header_row.find_all(["th", "td"]))
        found: dict[str, YearLevelScores] = {}
        for row in table.find_all("tr"):
            cells = row.find_all(["td", "th"])
            if len(cells) < 2:
                continue
            level = _year_level_for(cells[0].get_text(" ", strip=True).lower())
            if level is None:
                continue
            values = {
                metric: value
                for metric, index in columns.items()
                if index < len(cells) and (value := _score(cells[index])) is not None
            }
            if values:
                found[level] = YearLevelScores(**values)

        if found:
            scores = scores.model_copy(update=found)
            log.info("Assessment table parsed", year_levels=sorted(found), year=scores.year)
            break

    return scores
