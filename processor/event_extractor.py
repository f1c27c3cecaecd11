"""Heuristic event extraction for TicketDive artist pages.

TicketDive renders event cards without stable markup, so events are
recovered from text windows around each ``/event/{id}`` link:

* the first ``YYYY/M/D`` token near the link is the event date,
* the closest plausible text fragment before the date is the event name,
* a ``venue``/``location`` element after the date, or failing that the
  first plausible text fragment after it, is the venue.

The window offsets and length bounds below were tuned against real pages.
"""
import logging
import re
from datetime import date, datetime
from typing import Iterator, List, Optional

from processor.models import EventCandidate

logger = logging.getLogger(__name__)

EVENT_URL_TEMPLATE = "https://ticketdive.com/event/{event_id}"

CONTEXT_BEFORE = 1000
CONTEXT_AFTER = 7000
NAME_LOOKBEHIND = 1000
VENUE_LOOKAHEAD = 1000

MIN_NAME_CHUNK_LENGTH = 5
MAX_NAME_CHUNK_LENGTH = 100

DATE_PATTERN = re.compile(r'[0-9]{4}/[0-9]{1,2}/[0-9]{1,2}')
EVENT_HREF_PATTERN = re.compile(r'href="/event/([^"]+)"')

SVG_BLOCK_PATTERN = re.compile(r'<svg[^>]*>[\s\S]*?</svg>', re.IGNORECASE)
PATH_ELEMENT_PATTERN = re.compile(r'<path[^>]*/?>', re.IGNORECASE)
SVG_ATTRIBUTE_PATTERNS = [
    re.compile(r'fill-rule="[^"]*"', re.IGNORECASE),
    re.compile(r'clip-rule="[^"]*"', re.IGNORECASE),
    re.compile(r'd="[^"]*"', re.IGNORECASE),
]
TAG_PATTERN = re.compile(r'<[^>]+>')
ENTITY_PATTERN = re.compile(r'&[^;]+;')
WHITESPACE_PATTERN = re.compile(r'\s+')

VENUE_ELEMENT_PATTERNS = [
    re.compile(r'<div[^>]*class="[^"]*venue[^"]*"[^>]*>([^<]+)</div>', re.IGNORECASE),
    re.compile(r'<div[^>]*class="[^"]*location[^"]*"[^>]*>([^<]+)</div>', re.IGNORECASE),
    re.compile(r'<span[^>]*class="[^"]*venue[^"]*"[^>]*>([^<]+)</span>', re.IGNORECASE),
    re.compile(r'<p[^>]*class="[^"]*venue[^"]*"[^>]*>([^<]+)</p>', re.IGNORECASE),
]

INVALID_EVENT_NAME_PATTERNS = [
    re.compile(r'^申込受付中$'),
    re.compile(r'^受付中$'),
    re.compile(r'^イベント$'),
    re.compile(r'^公演$'),
    re.compile(r'padding', re.IGNORECASE),
    re.compile(r'margin', re.IGNORECASE),
    re.compile(r'font-', re.IGNORECASE),
    re.compile(r'cursor:', re.IGNORECASE),
    re.compile(r'height:', re.IGNORECASE),
    re.compile(r'width:', re.IGNORECASE),
    re.compile(r'display:', re.IGNORECASE),
    re.compile(r'[0-9]+rem', re.IGNORECASE),
    re.compile(r'[0-9]+px', re.IGNORECASE),
    re.compile(r'[0-9]+em', re.IGNORECASE),
    re.compile(r'^Event [A-Za-z0-9]+$'),
    re.compile(r'日程未定'),
    re.compile(r'^未定$'),
    re.compile(r'チケットの分配'),
    re.compile(r'<[^>]+>'),
    re.compile(r';'),
    re.compile(r'^[0-9.:]+$'),
    re.compile(r'^[\s0-9.]+$'),
]

INVALID_VENUE_NAME_PATTERNS = [
    re.compile(r'^会場未定$'),
    re.compile(r'^未定$'),
    re.compile(r'^申込受付中$'),
    re.compile(r'^受付中$'),
    re.compile(r'padding', re.IGNORECASE),
    re.compile(r'margin', re.IGNORECASE),
    re.compile(r'path\s+fill', re.IGNORECASE),
    re.compile(r'svg', re.IGNORECASE),
    re.compile(r'fill-rule', re.IGNORECASE),
    re.compile(r'clip-rule', re.IGNORECASE),
    re.compile(r'evenodd', re.IGNORECASE),
    re.compile(r'^d="', re.IGNORECASE),
    re.compile(r'チケットの分配'),
    re.compile(r'<[^>]+>'),
    re.compile(r'^\s*$'),
]

NAME_PREFIX_PATTERNS = [
    re.compile(r'^申込受付中\s*[『「]?'),
    re.compile(r'^受付中\s*[『「]?'),
]
NAME_SUFFIX_PATTERN = re.compile(r'[』」]$')


def is_valid_event_name(name: Optional[str]) -> bool:
    """Return True if ``name`` looks like a real event title."""
    if not name or len(name) < 3 or len(name) > 200:
        return False
    return not any(pattern.search(name) for pattern in INVALID_EVENT_NAME_PATTERNS)


def is_valid_venue_name(name: Optional[str]) -> bool:
    """Return True if ``name`` looks like a real venue name."""
    if not name or len(name) < 2 or len(name) > 200:
        return False
    return not any(pattern.search(name) for pattern in INVALID_VENUE_NAME_PATTERNS)


def clean_event_name(name: str) -> str:
    """Strip reception-status prefixes and a closing bracket from a name."""
    for pattern in NAME_PREFIX_PATTERNS:
        name = pattern.sub('', name, count=1)
    return NAME_SUFFIX_PATTERN.sub('', name).strip()


def event_url(event_id: str) -> str:
    return EVENT_URL_TEMPLATE.format(event_id=event_id)


def clean_markup(html: str) -> str:
    """
    Remove SVG icon markup that collides with the text heuristics.

    Args:
        html: Raw HTML document

    Returns:
        HTML without svg blocks, path elements and path attributes
    """
    cleaned = SVG_BLOCK_PATTERN.sub('', html)
    cleaned = PATH_ELEMENT_PATTERN.sub('', cleaned)
    for pattern in SVG_ATTRIBUTE_PATTERNS:
        cleaned = pattern.sub('', cleaned)
    return cleaned


def find_event_ids(html: str) -> List[str]:
    """
    Collect event ids from literal ``href="/event/{id}"`` attributes.

    Ids are kept exactly as written in the markup so they can be located
    again with a plain substring search.

    Args:
        html: Cleaned HTML document

    Returns:
        List of event ids, duplicates included
    """
    return EVENT_HREF_PATTERN.findall(html)


def _extract_event_name(before_date: str) -> Optional[str]:
    text = TAG_PATTERN.sub('\n', before_date)
    text = ENTITY_PATTERN.sub(' ', text)
    text = WHITESPACE_PATTERN.sub(' ', text).strip()

    lines = [line.strip() for line in re.split(r'[\n\r]+', text)]
    lines = [line for line in lines if line]

    # Closest text to the date wins.
    for line in reversed(lines):
        chunks = [chunk.strip() for chunk in re.split(r'[|>]', line)]
        chunks = [chunk for chunk in chunks if chunk]
        for chunk in reversed(chunks):
            if (MIN_NAME_CHUNK_LENGTH <= len(chunk) <= MAX_NAME_CHUNK_LENGTH
                    and is_valid_event_name(chunk)):
                return chunk
    return None


def _extract_venue_name(after_date: str) -> Optional[str]:
    for pattern in VENUE_ELEMENT_PATTERNS:
        match = pattern.search(after_date)
        if match and match.group(1):
            candidate = match.group(1).strip()
            if is_valid_venue_name(candidate):
                return candidate

    text = SVG_BLOCK_PATTERN.sub('', after_date)
    text = re.sub(r'<path[^>]*>', '', text, flags=re.IGNORECASE)
    text = TAG_PATTERN.sub(' ', text)
    text = WHITESPACE_PATTERN.sub(' ', text).strip()

    for chunk in re.split(r'[|<\n]', text):
        candidate = chunk.strip()
        if 2 < len(candidate) < 100 and is_valid_venue_name(candidate):
            return candidate
    return None


def _extract_candidate(cleaned: str, event_id: str) -> Optional[EventCandidate]:
    event_index = cleaned.find(f'/event/{event_id}')
    if event_index == -1:
        return None

    context_start = max(0, event_index - CONTEXT_BEFORE)
    context_end = min(len(cleaned), event_index + CONTEXT_AFTER)
    context = cleaned[context_start:context_end]

    date_match = DATE_PATTERN.search(context)
    if not date_match:
        logger.debug(f"No date found near event {event_id}")
        return None
    event_date = date_match.group(0)
    date_index = date_match.start()

    event_name = _extract_event_name(
        context[max(0, date_index - NAME_LOOKBEHIND):date_index]
    )
    venue_name = _extract_venue_name(
        context[date_index + len(event_date):date_index + VENUE_LOOKAHEAD]
    )
    if not event_name or not venue_name:
        logger.debug(
            f"Skipping event {event_id}: name={event_name!r} venue={venue_name!r}"
        )
        return None

    event_name = clean_event_name(event_name)
    if not is_valid_event_name(event_name) or not is_valid_venue_name(venue_name):
        logger.debug(f"Skipping event {event_id}: cleaned name {event_name!r} is invalid")
        return None

    return EventCandidate(
        event_name=event_name,
        event_date=event_date,
        venue_name=venue_name,
        event_url=event_url(event_id)
    )


def iter_ticketdive_events(html: str) -> Iterator[EventCandidate]:
    """
    Lazily extract event candidates from a TicketDive artist page.

    Candidates without a date, name or venue are skipped; a page without
    event links yields nothing.

    Args:
        html: Raw HTML of the artist page

    Yields:
        EventCandidate objects in link order
    """
    cleaned = clean_markup(html)
    for event_id in find_event_ids(cleaned):
        try:
            candidate = _extract_candidate(cleaned, event_id)
        except Exception as e:
            logger.warning(f"Failed to extract event {event_id}: {e}")
            continue
        if candidate:
            yield candidate


def parse_ticketdive_html(html: str) -> List[EventCandidate]:
    """Extract all event candidates from a TicketDive artist page."""
    return list(iter_ticketdive_events(html))


def _date_sort_key(candidate: EventCandidate) -> tuple:
    try:
        parsed = datetime.strptime(candidate.event_date.replace('/', '-'), '%Y-%m-%d').date()
    except ValueError:
        return (1, date.max)
    return (0, parsed)


def select_nearest_event(candidates: List[EventCandidate]) -> Optional[EventCandidate]:
    """
    Pick the candidate with the earliest date.

    Equal dates keep discovery order. Dates that are not real calendar
    dates sort after every valid one.

    Args:
        candidates: Extracted event candidates

    Returns:
        Nearest EventCandidate or None if there are no candidates
    """
    if not candidates:
        return None
    return sorted(candidates, key=_date_sort_key)[0]
