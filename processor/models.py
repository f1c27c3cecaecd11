"""Data models for TicketDive event extraction and sync."""
from dataclasses import dataclass, field
from typing import List, Optional


@dataclass
class EventCandidate:
    """Event extracted from a TicketDive artist page."""
    event_name: str
    event_date: str
    venue_name: str
    event_url: str


@dataclass
class ExternalIdRow:
    """TicketDive external id row for a group."""
    group_id: str
    external_id: Optional[str]
    url: Optional[str]


@dataclass
class ScrapeTarget:
    """Group to scrape together with its TicketDive artist id."""
    group_id: str
    ticketdive_id: str


@dataclass
class ScrapeResult:
    """Outcome of scraping and storing events for a single group."""
    success: bool
    count: int
    error: Optional[str] = None

    def to_dict(self) -> dict:
        data = {'success': self.success, 'count': self.count}
        if self.error is not None:
            data['error'] = self.error
        return data


@dataclass
class UpdateSummary:
    """Aggregate result of a full update run."""
    total: int = 0
    processed: int = 0
    success: int = 0
    failed: int = 0
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            'total': self.total,
            'processed': self.processed,
            'success': self.success,
            'failed': self.failed,
            'errors': list(self.errors)
        }
