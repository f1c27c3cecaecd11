"""TicketDive artist page scraper."""
import logging
from typing import Optional

import requests
from botocore.exceptions import ClientError

from processor.event_extractor import parse_ticketdive_html, select_nearest_event
from processor.models import ScrapeResult

logger = logging.getLogger(__name__)

NOT_FOUND_MESSAGE = "TicketDiveページが存在しません。"


class TicketDiveFetchError(Exception):
    """Artist page answered with a non-success HTTP status."""

    def __init__(self, status_code: int, message: Optional[str] = None):
        self.status_code = status_code
        super().__init__(message or f"HTTP {status_code}")


class TicketDivePageNotFoundError(TicketDiveFetchError):
    """Artist page does not exist."""

    def __init__(self):
        super().__init__(404, NOT_FOUND_MESSAGE)


class TicketDiveScraper:
    """Scraper that refreshes the next TicketDive event of a group."""

    BASE_URL = "https://ticketdive.com"
    USER_AGENT = "MusiciteBot/1.0 (+https://buzzttara.vercel.app/)"

    def __init__(self, store, timeout: Optional[float] = None):
        """
        Initialize the scraper.

        Args:
            store: Event store with a replace_group_event method
            timeout: HTTP request timeout in seconds (default: no timeout)
        """
        self.store = store
        self.timeout = timeout

    def fetch_artist_html(self, ticketdive_id: str) -> str:
        """
        Fetch the HTML of a TicketDive artist page.

        Args:
            ticketdive_id: TicketDive artist id

        Returns:
            HTML content as string

        Raises:
            TicketDivePageNotFoundError: If the page returns 404
            TicketDiveFetchError: If the page returns another non-2xx status
            requests.RequestException: On transport failures
        """
        url = f"{self.BASE_URL}/artist/{ticketdive_id}"
        logger.debug(f"Fetching {url}")
        response = requests.get(
            url,
            headers={'User-Agent': self.USER_AGENT},
            timeout=self.timeout
        )

        if not response.ok:
            if response.status_code == 404:
                raise TicketDivePageNotFoundError()
            raise TicketDiveFetchError(response.status_code)

        return response.text

    def scrape_event(self, group_id: str, ticketdive_id: str) -> ScrapeResult:
        """
        Fetch, extract and store the nearest event for a group.

        Failures are reported in the result, never raised.

        Args:
            group_id: Owner key of the stored event
            ticketdive_id: TicketDive artist id

        Returns:
            ScrapeResult with the number of stored events
        """
        try:
            html = self.fetch_artist_html(ticketdive_id)
        except TicketDiveFetchError as e:
            logger.warning(f"TicketDive page for {ticketdive_id} unavailable: {e}")
            return ScrapeResult(success=False, count=0, error=str(e))
        except requests.RequestException as e:
            logger.warning(f"Request for TicketDive artist {ticketdive_id} failed: {e}")
            return ScrapeResult(success=False, count=0, error=str(e) or 'Unknown error')

        try:
            events = parse_ticketdive_html(html)
            nearest = select_nearest_event(events)
            logger.info(
                f"Extracted {len(events)} events for group {group_id}"
                + (f", nearest {nearest.event_date}" if nearest else "")
            )
            self.store.replace_group_event(group_id, nearest)
        except ClientError as e:
            message = e.response.get('Error', {}).get('Message') or str(e)
            logger.warning(f"Failed to store events for group {group_id}: {message}")
            return ScrapeResult(success=False, count=0, error=message)
        except Exception as e:
            logger.warning(
                f"Failed to refresh events for group {group_id}: {e}",
                exc_info=True
            )
            return ScrapeResult(success=False, count=0, error=str(e) or 'Unknown error')

        if nearest is None:
            return ScrapeResult(success=True, count=0)
        return ScrapeResult(success=True, count=1)
