"""Batch refresh of the next TicketDive event for every group."""
import logging
import re
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, List, Optional

from processor.models import ExternalIdRow, ScrapeTarget, UpdateSummary

logger = logging.getLogger(__name__)

ARTIST_URL_PATTERN = re.compile(r'ticketdive\.com/artist/([^/?#]+)', re.IGNORECASE)


def ticketdive_id_from_row(row: ExternalIdRow) -> Optional[str]:
    """
    Resolve the TicketDive artist id of an external id row.

    Args:
        row: ExternalIdRow for the ticketdive service

    Returns:
        Explicit external id, id parsed from the artist URL, or None
    """
    if row.external_id and row.external_id.strip():
        return row.external_id.strip()
    if not row.url:
        return None
    match = ARTIST_URL_PATTERN.search(row.url)
    return match.group(1) if match else None


class EventUpdater:
    """Runs the scraper for every group in rate-limited concurrent batches."""

    BATCH_SIZE = 50
    BATCH_DELAY_SECONDS = 0.7

    def __init__(
        self,
        store,
        scraper,
        batch_size: int = BATCH_SIZE,
        batch_delay: float = BATCH_DELAY_SECONDS,
        sleep: Callable[[float], None] = time.sleep
    ):
        """
        Initialize the updater.

        Args:
            store: Store providing get_ticketdive_rows and get_group_names
            scraper: Scraper providing scrape_event(group_id, ticketdive_id)
            batch_size: Number of groups scraped concurrently
            batch_delay: Pause between batches in seconds
            sleep: Sleep function, replaceable in tests
        """
        if batch_size < 1:
            raise ValueError(f"batch_size must be positive, got {batch_size}")
        self.store = store
        self.scraper = scraper
        self.batch_size = batch_size
        self.batch_delay = batch_delay
        self.sleep = sleep

    def get_targets(self) -> List[ScrapeTarget]:
        targets = []
        for row in self.store.get_ticketdive_rows():
            ticketdive_id = ticketdive_id_from_row(row)
            if ticketdive_id:
                targets.append(ScrapeTarget(group_id=row.group_id, ticketdive_id=ticketdive_id))
        return targets

    def update_all_group_events(self) -> UpdateSummary:
        """
        Refresh the stored next event of every group with a TicketDive page.

        A failure for one group never stops the others; failures are
        collected as messages in the summary.

        Returns:
            UpdateSummary with total, processed, success and failed counts
        """
        targets = self.get_targets()
        if not targets:
            logger.info("No groups with a TicketDive id")
            return UpdateSummary()

        group_ids = list(dict.fromkeys(target.group_id for target in targets))
        try:
            group_names = self.store.get_group_names(group_ids)
        except Exception as e:
            logger.warning(f"Group name lookup failed, using group ids: {e}")
            group_names = {}

        summary = UpdateSummary(total=len(targets))
        logger.info(
            f"Updating events for {len(targets)} groups "
            f"in batches of {self.batch_size}"
        )

        for i in range(0, len(targets), self.batch_size):
            batch = targets[i:i + self.batch_size]
            self._run_batch(batch, group_names, summary)

            if i + self.batch_size < len(targets):
                self.sleep(self.batch_delay)

        logger.info(
            f"Event update complete: {summary.success} succeeded, "
            f"{summary.failed} failed"
        )
        return summary

    def _run_batch(self, batch: List[ScrapeTarget], group_names: dict, summary: UpdateSummary) -> None:
        with ThreadPoolExecutor(max_workers=len(batch)) as executor:
            futures = [
                executor.submit(self.scraper.scrape_event, target.group_id, target.ticketdive_id)
                for target in batch
            ]

        # Every future has settled once the executor is shut down.
        for target, future in zip(batch, futures):
            summary.processed += 1
            name = group_names.get(target.group_id) or target.group_id

            try:
                result = future.result()
            except Exception as e:
                logger.warning(f"Scrape for group {target.group_id} raised: {e}")
                summary.failed += 1
                summary.errors.append(f"unknown: {e}")
                continue

            if result.success:
                summary.success += 1
            else:
                summary.failed += 1
                summary.errors.append(f"{name}: {result.error or 'failed'}")
