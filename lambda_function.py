"""AWS Lambda handler for the TicketDive event update job."""
import json
import logging
import os
import time
from typing import Dict, Any, Optional

from scraper.ticketdive import TicketDiveScraper
from processor.event_updater import EventUpdater
from storage.dynamodb_manager import DynamoDBManager


# Configure JSON logging
class JsonFormatter(logging.Formatter):
    """Custom JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data = {
            'timestamp': self.formatTime(record),
            'level': record.levelname,
            'message': record.getMessage(),
            'logger': record.name
        }

        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_data, ensure_ascii=False)


def setup_logging(log_level: str = 'INFO') -> None:
    """
    Configure logging with JSON formatter.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
    """
    root_logger = logging.getLogger()

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())
    root_logger.addHandler(handler)

    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))


def _response(status_code: int, body: Dict[str, Any]) -> Dict[str, Any]:
    return {
        'statusCode': status_code,
        'headers': {'Content-Type': 'application/json'},
        'body': json.dumps(body, ensure_ascii=False)
    }


def get_authorization_header(event: Dict[str, Any]) -> Optional[str]:
    """Return the Authorization header of an invocation, ignoring case."""
    headers = event.get('headers') or {}
    for name, value in headers.items():
        if name.lower() == 'authorization':
            return value
    return None


def is_authorized(event: Dict[str, Any], secret: Optional[str]) -> bool:
    """Check the bearer token of an invocation against the cron secret."""
    if not secret:
        return False
    return get_authorization_header(event) == f"Bearer {secret}"


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Main Lambda handler for the scheduled event update.

    Args:
        event: Function URL / API Gateway event payload
        context: Lambda context object

    Returns:
        Response dict with statusCode and the update summary
    """
    # Read configuration from environment variables
    secret = os.environ.get('CRON_SECRET')
    events_table = os.environ.get('EVENTS_TABLE_NAME', 'ticketdive-events')
    external_ids_table = os.environ.get('EXTERNAL_IDS_TABLE_NAME', 'external-ids')
    groups_table = os.environ.get('GROUPS_TABLE_NAME', 'groups')
    log_level = os.environ.get('LOG_LEVEL', 'INFO')

    setup_logging(log_level)
    logger = logging.getLogger(__name__)

    if not is_authorized(event, secret):
        logger.warning("Rejected unauthorized event update request")
        return _response(401, {'error': 'Unauthorized'})

    start_time = time.time()

    try:
        batch_size = int(os.environ.get('BATCH_SIZE', '50'))
        batch_delay_ms = int(os.environ.get('BATCH_DELAY_MS', '700'))
        timeout_env = os.environ.get('TIMEOUT_SECONDS')
        timeout_seconds = float(timeout_env) if timeout_env else None

        logger.info(
            "Event update started",
            extra={
                'events_table': events_table,
                'batch_size': batch_size,
                'batch_delay_ms': batch_delay_ms
            }
        )

        store = DynamoDBManager(
            events_table_name=events_table,
            external_ids_table_name=external_ids_table,
            groups_table_name=groups_table
        )
        scraper = TicketDiveScraper(store, timeout=timeout_seconds)
        updater = EventUpdater(
            store,
            scraper,
            batch_size=batch_size,
            batch_delay=batch_delay_ms / 1000
        )

        summary = updater.update_all_group_events()

        duration = time.time() - start_time
        logger.info(
            f"Event update completed in {round(duration, 2)}s: "
            f"{summary.success}/{summary.total} succeeded"
        )
        for error in summary.errors:
            logger.warning(f"Event update error: {error}")

        return _response(200, {
            'message': 'Event update completed',
            'results': summary.to_dict()
        })

    except Exception as e:
        duration = time.time() - start_time
        logger.error(
            f"Event update failed: {str(e)}",
            extra={
                'duration_seconds': round(duration, 2),
                'error_type': type(e).__name__
            },
            exc_info=True
        )
        return _response(500, {
            'error': 'Internal server error',
            'message': str(e) or 'Unknown error'
        })
