"""
Email Images Lambda function for forwarding Hemnet emails with property photos.

Triggered by SNS when SES receives an email. Each SNS record carries an SES
receipt notification whose ``content`` is the raw inbound message.
"""
import argparse
import json
import logging
import os
import sys
from typing import Any, Dict, List, Optional, Tuple

from dotenv import load_dotenv

from hemnet_images.email_images.notifier import PropertyImageNotifier
from hemnet_images.errors import HemnetImagesError, InvalidEventError
from hemnet_images.util.config import HemnetConfig
from hemnet_images.util.logging_utils import log_structured_message, setup_logging
from hemnet_images.util.metrics import MetricsEmitter

logger = logging.getLogger(__name__)

EXAMPLE_EVENTS_DIR = 'example-events'


def parse_sns_records(event: Dict[str, Any]) -> List[Tuple[str, Optional[str]]]:
    """
    Extract (content, subject) pairs from an SNS event.

    Args:
        event: Lambda event as delivered by SNS

    Returns:
        One (raw message content, notification subject) pair per record
    """
    records = event.get('Records') if isinstance(event, dict) else None
    if not isinstance(records, list) or not records:
        raise InvalidEventError("Event has no SNS records")

    messages = []
    for record in records:
        try:
            notification = json.loads(record['Sns']['Message'])
            content = notification['content']
        except (KeyError, TypeError, ValueError) as e:
            raise InvalidEventError("SNS record does not wrap an SES notification with content") from e

        if not isinstance(content, str):
            raise InvalidEventError("SES notification content is not a string")

        mail = notification.get('mail') or {}
        if not isinstance(mail, dict):
            raise InvalidEventError("SES notification 'mail' is not an object")
        headers = mail.get('commonHeaders') or {}
        if not isinstance(headers, dict):
            raise InvalidEventError("SES notification 'commonHeaders' is not an object")

        subject = headers.get('subject')
        messages.append((content, subject if isinstance(subject, str) else None))

    return messages


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Main Lambda handler for property image emails.

    Args:
        event: SNS event wrapping SES receipt notifications
        context: Lambda context

    Returns:
        Dict containing per-record delivery status
    """
    config = HemnetConfig.from_env()
    setup_logging(config.log_level)
    metrics = MetricsEmitter(config, stage='EmailImages')

    logger.info("Running email-images")
    logger.debug(f"Event: {json.dumps(event, default=str)}")

    try:
        messages = parse_sns_records(event)
        notifier = PropertyImageNotifier(config)
    except HemnetImagesError as e:
        logger.error(f"Email images failed before processing: {type(e).__name__}: {e}")
        metrics.emit_metric('NotificationsFailed', 1)
        return {
            'statusCode': 500,
            'error': str(e),
            'error_type': type(e).__name__
        }

    results = []
    for content, subject in messages:
        try:
            result = notifier.notify(content, subject=subject)
            result['sent'] = True
            results.append(result)
            log_structured_message(logger, "INFO", "Property images sent", **result)
        except HemnetImagesError as e:
            # Terminal for this notification only
            log_structured_message(logger, "ERROR", f"Could not send property images: {e}",
                                   error_type=type(e).__name__)
            results.append({
                'sent': False,
                'error': str(e),
                'error_type': type(e).__name__
            })

    sent_count = sum(1 for result in results if result['sent'])
    failed_count = len(results) - sent_count

    metrics.emit_batch_metrics({
        'NotificationsSent': sent_count,
        'NotificationsFailed': failed_count
    })

    logger.info(f"Email images done: {sent_count} sent, {failed_count} failed")

    return {
        'statusCode': 200 if failed_count == 0 else 500,
        'sent': sent_count,
        'failed': failed_count,
        'results': results
    }


def load_example_event(name: str) -> Dict[str, Any]:
    """Load ``example-events/<name>.json``."""
    path = os.path.join(EXAMPLE_EVENTS_DIR, f"{name}.json")
    with open(path, 'r', encoding='utf-8') as f:
        return json.load(f)


def main(argv=None):
    """Run the handler locally against a sample SNS event"""
    load_dotenv()

    parser = argparse.ArgumentParser(description="Send a property image email for a sample SNS event")
    parser.add_argument(
        '--event',
        help='Path to a JSON event file (default: example-events/$EVENT_EXAMPLE.json)'
    )
    args = parser.parse_args(argv)

    if args.event:
        with open(args.event, 'r', encoding='utf-8') as f:
            event = json.load(f)
    else:
        event = load_example_event(os.environ.get('EVENT_EXAMPLE', 'example-1'))

    result = lambda_handler(event, None)
    print(json.dumps(result, indent=2, default=str))
    return 0 if result['statusCode'] == 200 else 1


if __name__ == "__main__":
    sys.exit(main())
