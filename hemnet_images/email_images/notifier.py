"""
Property image email assembly.

An inbound Hemnet email (received by SES and forwarded over SNS) references a
property through one of its gallery image URLs. This module resolves that
property, loads its stored photos from S3 and re-sends the original HTML
email with every photo attached inline.
"""

import email
import email.utils
import logging
import re
from email import policy
from email.mime.image import MIMEImage
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Any, Dict, List, Optional

from botocore.exceptions import BotoCoreError, ClientError

from hemnet_images.dynamodb_utils import get_property_record, setup_dynamodb_client
from hemnet_images.errors import (
    MessageParseError, PatternNotFoundError, SendError, UnknownPropertyError
)
from hemnet_images.s3_utils import download_images, setup_s3_client
from hemnet_images.util.aws import create_client

logger = logging.getLogger(__name__)

PROPERTY_IMAGE_URL_PATTERN = re.compile(
    r'https://bilder\.hemnet\.se/images/itemgallery.+?([a-z0-9]+)\.jpg'
)


def clean_content(content: str) -> str:
    """Strip quoted-printable soft line breaks, then remaining CRLFs."""
    return content.replace('=\r\n', '').replace('\r\n', '')


def extract_property_id(content: str) -> str:
    """
    Find the property id in a raw inbound message.

    Args:
        content: Raw MIME text as delivered by SES

    Returns:
        Property id captured from the first gallery image URL
    """
    match = PROPERTY_IMAGE_URL_PATTERN.search(clean_content(content))
    if not match:
        raise PatternNotFoundError("No Hemnet gallery image URL found in message content")
    return match.group(1)


def build_email(content: str, images: List[bytes], from_address: str,
                to_addresses: List[str], default_subject: str,
                fallback_subject: Optional[str] = None) -> MIMEMultipart:
    """
    Rebuild the inbound email with the property photos attached inline.

    Args:
        content: Raw inbound MIME message
        images: Image bytes in listing order
        from_address: Sender address
        to_addresses: Recipient addresses
        default_subject: Subject used when neither the message nor the
            notification headers carry one
        fallback_subject: Subject from the SES notification headers

    Returns:
        multipart/related message: HTML body followed by image1.jpg, image2.jpg, ...
    """
    try:
        parsed = email.message_from_string(content, policy=policy.default)
        html_part = parsed.get_body(preferencelist=('html',))
        html_body = html_part.get_content() if html_part is not None else None
    except (LookupError, ValueError, TypeError) as e:
        raise MessageParseError("Could not parse inbound email") from e

    if not html_body:
        raise MessageParseError("Inbound email has no HTML body")

    subject = parsed.get('Subject') or fallback_subject or default_subject

    msg = MIMEMultipart('related')
    msg['Subject'] = str(subject)
    msg['From'] = from_address
    msg['To'] = ', '.join(to_addresses)
    msg['Date'] = email.utils.formatdate(localtime=True)

    msg.attach(MIMEText(html_body, 'html', 'utf-8'))

    for i, image in enumerate(images, 1):
        filename = f"image{i}.jpg"
        image_part = MIMEImage(image, _subtype='jpeg')
        image_part.add_header('Content-ID', f'<{filename}>')
        image_part.add_header('Content-Disposition', 'inline', filename=filename)
        msg.attach(image_part)

    return msg


def send_email(ses_client, msg: MIMEMultipart, from_address: str, to_addresses: List[str]) -> str:
    """Send a pre-built message through SES; returns the SES message id."""
    raw_message = msg.as_string()
    logger.debug(f"Email message size: {len(raw_message)} bytes")

    try:
        response = ses_client.send_raw_email(
            Source=from_address,
            Destinations=to_addresses,
            RawMessage={'Data': raw_message}
        )
    except ClientError as e:
        error_code = e.response['Error']['Code']
        error_message = e.response['Error']['Message']
        logger.error(f"AWS SES error sending email: {error_code} - {error_message}")

        if error_code == 'MessageRejected':
            logger.error("Email rejected - check SES sending limits and verification status")
        elif error_code == 'AccessDenied':
            logger.error("SES access denied - check IAM permissions for ses:SendRawEmail")

        raise SendError(f"SES rejected the email: {error_code}") from e
    except BotoCoreError as e:
        logger.error(f"SES transport error sending email: {e}")
        raise SendError("Could not reach SES") from e

    message_id = response.get('MessageId', '')
    logger.info(f"Email {message_id} sent to {', '.join(to_addresses)}")
    return message_id


class PropertyImageNotifier:
    """Resolve the property referenced by an inbound email and forward its photos."""

    def __init__(self, config, table=None, s3_client=None, ses_client=None):
        """
        Initialize the notifier.

        Args:
            config: HemnetConfig with table, bucket and email settings
            table: Optional DynamoDB Table resource for the properties table
            s3_client: Optional boto3 S3 client
            ses_client: Optional boto3 SES client
        """
        config.require_email_settings()
        self.config = config
        self.table = table if table is not None else setup_dynamodb_client(config)[1]
        self.s3_client = s3_client or setup_s3_client(config)
        self.ses_client = ses_client or create_client('ses', config)

    def notify(self, content: str, subject: Optional[str] = None) -> Dict[str, Any]:
        """
        Send the photo email for the property referenced in ``content``.

        Args:
            content: Raw inbound MIME message
            subject: Subject from the SES notification headers, if any

        Returns:
            Dictionary with property id, image count and SES message id
        """
        property_id = extract_property_id(content)
        logger.info(f"Inbound email references property {property_id}")

        record = get_property_record(property_id, self.table)
        if record is None:
            raise UnknownPropertyError(f"Could not find property id {property_id} in {self.config.table_name}")

        images = download_images(record.image_ids, self.s3_client, self.config.bucket_name)
        logger.info(f"Loaded {len(images)} images for property {property_id}")

        msg = build_email(
            content,
            images,
            self.config.from_address,
            self.config.to_addresses,
            self.config.default_subject,
            fallback_subject=subject
        )
        message_id = send_email(self.ses_client, msg, self.config.from_address, self.config.to_addresses)

        return {
            'property_id': property_id,
            'street_address': record.street_address,
            'image_count': len(images),
            'message_id': message_id
        }
