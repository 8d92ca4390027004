"""
Configuration for the Hemnet image lambdas.

Values are read from environment variables once per invocation and passed
explicitly to every component, so nothing here is process-wide state.
"""

import logging
import os
from dataclasses import dataclass, field
from typing import List, Optional

from hemnet_images.errors import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_REGION = 'eu-north-1'
DEFAULT_TABLE_NAME = 'HemnetProperties'
DEFAULT_BUCKET_NAME = 'hemnet-property-images'
DEFAULT_SUBJECT = 'Hemnet slutpris'
DEFAULT_SEARCH_PAGE_URL = 'https://www.hemnet.se/bostader?subscription={subscription_id}'
DEFAULT_SEARCH_API_URL = 'https://www.hemnet.se/bostader/search/{search_key}'
DEFAULT_GRAPHQL_URL = 'https://www.hemnet.se/graphql'


def _get_bool_from_env(key: str, default: bool = False) -> bool:
    """Parse boolean from environment variable."""
    value = os.getenv(key, '').lower()
    if value in ('1', 'true', 'yes', 'on', 'enabled'):
        return True
    elif value in ('0', 'false', 'no', 'off', 'disabled'):
        return False
    else:
        return default


def _get_int_from_env(key: str, default: int = 0) -> int:
    """Parse integer from environment variable."""
    try:
        return int(os.getenv(key, str(default)))
    except (ValueError, TypeError):
        logger.warning(f"Invalid integer value for {key}, using default: {default}")
        return default


def _get_float_from_env(key: str, default: float = 0.0) -> float:
    """Parse float from environment variable."""
    try:
        return float(os.getenv(key, str(default)))
    except (ValueError, TypeError):
        logger.warning(f"Invalid float value for {key}, using default: {default}")
        return default


def parse_email_addresses(value: Optional[str]) -> List[str]:
    """Split a comma-separated address list into trimmed, non-empty addresses."""
    if not value:
        return []
    return [address.strip() for address in value.split(',') if address.strip()]


@dataclass
class HemnetConfig:
    """Settings shared by the upload-images and email-images lambdas."""
    aws_region: str = DEFAULT_REGION
    table_name: str = DEFAULT_TABLE_NAME
    bucket_name: str = DEFAULT_BUCKET_NAME

    # Email settings
    from_address: str = ''
    to_addresses: List[str] = field(default_factory=list)
    default_subject: str = DEFAULT_SUBJECT

    # Listing site
    subscription_id: str = ''
    search_page_url: str = DEFAULT_SEARCH_PAGE_URL
    search_api_url_template: str = DEFAULT_SEARCH_API_URL
    graphql_url: str = DEFAULT_GRAPHQL_URL

    # Limits
    http_timeout: float = 30.0
    aws_timeout: float = 30.0
    max_concurrent_listings: int = 3

    log_level: str = 'INFO'
    metrics_enabled: bool = True

    @classmethod
    def from_env(cls) -> 'HemnetConfig':
        """Build configuration from environment variables."""
        config = cls(
            aws_region=os.getenv('AWS_REGION', DEFAULT_REGION),
            table_name=os.getenv('TABLE_NAME', DEFAULT_TABLE_NAME),
            bucket_name=os.getenv('BUCKET_NAME', DEFAULT_BUCKET_NAME),
            from_address=os.getenv('FROM_EMAIL_ADDRESS', '').strip(),
            to_addresses=parse_email_addresses(os.getenv('TO_EMAIL_ADDRESSES', '')),
            default_subject=os.getenv('DEFAULT_SUBJECT', DEFAULT_SUBJECT),
            subscription_id=os.getenv('SUBSCRIPTION_ID', '').strip(),
            search_page_url=os.getenv('SEARCH_PAGE_URL', DEFAULT_SEARCH_PAGE_URL),
            search_api_url_template=os.getenv('SEARCH_API_URL', DEFAULT_SEARCH_API_URL),
            graphql_url=os.getenv('GRAPHQL_URL', DEFAULT_GRAPHQL_URL),
            http_timeout=_get_float_from_env('HTTP_TIMEOUT_SECONDS', default=30.0),
            aws_timeout=_get_float_from_env('AWS_TIMEOUT_SECONDS', default=30.0),
            max_concurrent_listings=max(_get_int_from_env('MAX_CONCURRENT_LISTINGS', default=3), 1),
            log_level=os.getenv('LOG_LEVEL', 'INFO').upper(),
            metrics_enabled=_get_bool_from_env('METRICS_ENABLED', default=True),
        )

        logger.debug(f"Loaded configuration: table={config.table_name}, bucket={config.bucket_name}, "
                     f"region={config.aws_region}")
        return config

    def resolved_search_page_url(self) -> str:
        """Search page URL with the subscription id filled in."""
        if '{subscription_id}' in self.search_page_url and not self.subscription_id:
            raise ConfigurationError(
                "SUBSCRIPTION_ID must be set when SEARCH_PAGE_URL references it"
            )
        return self.search_page_url.format(subscription_id=self.subscription_id)

    def require_email_settings(self) -> None:
        """Fail fast when the sender or recipients are missing."""
        if not self.from_address:
            raise ConfigurationError("FROM_EMAIL_ADDRESS must be configured")
        if not self.to_addresses:
            raise ConfigurationError("TO_EMAIL_ADDRESSES must contain at least one address")
