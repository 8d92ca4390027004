"""
Pytest configuration and fixtures for the Hemnet image lambdas.
"""
import json
import os
from typing import Dict, List
from unittest.mock import patch

import boto3
import pytest
import responses
from moto import mock_aws
from responses import matchers

from hemnet_images.util.config import HemnetConfig

TEST_REGION = 'us-east-1'
TEST_TABLE = 'HemnetProperties'
TEST_BUCKET = 'hemnet-property-images'
FROM_ADDRESS = 'bilder@example.com'
TO_ADDRESSES = ['anna@example.com', 'erik@example.com']
SEARCH_KEY = 'f3a9c2b1e0'

EXAMPLE_EVENTS_DIR = os.path.join(os.path.dirname(__file__), '..', 'example-events')


def thumbnail_url(property_id):
    return f"https://bilder.hemnet.se/images/itemgallery_cut/{property_id[:2]}/{property_id[2:4]}/{property_id}.jpg"


def image_bytes(url):
    """Deterministic fake JPEG body for an image URL."""
    return b'\xff\xd8\xff\xe0' + url.encode('utf-8')


def search_page_html(search_key):
    return (
        '<html><head><title>Bevakning</title>'
        '<script>window.__HEMNET__ = {&quot;search&quot;:{&quot;search_key&quot;:&quot;'
        + search_key +
        '&quot;,&quot;page&quot;:1}};</script></head><body></body></html>'
    )


def graphql_listing(street_address, image_urls):
    """GraphQL detail payload; image_urls=None models a listing without images."""
    listing = {'id': '1', 'streetAddress': street_address}
    if image_urls is not None:
        listing['images'] = {'images': [{'url': url} for url in image_urls]}
    return {'data': {'listing': listing}}


class FakeHemnet:
    """Registers hemnet.se endpoints on a responses.RequestsMock."""

    image_bytes = staticmethod(image_bytes)
    thumbnail_url = staticmethod(thumbnail_url)

    def __init__(self, rsps, config):
        self.rsps = rsps
        self.config = config

    def add_search(self, listings: Dict[str, int], search_key=SEARCH_KEY):
        self.rsps.add(
            responses.GET,
            self.config.resolved_search_page_url(),
            body=search_page_html(search_key),
            status=200,
            content_type='text/html'
        )
        self.rsps.add(
            responses.GET,
            self.config.search_api_url_template.format(search_key=search_key),
            json={'properties': [
                {'id': listing_id, 'thumbnail': thumbnail_url(property_id)}
                for property_id, listing_id in listings.items()
            ]},
            status=200
        )

    def add_listing(self, listing_id, street_address, image_urls: List[str] = None, image_status=200):
        self.rsps.add(
            responses.POST,
            self.config.graphql_url,
            json=graphql_listing(street_address, image_urls),
            status=200,
            match=[matchers.json_params_matcher({'variables': {'id': str(listing_id)}}, strict_match=False)]
        )
        for url in image_urls or []:
            self.rsps.add(
                responses.GET,
                url,
                body=image_bytes(url) if image_status == 200 else b'',
                status=image_status,
                content_type='image/jpeg'
            )


@pytest.fixture
def aws_credentials():
    """Mocked AWS Credentials for moto."""
    os.environ['AWS_ACCESS_KEY_ID'] = 'testing'
    os.environ['AWS_SECRET_ACCESS_KEY'] = 'testing'
    os.environ['AWS_SECURITY_TOKEN'] = 'testing'
    os.environ['AWS_SESSION_TOKEN'] = 'testing'
    os.environ['AWS_DEFAULT_REGION'] = TEST_REGION


@pytest.fixture
def test_config():
    """Configuration pointing at the mocked AWS resources."""
    return HemnetConfig(
        aws_region=TEST_REGION,
        table_name=TEST_TABLE,
        bucket_name=TEST_BUCKET,
        from_address=FROM_ADDRESS,
        to_addresses=list(TO_ADDRESSES),
        subscription_id='1234567',
        http_timeout=5.0,
        aws_timeout=5.0,
        max_concurrent_listings=2,
        metrics_enabled=False
    )


@pytest.fixture
def aws_mock(aws_credentials):
    with mock_aws():
        yield


@pytest.fixture
def dynamodb_table(aws_mock):
    """Mock DynamoDB properties table; yields (service resource, table)."""
    dynamodb = boto3.resource('dynamodb', region_name=TEST_REGION)
    table = dynamodb.create_table(
        TableName=TEST_TABLE,
        KeySchema=[{'AttributeName': 'PropertyId', 'KeyType': 'HASH'}],
        AttributeDefinitions=[{'AttributeName': 'PropertyId', 'AttributeType': 'S'}],
        BillingMode='PAY_PER_REQUEST'
    )
    yield dynamodb, table


@pytest.fixture
def mock_s3_client(aws_mock):
    """Mock S3 client with the image bucket."""
    s3 = boto3.client('s3', region_name=TEST_REGION)
    s3.create_bucket(Bucket=TEST_BUCKET)
    yield s3


@pytest.fixture
def mock_ses_client(aws_mock):
    """Mock SES client with a verified sender."""
    ses = boto3.client('ses', region_name=TEST_REGION)
    ses.verify_email_identity(EmailAddress=FROM_ADDRESS)
    yield ses


@pytest.fixture
def fake_hemnet(aws_mock, test_config):
    """Mocked hemnet.se HTTP endpoints."""
    # Started inside mock_aws: moto patches requests too and passes unknown hosts through
    with responses.RequestsMock() as rsps:
        yield FakeHemnet(rsps, test_config)


@pytest.fixture
def environment_variables():
    """Set up environment variables for handler tests."""
    env_vars = {
        'AWS_REGION': TEST_REGION,
        'TABLE_NAME': TEST_TABLE,
        'BUCKET_NAME': TEST_BUCKET,
        'FROM_EMAIL_ADDRESS': FROM_ADDRESS,
        'TO_EMAIL_ADDRESSES': ', '.join(TO_ADDRESSES),
        'SUBSCRIPTION_ID': '1234567',
        'MAX_CONCURRENT_LISTINGS': '2',
        'METRICS_ENABLED': 'false',
    }

    with patch.dict(os.environ, env_vars):
        yield env_vars


@pytest.fixture
def sample_sns_event():
    """SNS event wrapping an SES receipt notification."""
    with open(os.path.join(EXAMPLE_EVENTS_DIR, 'example-1.json'), 'r', encoding='utf-8') as f:
        return json.load(f)


@pytest.fixture
def sample_email_content():
    """Raw inbound Hemnet email with a quoted-printable HTML body."""
    return (
        "From: Hemnet <noreply@hemnet.se>\r\n"
        "To: bilder@example.com\r\n"
        "Subject: Slutpris: Kungsgatan 5\r\n"
        "MIME-Version: 1.0\r\n"
        "Content-Type: multipart/alternative; boundary=\"b1\"\r\n"
        "\r\n"
        "--b1\r\n"
        "Content-Type: text/plain; charset=utf-8\r\n"
        "\r\n"
        "Kungsgatan 5 har sålts.\r\n"
        "--b1\r\n"
        "Content-Type: text/html; charset=utf-8\r\n"
        "Content-Transfer-Encoding: quoted-printable\r\n"
        "\r\n"
        "<html><body><p>Kungsgatan 5 har s=C3=A5lts.</p>"
        "<img src=3D\"https://bilder.hemnet.se/images/itemgallery_cut/xy/z7/xyz=\r\n"
        "789.jpg\"></body></html>\r\n"
        "--b1--\r\n"
    )


@pytest.fixture
def make_sns_event():
    """Factory wrapping raw message contents in an SNS event, one record each."""
    def _make(*contents, subject='Slutpris'):
        records = []
        for content in contents:
            message = {
                'notificationType': 'Received',
                'mail': {'commonHeaders': {'subject': subject}},
                'content': content
            }
            records.append({'Sns': {'Message': json.dumps(message)}})
        return {'Records': records}
    return _make
