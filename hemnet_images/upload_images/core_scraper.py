#!/usr/bin/env python3
"""
Core scraping functionality for hemnet.se
Search key extraction, listing discovery and listing detail lookups
"""
import random
import re
from urllib.parse import urlparse

import requests

from hemnet_images.errors import DetailFetchError, DiscoveryError, ExtractionError
from hemnet_images.models import ListingDetails

# Browser profiles for request headers
BROWSER_PROFILES = [
    {
        "name": "Chrome_Windows",
        "headers": {
            "User-Agent": "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36",
            "sec-ch-ua": '"Chromium";v="124", "Google Chrome";v="124", "Not-A.Brand";v="99"',
            "sec-ch-ua-platform": '"Windows"',
            "Accept-Language": "sv-SE,sv;q=0.9,en-US;q=0.8,en;q=0.7"
        }
    },
    {
        "name": "Chrome_Mac",
        "headers": {
            "User-Agent": "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/123.0.0.0 Safari/537.36",
            "sec-ch-ua": '"Chromium";v="123", "Google Chrome";v="123", "Not-A.Brand";v="99"',
            "sec-ch-ua-platform": '"macOS"',
            "Accept-Language": "sv,en-US;q=0.9,en;q=0.8"
        }
    },
    {
        "name": "Firefox_Windows",
        "headers": {
            "User-Agent": "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:124.0) Gecko/20100101 Firefox/124.0",
            "Accept-Language": "sv-SE,sv;q=0.8,en-US;q=0.5,en;q=0.3"
        }
    }
]

# The search page embeds the key in JSON, served either raw or HTML-entity encoded
SEARCH_KEY_MARKER = re.compile(r'search_key(?:"|&quot;):(?:"|&quot;)')
SEARCH_KEY_PATTERN = re.compile(SEARCH_KEY_MARKER.pattern + r'([a-z0-9]+)')

LISTING_IMAGES_QUERY_VERSION = "2022-11-01"

LISTING_IMAGES_QUERY = """
query listingImages($id: ID!) {
  listing(id: $id) {
    id
    streetAddress
    ... on ActivePropertyListing {
      images(limit: 300) {
        images {
          url(format: ITEMGALLERY_CUT)
        }
      }
    }
  }
}
"""


def create_session(logger=None):
    """Create HTTP session with browser headers"""
    session = requests.Session()

    profile = random.choice(BROWSER_PROFILES)
    base_headers = profile["headers"].copy()

    base_headers.update({
        'Accept': 'text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,image/webp,*/*;q=0.8',
        # Only encodings urllib3 decodes without extra packages
        'Accept-Encoding': 'gzip, deflate',
        'DNT': '1',
        'Connection': 'keep-alive',
    })

    session.headers.update(base_headers)

    if logger:
        logger.debug(f"Session created with {profile['name']}")

    return session


def extract_search_key(html):
    """Pull the search key out of the search page HTML"""
    html = html or ''
    match = SEARCH_KEY_PATTERN.search(html)
    if not match:
        if SEARCH_KEY_MARKER.search(html):
            raise ExtractionError("search_key marker found but no key follows it")
        raise ExtractionError("search_key marker not found in search page")

    return match.group(1)


def fetch_search_key(session, config, logger=None):
    """Load the saved-search page and extract its search key"""
    url = config.resolved_search_page_url()

    try:
        response = session.get(url, timeout=config.http_timeout)
        response.raise_for_status()
    except requests.RequestException as e:
        if logger:
            logger.error(f"Failed to load search page {url}: {e}")
        raise DiscoveryError(f"Could not load search page {url}") from e

    search_key = extract_search_key(response.text)

    if logger:
        logger.debug(f"Extracted search key {search_key}")

    return search_key


def parse_property_id_from_thumbnail(thumbnail_url):
    """
    Property id is the thumbnail filename without extension:
    https://bilder.hemnet.se/images/itemgallery_cut/3a/5b/3a5b0c1d2e.jpg -> 3a5b0c1d2e
    """
    if not isinstance(thumbnail_url, str) or not thumbnail_url:
        raise DiscoveryError(f"Invalid thumbnail URL: {thumbnail_url!r}")

    filename = urlparse(thumbnail_url).path.rsplit('/', 1)[-1]
    stem = filename.split('.', 1)[0]
    if not stem:
        raise DiscoveryError(f"Could not derive property id from thumbnail {thumbnail_url}")

    return stem


def _parse_listing_id(raw_id):
    if isinstance(raw_id, bool):
        raise DiscoveryError(f"Invalid listing id: {raw_id!r}")
    if isinstance(raw_id, int):
        return raw_id
    if isinstance(raw_id, str) and raw_id.isdigit():
        return int(raw_id)
    raise DiscoveryError(f"Invalid listing id: {raw_id!r}")


def discover_listings(session, search_key, config, logger=None):
    """
    Query the search endpoint and map property id -> listing id.

    Only the first result page is read.
    """
    url = config.search_api_url_template.format(search_key=search_key)

    try:
        response = session.get(url, headers={'Accept': 'application/json'}, timeout=config.http_timeout)
        response.raise_for_status()
    except requests.RequestException as e:
        if logger:
            logger.error(f"Search request failed for {url}: {e}")
        raise DiscoveryError(f"Search request to {url} failed") from e

    try:
        payload = response.json()
    except ValueError as e:
        raise DiscoveryError(f"Search response from {url} is not valid JSON") from e

    if not isinstance(payload, dict) or not isinstance(payload.get('properties'), list):
        raise DiscoveryError("Search response is missing the 'properties' list")

    listings = {}
    for entry in payload['properties']:
        if not isinstance(entry, dict):
            raise DiscoveryError(f"Unexpected search entry: {entry!r}")

        listing_id = _parse_listing_id(entry.get('id'))
        property_id = parse_property_id_from_thumbnail(entry.get('thumbnail'))

        if property_id in listings and logger:
            logger.warning(f"Duplicate property id {property_id}: listing {listings[property_id]} "
                           f"replaced by {listing_id}")
        listings[property_id] = listing_id

    if logger:
        logger.info(f"Discovered {len(listings)} listings")

    return listings


def fetch_listing_details(session, listing_id, config, logger=None):
    """
    Fetch street address and image URLs for one listing.

    Returns None when the listing has no images.
    """
    body = {
        'operationName': 'listingImages',
        'query': LISTING_IMAGES_QUERY,
        'variables': {'id': str(listing_id)},
    }
    headers = {
        'Accept': 'application/json',
        'Content-Type': 'application/json',
        'X-Query-Version': LISTING_IMAGES_QUERY_VERSION,
    }

    try:
        response = session.post(config.graphql_url, json=body, headers=headers, timeout=config.http_timeout)
        response.raise_for_status()
    except requests.RequestException as e:
        if logger:
            logger.warning(f"Detail request failed for listing {listing_id}: {e}")
        raise DetailFetchError(f"Detail request for listing {listing_id} failed") from e

    try:
        payload = response.json()
    except ValueError as e:
        raise DetailFetchError(f"Detail response for listing {listing_id} is not valid JSON") from e

    if not isinstance(payload, dict):
        raise DetailFetchError(f"Unexpected detail response for listing {listing_id}")

    if payload.get('errors'):
        messages = [error.get('message', '') for error in payload['errors'] if isinstance(error, dict)]
        raise DetailFetchError(f"GraphQL errors for listing {listing_id}: {messages}")

    listing = (payload.get('data') or {}).get('listing')
    if not isinstance(listing, dict):
        raise DetailFetchError(f"Detail response for listing {listing_id} has no listing")

    street_address = listing.get('streetAddress')
    if not isinstance(street_address, str):
        raise DetailFetchError(f"Detail response for listing {listing_id} has no street address")

    images = listing.get('images')
    if images is None:
        return None
    if not isinstance(images, dict) or not isinstance(images.get('images'), list):
        raise DetailFetchError(f"Unexpected image list for listing {listing_id}")

    image_urls = []
    for image in images['images']:
        url = image.get('url') if isinstance(image, dict) else None
        if not isinstance(url, str) or not url:
            raise DetailFetchError(f"Image without URL for listing {listing_id}")
        image_urls.append(url)

    if not image_urls:
        return None

    return ListingDetails(
        listing_id=listing_id,
        street_address=street_address,
        image_urls=image_urls,
    )
