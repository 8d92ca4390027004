"""
Exception types raised by the ingestion and notification pipelines.

Every error is terminal for the unit of work that raised it (one listing or
one inbound notification). The underlying transport or parse error is kept as
the exception's ``__cause__``.
"""


class HemnetImagesError(Exception):
    """Base class for all pipeline errors."""


class ConfigurationError(HemnetImagesError):
    """Required configuration is missing or invalid."""


class InvalidEventError(HemnetImagesError):
    """Lambda event payload does not have the expected shape."""


# Ingestion

class ExtractionError(HemnetImagesError):
    """Search key could not be extracted from the search page."""


class DiscoveryError(HemnetImagesError):
    """Search page or search endpoint could not be read."""


class StoreQueryError(HemnetImagesError):
    """Batched existence check against DynamoDB failed."""


class DetailFetchError(HemnetImagesError):
    """Listing detail (GraphQL) request failed."""


class ImageFetchError(HemnetImagesError):
    """Image download failed."""


class ImageStoreError(HemnetImagesError):
    """Image upload to S3 failed."""


class StoreWriteError(HemnetImagesError):
    """Property record could not be written."""


class StoreReadError(HemnetImagesError):
    """Property record could not be read."""


# Notification

class PatternNotFoundError(HemnetImagesError):
    """No property image URL found in the inbound message."""


class UnknownPropertyError(HemnetImagesError):
    """Inbound message references a property that was never ingested."""


class ImageRetrievalError(HemnetImagesError):
    """Stored image could not be read back from S3."""


class MessageParseError(HemnetImagesError):
    """Inbound message could not be parsed into an HTML body."""


class SendError(HemnetImagesError):
    """Outbound email was rejected by SES."""
