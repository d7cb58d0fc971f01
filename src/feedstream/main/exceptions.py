from enum import IntEnum


class ErrorCodes(IntEnum):
    BAD_REQUEST = 9000
    NOT_FOUND = 9001
    NOT_READY = 9002
    FEED_FETCH_FAILED = 9010
    STORE_UNAVAILABLE = 9011
    METRICS_UNAVAILABLE = 9012


class FeedstreamException(Exception):
    pass


class BadRequestException(FeedstreamException):
    pass


class NotFoundException(FeedstreamException):
    pass


class NotReadyException(FeedstreamException):
    pass


class FeedFetchError(FeedstreamException):
    """Feed could not be fetched: unreachable, timed out or non-2xx.

    Retryable. The refresh lock is released as a failure and nothing is written.
    """

    def __init__(self, feed_url: str, reason: str, status_code: int | None = None):
        self.feed_url = feed_url
        self.reason = reason
        self.status_code = status_code
        super().__init__(f"Failed to fetch {feed_url}: {reason}")


class StoreUnavailableError(FeedstreamException):
    """The entity or entry store could not be reached.

    Fatal to the current operation; on the refresh path it causes the whole
    batch to be redelivered by the queue transport.
    """


class MetricsUnavailableError(FeedstreamException):
    pass


# Map exceptions to (status code, message override, error code)
EXCEPTION_MAP = {
    BadRequestException: (400, None, ErrorCodes.BAD_REQUEST),
    NotFoundException: (404, None, ErrorCodes.NOT_FOUND),
    NotReadyException: (503, None, ErrorCodes.NOT_READY),
    FeedFetchError: (502, None, ErrorCodes.FEED_FETCH_FAILED),
    StoreUnavailableError: (503, "Feed store is unavailable", ErrorCodes.STORE_UNAVAILABLE),
    MetricsUnavailableError: (503, None, ErrorCodes.METRICS_UNAVAILABLE),
}
