import datetime
import logging

import dateutil.parser

logger = logging.getLogger("jstat.time")

EPOCH = datetime.datetime(1970, 1, 1, tzinfo=datetime.timezone.utc)


def convert_realtime_timestamp_to_datetime(microseconds: int) -> datetime.datetime:
    return EPOCH + datetime.timedelta(microseconds=microseconds)


def convert_datetime_to_realtime_timestamp(timestamp: datetime.datetime) -> int:
    """Microseconds since the epoch, as journald records realtime timestamps.

    Naive datetimes are taken to be UTC.
    """
    if timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=datetime.timezone.utc)

    delta = timestamp - EPOCH
    return (delta.days * 86400 + delta.seconds) * 1000000 + delta.microseconds


# Largest value a datetime can represent (9999-12-31 23:59:59.999999 UTC).
MAX_REALTIME_TIMESTAMP = convert_datetime_to_realtime_timestamp(datetime.datetime.max)


def parse_timestamp(value: str) -> int:
    """Parse a user supplied date/time into a realtime timestamp."""
    try:
        timestamp = dateutil.parser.parse(value)
    except (ValueError, OverflowError) as error:
        logger.debug("Failed to parse ts=%r (%r)", value, error)
        raise ValueError(f"invalid timestamp: {value!r}") from error

    return convert_datetime_to_realtime_timestamp(timestamp)
