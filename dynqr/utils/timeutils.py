import datetime


def utcnow() -> datetime.datetime:
    # Naive UTC, matching how the DateTime columns are stored
    return datetime.datetime.now(datetime.timezone.utc).replace(tzinfo=None)
