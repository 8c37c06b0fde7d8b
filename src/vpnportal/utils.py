import logging
import re
from urllib.parse import urlparse

from cryptojwt.jwt import utc_time_sans_frac

logger = logging.getLogger(__name__)

BASE_URI_PATTERN = re.compile(r"^https://[A-Za-z0-9\-.]+/$")
PROFILE_ID_PATTERN = re.compile(r"^[A-Za-z0-9\-.]+$")


def is_absolute_base_uri(uri) -> bool:
    """
    Checks that a base URI as found in a discovery document is an absolute
    https URL with a host name and a path ending in "/".
    """
    if not isinstance(uri, str):
        return False
    try:
        p = urlparse(uri)
    except ValueError:
        return False
    return p.scheme == "https" and bool(p.hostname) and p.path.endswith("/") \
        and not p.query and not p.fragment


def cache_file_name(url: str) -> str:
    """
    Deterministic file name for the cached copy of a discovery document.

    :param url: The URL the document is fetched from
    :return: host name and path components joined by '_'
    """
    p = urlparse(url)
    _part = [p.netloc.replace(":", "_")]
    _part.extend([s for s in p.path.split("/") if s])
    return "_".join(_part)


def grant_is_expired(grant: dict, now: int = 0) -> bool:
    if not now:
        now = utc_time_sans_frac()
    _exp = grant.get("expires_at")
    if _exp and _exp <= now:
        logger.debug(f'is_expired: {_exp} <= {now}')
        return True

    return False


def is_absolute_url(uri) -> bool:
    if not isinstance(uri, str) or any(c.isspace() for c in uri):
        return False
    try:
        p = urlparse(uri)
        p.port  # raises ValueError for a bad port
    except ValueError:
        return False
    return p.scheme in ["https", "http"] and bool(p.hostname)
