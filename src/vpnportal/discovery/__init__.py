import base64
import binascii
import logging
from typing import Callable
from typing import Dict
from typing import Optional

from vpnportal.defaults import DISCOVERY_URLS
from vpnportal.discovery.fetcher import DiscoveryFetcher
from vpnportal.discovery.store import DiscoveryStore
from vpnportal.exception import PortalError
from vpnportal.utils import cache_file_name

logger = logging.getLogger(__name__)


class DiscoverySource(object):
    """Where a discovery document is published and the key it must be signed with."""

    __slots__ = ("name", "url", "public_key", "cache_name")

    def __init__(self, name: str, url: str, public_key: bytes, cache_name: Optional[str] = ""):
        object.__setattr__(self, "name", name)
        object.__setattr__(self, "url", url)
        object.__setattr__(self, "public_key", public_key)
        object.__setattr__(self, "cache_name", cache_name or cache_file_name(url))

    def __setattr__(self, key, value):
        raise AttributeError("DiscoverySource is immutable")

    @property
    def signature_url(self) -> str:
        return f"{self.url}.sig"

    def __repr__(self):
        return f"DiscoverySource({self.name!r}, {self.url!r})"


def sources_from_config(discovery_conf: dict) -> Dict[str, DiscoverySource]:
    """
    Build the discovery sources from configuration.

    :param discovery_conf: Dictionary mapping source name to a dictionary with
        'url' and a base64 encoded 'public_key'. The url may be left out for
        the well known sources.
    :return: Dictionary mapping source name to DiscoverySource instance
    """
    res = {}
    for name, _conf in discovery_conf.items():
        try:
            _key = base64.b64decode(_conf["public_key"], validate=True)
        except (binascii.Error, ValueError, KeyError, TypeError):
            raise ValueError(f"Missing or bad public_key for discovery source '{name}'")
        _url = _conf.get("url") or DISCOVERY_URLS.get(name)
        if not _url:
            raise ValueError(f"No url for discovery source '{name}'")
        res[name] = DiscoverySource(name, _url, _key, cache_name=_conf.get("cache_name"))
    return res


def update_discovery(sources: Dict[str, DiscoverySource],
                     store: DiscoveryStore,
                     httpc: Optional[Callable] = None,
                     httpc_params: Optional[dict] = None):
    """
    Update every source. A failing source does not stop the others.

    :return: Tuple of two dictionaries, name to DiscoveryDocument for the updated
        sources and name to exception for the failed ones.
    """
    fetcher = DiscoveryFetcher(store, httpc=httpc, httpc_params=httpc_params)
    updated = {}
    failed = {}
    for name, source in sources.items():
        try:
            updated[name] = fetcher.update(source)
        except PortalError as err:
            logger.error(f"Update of '{name}' failed: {err.__class__.__name__}: {err}")
            failed[name] = err

    return updated, failed
