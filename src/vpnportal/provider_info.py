import logging
from typing import Callable

from idpyoidc.exception import MissingRequiredAttribute

from vpnportal.defaults import API_VERSION_KEY
from vpnportal.discovery.fetcher import http_get
from vpnportal.exception import TransportError
from vpnportal.message import ProviderInfo

logger = logging.getLogger(__name__)


def get_provider_info(httpc: Callable, base_uri: str, **httpc_params) -> ProviderInfo:
    """
    Fetch the OAuth and API endpoints of a VPN server from its info.json.
    The result is never cached.

    :param httpc: HTTP client
    :param base_uri: The server's base URI, ending in '/'
    :return: A ProviderInfo instance
    """
    _url = f"{base_uri}info.json"
    response = http_get(httpc, _url, **httpc_params)
    try:
        _api = response.json()["api"][API_VERSION_KEY]
    except (ValueError, KeyError, TypeError):
        logger.error(f"No usable API description in {_url}")
        raise TransportError(f"Unexpected content in '{_url}'")

    if not isinstance(_api, dict):
        raise TransportError(f"Unexpected content in '{_url}'")

    try:
        _info = ProviderInfo(**_api)
        _info.verify()
    except (MissingRequiredAttribute, ValueError) as err:
        logger.error(f"Incomplete API description in {_url}: {err}")
        raise TransportError(f"Incomplete API description in '{_url}'")

    logger.debug(f"Provider info for {base_uri}: {_info.to_dict()}")
    return _info
