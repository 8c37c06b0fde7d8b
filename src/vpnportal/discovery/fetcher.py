import base64
import binascii
import logging
from typing import Callable
from typing import Optional

from requests import request
from requests.exceptions import RequestException

from vpnportal.discovery.signature import verify
from vpnportal.discovery.store import DiscoveryStore
from vpnportal.exception import RollbackError
from vpnportal.exception import TransportError
from vpnportal.exception import VerificationError
from vpnportal.message import DiscoveryDocument

logger = logging.getLogger(__name__)


def http_get(httpc: Callable, url: str, **httpc_params):
    """
    GET a document.

    :param httpc: HTTP client, same signature as requests.request
    :param url: Target URL
    :param httpc_params: Arguments for the HTTP call, e.g. timeout
    :return: The response
    """
    try:
        response = httpc("GET", url, **httpc_params)
    except RequestException as err:
        logger.error(f'Could not fetch {url}: {err}')
        raise TransportError(f"Unable to fetch '{url}': {err}")

    if not 200 <= response.status_code < 300:
        logger.error(f'Fetching {url} returned {response.status_code}')
        raise TransportError(f"Unable to fetch '{url}': {response.status_code}")

    return response


class DiscoveryFetcher(object):

    def __init__(self,
                 store: DiscoveryStore,
                 httpc: Optional[Callable] = None,
                 httpc_params: Optional[dict] = None):
        self.store = store
        self.httpc = httpc or request
        self.httpc_params = httpc_params or {}

    def update(self, source) -> DiscoveryDocument:
        """
        Fetch, verify, check and store the discovery document of one source.
        Nothing is stored unless every check passes.

        :param source: A DiscoverySource instance
        :return: The new DiscoveryDocument
        """
        _doc_response = http_get(self.httpc, source.url, **self.httpc_params)
        _sig_response = http_get(self.httpc, source.signature_url, **self.httpc_params)

        raw = _doc_response.content
        try:
            _signature = base64.b64decode(_sig_response.content.strip(), validate=True)
        except (binascii.Error, ValueError):
            logger.error(f"Signature of {source.url} is not valid base64")
            raise VerificationError(f"Unable to verify signature of '{source.url}'")

        if not verify(raw, _signature, source.public_key):
            logger.error(f"Signature verification failed for {source.url}")
            raise VerificationError(f"Unable to verify signature of '{source.url}'")

        document = DiscoveryDocument.parse(raw, source.name)

        with self.store.lock(source):
            _stored = self.store.load(source)
            _stored_seq = _stored.seq if _stored else 0
            if document.seq < _stored_seq:
                logger.error(
                    f"Rollback of {source.url}: got seq {document.seq}, have {_stored_seq}")
                raise RollbackError(
                    f"'{source.url}' has seq {document.seq} which is older than {_stored_seq}")

            if _stored:
                _gone = _stored.identifiers() - document.identifiers()
                if _gone:
                    logger.info(f"No longer listed in {source.url}: {sorted(_gone)}")

            self.store.save(source, raw)

        logger.info(f"Updated {source.url} to seq {document.seq}")
        return document
