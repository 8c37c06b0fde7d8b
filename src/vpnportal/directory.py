import logging
from typing import Dict
from typing import List
from typing import Optional
from urllib.parse import urlparse

from vpnportal.defaults import DEFAULT_PREFERRED_LOCALE
from vpnportal.defaults import INSTITUTE_ACCESS
from vpnportal.defaults import ORGANIZATION_LIST
from vpnportal.defaults import PROVIDER_TYPES
from vpnportal.defaults import SECURE_INTERNET
from vpnportal.discovery.store import DiscoveryStore
from vpnportal.display_name import sort_key
from vpnportal.exception import ValidationError
from vpnportal.message import OrgEntry
from vpnportal.message import ProviderEntry
from vpnportal.utils import is_absolute_url

logger = logging.getLogger(__name__)


class ProviderDirectory(object):
    """
    Answers questions about providers and organizations using the stored,
    verified discovery documents only.
    """

    def __init__(self, store: DiscoveryStore, sources: dict,
                 preferred_locale: Optional[str] = DEFAULT_PREFERRED_LOCALE):
        self.store = store
        self.sources = sources
        self.preferred_locale = preferred_locale

    def _document(self, name):
        _source = self.sources.get(name)
        if _source is None:
            return None
        return self.store.load(_source)

    def _instances(self, name) -> List[ProviderEntry]:
        _doc = self._document(name)
        if _doc is None:
            return []
        return _doc.instances

    def _organizations(self) -> List[OrgEntry]:
        _doc = self._document(ORGANIZATION_LIST)
        if _doc is None or _doc.organization_list is None:
            return []
        return _doc.organization_list

    def find_provider_by_base_uri(self, base_uri: str) -> ProviderEntry:
        """
        Classify a base URI. Servers not listed in any document are 'alien'.

        :param base_uri: The base URI of a VPN server
        :return: A ProviderEntry instance
        """
        if not is_absolute_url(base_uri):
            raise ValidationError(f'invalid baseUri "{base_uri}"')

        for _type in PROVIDER_TYPES:
            for entry in self._instances(_type):
                if entry.base_uri == base_uri:
                    return entry

        logger.debug(f"{base_uri} is not in any discovery document")
        return ProviderEntry.alien(base_uri)

    def find_provider_by_host_name(self, host_name: str) -> Optional[ProviderEntry]:
        for _type in PROVIDER_TYPES:
            for entry in self._instances(_type):
                if urlparse(entry.base_uri).hostname == host_name:
                    return entry
        return None

    def find_organization_home_uri(self, org_id: str) -> Optional[str]:
        for org in self._organizations():
            if org.org_id == org_id:
                return org.secure_internet_home
        return None

    def provider_public_keys(self) -> Dict[str, str]:
        """Host name to public key for every listed provider that publishes one."""
        res = {}
        for _type in PROVIDER_TYPES:
            for entry in self._instances(_type):
                if entry.public_key:
                    res[urlparse(entry.base_uri).hostname] = entry.public_key
        return res

    def list_institute_access(self) -> List[ProviderEntry]:
        return sorted(self._instances(INSTITUTE_ACCESS), key=sort_key(self.preferred_locale))

    def list_secure_internet(self) -> List[ProviderEntry]:
        return sorted(self._instances(SECURE_INTERNET), key=sort_key(self.preferred_locale))

    def list_organizations(self) -> List[OrgEntry]:
        return sorted(self._organizations(), key=sort_key(self.preferred_locale))
