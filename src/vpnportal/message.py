""" Classes used to describe discovery documents, provider information and API responses."""
import json
import logging
from typing import List
from typing import Optional

from idpyoidc.message import Message
from idpyoidc.message import SINGLE_REQUIRED_STRING

from vpnportal.defaults import ALIEN
from vpnportal.defaults import INSTITUTE_ACCESS
from vpnportal.defaults import ORGANIZATION_LIST
from vpnportal.defaults import SECURE_INTERNET
from vpnportal.display_name import DisplayName
from vpnportal.display_name import PlainDisplayName
from vpnportal.exception import ApiCallError
from vpnportal.exception import MalformedDocumentError
from vpnportal.utils import is_absolute_base_uri

logger = logging.getLogger(__name__)


class ProviderInfo(Message):
    """The API section of a provider's info.json"""
    c_param = {
        "authorization_endpoint": SINGLE_REQUIRED_STRING,
        "token_endpoint": SINGLE_REQUIRED_STRING,
        "api_base_uri": SINGLE_REQUIRED_STRING,
    }


class ProviderEntry(object):
    """One VPN server as listed in an institute access or secure internet document."""

    def __init__(self, base_uri: str, display_name: DisplayName, type: str,
                 public_key: Optional[str] = None,
                 support_contact: Optional[List[str]] = None,
                 country_code: Optional[str] = None):
        self.base_uri = base_uri
        self.display_name = display_name
        self.type = type
        self.public_key = public_key
        self.support_contact = support_contact or []
        self.country_code = country_code

    @classmethod
    def from_dict(cls, item, type: str):
        if not isinstance(item, dict):
            raise MalformedDocumentError(f"Provider entry is not an object: {item!r}")

        _base_uri = item.get("base_uri")
        if not is_absolute_base_uri(_base_uri):
            raise MalformedDocumentError(f"Bad base_uri: {_base_uri!r}")

        try:
            _display_name = DisplayName.from_value(item.get("display_name"))
        except ValueError as err:
            raise MalformedDocumentError(f"{_base_uri}: {err}")

        _contact = item.get("support_contact", [])
        if not isinstance(_contact, list):
            raise MalformedDocumentError(f"{_base_uri}: support_contact must be a list")

        return cls(_base_uri, _display_name, type,
                   public_key=item.get("public_key"),
                   support_contact=_contact,
                   country_code=item.get("country_code"))

    @classmethod
    def alien(cls, base_uri: str):
        return cls(base_uri, PlainDisplayName(base_uri), ALIEN)

    def to_dict(self, locale: Optional[str] = None) -> dict:
        res = {
            "base_uri": self.base_uri,
            "display_name": self.display_name.to_json_value(),
            "type": self.type
        }
        if locale:
            res["display_name"] = self.display_name.resolve(locale)
        if self.public_key:
            res["public_key"] = self.public_key
        if self.support_contact:
            res["support_contact"] = self.support_contact
        if self.country_code:
            res["country_code"] = self.country_code
        return res


class OrgEntry(object):
    """An organization and the secure internet server acting as its home."""

    def __init__(self, org_id: str, display_name: DisplayName, secure_internet_home: str,
                 keyword_list=None):
        self.org_id = org_id
        self.display_name = display_name
        self.secure_internet_home = secure_internet_home
        self.keyword_list = keyword_list

    @classmethod
    def from_dict(cls, item):
        if not isinstance(item, dict):
            raise MalformedDocumentError(f"Organization entry is not an object: {item!r}")

        _org_id = item.get("org_id")
        if not isinstance(_org_id, str) or not _org_id:
            raise MalformedDocumentError(f"Bad org_id: {_org_id!r}")

        _home = item.get("secure_internet_home")
        if not is_absolute_base_uri(_home):
            raise MalformedDocumentError(f"{_org_id}: bad secure_internet_home: {_home!r}")

        try:
            _display_name = DisplayName.from_value(item.get("display_name"))
        except ValueError as err:
            raise MalformedDocumentError(f"{_org_id}: {err}")

        return cls(_org_id, _display_name, _home, keyword_list=item.get("keyword_list"))

    def to_dict(self, locale: Optional[str] = None) -> dict:
        res = {
            "org_id": self.org_id,
            "display_name": self.display_name.to_json_value(),
            "secure_internet_home": self.secure_internet_home
        }
        if locale:
            res["display_name"] = self.display_name.resolve(locale)
        if self.keyword_list:
            res["keyword_list"] = self.keyword_list
        return res


class DiscoveryDocument(object):

    def __init__(self, seq: int = 0, instances: Optional[List[ProviderEntry]] = None,
                 organization_list: Optional[List[OrgEntry]] = None, raw: bytes = b''):
        self.seq = seq
        self.instances = instances or []
        self.organization_list = organization_list
        self.raw = raw

    @classmethod
    def parse(cls, raw: bytes, source_name: str):
        """
        Parse a verified discovery document.

        :param raw: The exact bytes that were verified
        :param source_name: institute_access, secure_internet or organization_list
        :return: A DiscoveryDocument instance
        """
        try:
            _info = json.loads(raw)
        except (ValueError, UnicodeDecodeError) as err:
            raise MalformedDocumentError(f"Not JSON: {err}")

        if not isinstance(_info, dict):
            raise MalformedDocumentError("Discovery document is not a JSON object")

        _seq = _info.get("seq", 0)
        if isinstance(_seq, bool) or not isinstance(_seq, int) or _seq < 0:
            raise MalformedDocumentError(f"Bad seq: {_seq!r}")

        if source_name == ORGANIZATION_LIST:
            _list = _info.get("organization_list")
            if not isinstance(_list, list):
                raise MalformedDocumentError("Missing organization_list")
            return cls(seq=_seq, organization_list=[OrgEntry.from_dict(i) for i in _list],
                       raw=raw)
        elif source_name in [INSTITUTE_ACCESS, SECURE_INTERNET]:
            _list = _info.get("instances")
            if not isinstance(_list, list):
                raise MalformedDocumentError("Missing instances")
            return cls(seq=_seq, instances=[ProviderEntry.from_dict(i, source_name) for i in _list],
                       raw=raw)
        else:
            raise MalformedDocumentError(f"Unknown kind of discovery document: {source_name}")

    def identifiers(self) -> set:
        if self.organization_list is not None:
            return {o.org_id for o in self.organization_list}
        return {i.base_uri for i in self.instances}


def api_data(response, call: str):
    """
    Unwraps the data part of a provider API response.

    :param response: The HTTP response
    :param call: The API call, e.g. "profile_list"
    :return: The content of the data attribute
    """
    try:
        _info = response.json()
        _envelope = _info[call]
    except (ValueError, KeyError, TypeError):
        raise ApiCallError(f"Unexpected response to '{call}'")

    if not isinstance(_envelope, dict):
        raise ApiCallError(f"Unexpected response to '{call}'")

    if not _envelope.get("ok", False):
        raise ApiCallError(f"'{call}' failed: {_envelope.get('error', 'unknown error')}")

    return _envelope.get("data")
