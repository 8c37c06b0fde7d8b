import base64
import json

from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey
from cryptography.hazmat.primitives.serialization import Encoding
from cryptography.hazmat.primitives.serialization import PublicFormat

from vpnportal.defaults import API_VERSION_KEY
from vpnportal.defaults import INSTITUTE_ACCESS
from vpnportal.defaults import ORGANIZATION_LIST
from vpnportal.defaults import SECURE_INTERNET
from vpnportal.discovery import DiscoverySource

DISCOVERY_URL = {
    INSTITUTE_ACCESS: "https://disco.example.org/institute_access.json",
    SECURE_INTERNET: "https://disco.example.org/secure_internet.json",
    ORGANIZATION_LIST: "https://disco.example.org/organization_list.json",
}

INSTITUTE = "https://vpn.example.edu/"
OTHER_INSTITUTE = "https://vpn.other.example.edu/"
HOME = "https://nl.example.net/"
LOCATION = "https://de.example.net/"
ALIEN = "https://vpn.unknown.example.com/"

INSTITUTE_ACCESS_INSTANCES = [
    {
        "base_uri": OTHER_INSTITUTE,
        "display_name": {"nl-NL": "Andere Universiteit", "en-US": "Other University"},
        "public_key": "O53DTgB956magGaWpVCKtdKIMYqywS3FMAC5fHXdFNg=",
    },
    {
        "base_uri": INSTITUTE,
        "display_name": "Example University",
        "support_contact": ["mailto:vpn@example.edu"],
    }
]

SECURE_INTERNET_INSTANCES = [
    {
        "base_uri": LOCATION,
        "display_name": {"de-DE": "Deutschland"},
        "country_code": "DE",
    },
    {
        "base_uri": HOME,
        "display_name": {"nl-NL": "Nederland", "en-US": "The Netherlands"},
        "country_code": "NL",
        "public_key": "qOLZSWv8jOT8uArf7mxGCJDkd5YVzRXvNG6P3XtqmiM=",
    }
]

ORGANIZATIONS = [
    {
        "org_id": "https://idp.example.org/saml",
        "display_name": {"en-US": "Example Organization"},
        "secure_internet_home": HOME,
        "keyword_list": {"en": "example"},
    },
    {
        "org_id": "urn:example:another",
        "display_name": "Another Organization",
        "secure_internet_home": LOCATION,
    }
]


def new_signing_key():
    return Ed25519PrivateKey.generate()


def raw_public_key(signing_key) -> bytes:
    return signing_key.public_key().public_bytes(Encoding.Raw, PublicFormat.Raw)


def sign(signing_key, raw: bytes) -> bytes:
    """Base64 encoded detached signature, as published next to a discovery document."""
    return base64.b64encode(signing_key.sign(raw))


def instances_document(seq, instances) -> bytes:
    return json.dumps({"seq": seq, "instances": instances}).encode()


def organization_document(seq, organizations) -> bytes:
    return json.dumps({"seq": seq, "organization_list": organizations}).encode()


def make_sources(public_key: bytes) -> dict:
    return {name: DiscoverySource(name, url, public_key) for name, url in DISCOVERY_URL.items()}


def populate_store(store, sources, seq=1):
    store.save(sources[INSTITUTE_ACCESS], instances_document(seq, INSTITUTE_ACCESS_INSTANCES))
    store.save(sources[SECURE_INTERNET], instances_document(seq, SECURE_INTERNET_INSTANCES))
    store.save(sources[ORGANIZATION_LIST], organization_document(seq, ORGANIZATIONS))


def info_json(base_uri: str) -> dict:
    return {
        "api": {
            API_VERSION_KEY: {
                "authorization_endpoint": f"{base_uri}oauth/authorize",
                "token_endpoint": f"{base_uri}oauth/token",
                "api_base_uri": f"{base_uri}api.php",
            }
        }
    }


def api_response(call: str, data) -> dict:
    return {call: {"ok": True, "data": data}}
