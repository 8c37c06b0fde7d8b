DEFAULT_PREFERRED_LOCALE = "en-US"

DEFAULT_REQUEST_SCOPE = "config"

DEFAULT_CANARY_LIFETIME = 3600

DEFAULT_HTTPC_PARAMS = {"timeout": 10}

API_VERSION_KEY = "http://eduvpn.org/api#2"

INSTITUTE_ACCESS = "institute_access"
SECURE_INTERNET = "secure_internet"
ORGANIZATION_LIST = "organization_list"
ALIEN = "alien"

# Lookup order used when classifying a base URI
PROVIDER_TYPES = [INSTITUTE_ACCESS, SECURE_INTERNET]

DISCOVERY_URLS = {
    INSTITUTE_ACCESS: "https://static.eduvpn.nl/disco/institute_access.json",
    SECURE_INTERNET: "https://static.eduvpn.nl/disco/secure_internet.json",
    ORGANIZATION_LIST: "https://disco.eduvpn.org/organization_list_2.json",
}

CALLBACK_PATH = "callback"

SESSION_KEY = "vpnportal"
