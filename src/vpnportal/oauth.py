"""
OAuth 2.0 authorization code flow against the VPN servers.

Grants are kept per user identity. The identity is the base URI of the
server the user talks to, except for secure internet servers when the user
already has a secure internet home server. Then the identity is the home
server's base URI and the home server's OAuth endpoints are used, so one
grant covers every secure internet location.

Per identity the states are::

    NoGrant -> AwaitingCallback -> Authorized -> (Expired -> NoGrant)
"""
import hashlib
import logging
from typing import Callable
from typing import Optional

from cryptojwt.jwt import utc_time_sans_frac
from cryptojwt.utils import as_unicode
from cryptojwt.utils import b64e
from idpyoidc.exception import MissingRequiredAttribute
from idpyoidc.impexp import ImpExp
from idpyoidc.message.oauth2 import AccessTokenRequest
from idpyoidc.message.oauth2 import AccessTokenResponse
from idpyoidc.message.oauth2 import AuthorizationRequest
from idpyoidc.message.oauth2 import AuthorizationResponse
from idpyoidc.message.oauth2 import RefreshAccessTokenRequest
from idpyoidc.util import rndstr
from requests import request
from requests.exceptions import RequestException

from vpnportal.defaults import DEFAULT_REQUEST_SCOPE
from vpnportal.defaults import SECURE_INTERNET
from vpnportal.exception import ApiCallError
from vpnportal.exception import OAuthExchangeError
from vpnportal.exception import TransportError
from vpnportal.message import ProviderInfo
from vpnportal.provider_info import get_provider_info
from vpnportal.utils import grant_is_expired

logger = logging.getLogger(__name__)


class Authorized(object):
    """The API call was made, *response* is the HTTP response."""

    def __init__(self, response):
        self.response = response


class NeedsAuthorization(object):
    """No usable grant. The user must be sent to *authorize_uri*."""

    def __init__(self, authorize_uri: str):
        self.authorize_uri = authorize_uri


class TokenStore(ImpExp):
    """Grants and outstanding authorization requests of one user, keyed by identity."""
    parameter = ImpExp.parameter.copy()
    parameter.update({
        "grants": {},
        "pending": {},
    })

    def __init__(self):
        ImpExp.__init__(self)
        self.grants = {}
        self.pending = {}

    def get_grant(self, identity: str) -> Optional[dict]:
        return self.grants.get(identity)

    def set_grant(self, identity: str, grant: dict):
        self.grants[identity] = grant

    def remove_grant(self, identity: str):
        self.grants.pop(identity, None)

    def set_pending(self, identity: str, pending: dict):
        self.pending[identity] = pending

    def pop_pending(self, identity: str) -> Optional[dict]:
        return self.pending.pop(identity, None)

    def clear(self):
        self.grants = {}
        self.pending = {}


def code_challenge(code_verifier: str) -> str:
    _hash = hashlib.sha256(code_verifier.encode("ascii")).digest()
    return as_unicode(b64e(_hash))


class TokenBroker(object):

    def __init__(self,
                 client_id: str,
                 token_store: TokenStore,
                 directory=None,
                 redirect_uri: Optional[str] = "",
                 request_scope: Optional[str] = DEFAULT_REQUEST_SCOPE,
                 client_secret: Optional[str] = None,
                 httpc: Optional[Callable] = None,
                 httpc_params: Optional[dict] = None,
                 home_indirection: Optional[bool] = True):
        """
        :param client_id: The OAuth client ID registered at the VPN servers
        :param token_store: The user's TokenStore
        :param directory: ProviderDirectory used to classify base URIs
        :param redirect_uri: Where the authorization server should send the user back to
        :param request_scope: The scope asked for
        :param client_secret: Only for confidential clients
        :param httpc: HTTP client, same signature as requests.request
        :param httpc_params: Extra arguments to the HTTP client, e.g. timeout
        :param home_indirection: Whether secure internet servers share the home server's grant
        """
        self.client_id = client_id
        self.token_store = token_store
        self.directory = directory
        self.redirect_uri = redirect_uri
        self.request_scope = request_scope
        self.client_secret = client_secret
        self.httpc = httpc or request
        self.httpc_params = httpc_params or {}
        self.home_indirection = home_indirection

    def resolve_identity(self, target_base_uri: str, session_state) -> str:
        if not self.home_indirection or not session_state.secure_internet_home:
            return target_base_uri

        _entry = self.directory.find_provider_by_base_uri(target_base_uri)
        if _entry.type == SECURE_INTERNET:
            return session_state.secure_internet_home

        return target_base_uri

    def resolve(self, target_base_uri: str, session_state):
        """
        Find the identity and the endpoints to use when talking to a server.

        :return: Tuple of identity and ProviderInfo. The API base URI is always
            the target's, the OAuth endpoints belong to the identity.
        """
        identity = self.resolve_identity(target_base_uri, session_state)
        provider_info = get_provider_info(self.httpc, target_base_uri, **self.httpc_params)
        if identity != target_base_uri:
            logger.debug(f"Using OAuth endpoints of home server {identity} for {target_base_uri}")
            _home_info = get_provider_info(self.httpc, identity, **self.httpc_params)
            provider_info["authorization_endpoint"] = _home_info["authorization_endpoint"]
            provider_info["token_endpoint"] = _home_info["token_endpoint"]

        return identity, provider_info

    def authorization_uri(self, identity: str, provider_info: ProviderInfo) -> str:
        _state = rndstr(32)
        _code_verifier = rndstr(64)
        self.token_store.set_pending(identity, {
            "state": _state,
            "code_verifier": _code_verifier,
            "redirect_uri": self.redirect_uri
        })

        _request = AuthorizationRequest(
            response_type="code",
            client_id=self.client_id,
            redirect_uri=self.redirect_uri,
            scope=self.request_scope,
            state=_state,
            code_challenge=code_challenge(_code_verifier),
            code_challenge_method="S256"
        )
        return _request.request(provider_info["authorization_endpoint"])

    def call(self, identity: str, provider_info: ProviderInfo, method: str, api_path: str,
             params: Optional[dict] = None):
        """
        Do an API call on behalf of the user.

        :param identity: Whose grant to use
        :param provider_info: Endpoints, as returned by :py:meth:`resolve`
        :param method: GET or POST
        :param api_path: The API call relative to the API base URI, e.g. "profile_list"
        :param params: Query parameters (GET) or form parameters (POST)
        :return: Authorized or NeedsAuthorization instance
        """
        grant = self._usable_grant(identity, provider_info)
        if grant is None:
            logger.debug(f"No usable grant for {identity}")
            return NeedsAuthorization(self.authorization_uri(identity, provider_info))

        response = self._api_request(grant, provider_info, method, api_path, params)
        if response.status_code == 401:
            logger.info(f"Access token of {identity} rejected by {provider_info['api_base_uri']}")
            self.token_store.remove_grant(identity)
            return NeedsAuthorization(self.authorization_uri(identity, provider_info))

        if not 200 <= response.status_code < 300:
            raise ApiCallError(f"'{api_path}' returned {response.status_code}")

        return Authorized(response)

    def handle_callback(self, identity: str, provider_info: ProviderInfo, query: dict,
                        redirect_uri: str):
        """
        Finish the authorization code flow.
        The outstanding request is consumed whatever the outcome.

        :param query: The query parameters the user came back with
        :param redirect_uri: The redirect URI of the request
        """
        pending = self.token_store.pop_pending(identity)
        if pending is None:
            raise OAuthExchangeError(f"No authorization in progress for '{identity}'")

        if "error" in query:
            raise OAuthExchangeError(f"Authorization failed: {query['error']}")

        try:
            _response = AuthorizationResponse(**query)
            _response.verify()
        except (MissingRequiredAttribute, ValueError) as err:
            raise OAuthExchangeError(f"Bad authorization response: {err}")

        if _response.get("state") != pending["state"]:
            logger.warning(f"State mismatch in callback for {identity}")
            raise OAuthExchangeError("state mismatch")

        if redirect_uri != pending["redirect_uri"]:
            raise OAuthExchangeError("redirect_uri mismatch")

        _request = AccessTokenRequest(
            grant_type="authorization_code",
            code=_response["code"],
            redirect_uri=redirect_uri,
            client_id=self.client_id,
            code_verifier=pending["code_verifier"]
        )
        grant = self._token_request(provider_info["token_endpoint"], _request)
        self.token_store.set_grant(identity, grant)
        logger.info(f"Got grant for {identity}")

    def forget(self, identity: str):
        self.token_store.remove_grant(identity)
        self.token_store.pop_pending(identity)

    def _usable_grant(self, identity, provider_info) -> Optional[dict]:
        grant = self.token_store.get_grant(identity)
        if grant is None or not grant_is_expired(grant):
            return grant

        self.token_store.remove_grant(identity)
        if not grant.get("refresh_token"):
            return None

        _request = RefreshAccessTokenRequest(
            grant_type="refresh_token",
            refresh_token=grant["refresh_token"],
            scope=grant.get("scope", self.request_scope),
            client_id=self.client_id
        )
        try:
            _new = self._token_request(provider_info["token_endpoint"], _request)
        except OAuthExchangeError as err:
            logger.info(f"Refreshing the grant of {identity} failed: {err}")
            return None

        if not _new.get("refresh_token"):
            _new["refresh_token"] = grant["refresh_token"]
        self.token_store.set_grant(identity, _new)
        return _new

    def _token_request(self, token_endpoint: str, token_request) -> dict:
        _kwargs = dict(self.httpc_params)
        if self.client_secret:
            _kwargs["auth"] = (self.client_id, self.client_secret)
        try:
            response = self.httpc("POST", token_endpoint, data=token_request.to_dict(),
                                  headers={"Accept": "application/json"}, **_kwargs)
        except RequestException as err:
            raise OAuthExchangeError(f"Unable to reach token endpoint: {err}")

        try:
            _info = response.json()
        except ValueError:
            _info = {}

        if not 200 <= response.status_code < 300 or "error" in _info:
            _error = _info.get("error", response.status_code) if isinstance(_info, dict) \
                else response.status_code
            logger.warning(f"Token endpoint {token_endpoint} said: {_error}")
            raise OAuthExchangeError(f"Token request failed: {_error}")

        try:
            _token = AccessTokenResponse(**_info)
            _token.verify()
        except (MissingRequiredAttribute, ValueError, TypeError) as err:
            raise OAuthExchangeError(f"Bad token response: {err}")

        if _token["token_type"].lower() != "bearer":
            raise OAuthExchangeError(f"Unsupported token type: {_token['token_type']}")

        _scope = _token.get("scope", [])
        if isinstance(_scope, list):
            _scope = " ".join(_scope)

        grant = {
            "access_token": _token["access_token"],
            "token_type": _token["token_type"],
            "scope": _scope or self.request_scope
        }
        if _token.get("refresh_token"):
            grant["refresh_token"] = _token["refresh_token"]
        if _token.get("expires_in"):
            grant["expires_at"] = utc_time_sans_frac() + int(_token["expires_in"])

        return grant

    def _api_request(self, grant, provider_info, method, api_path, params):
        _url = f"{provider_info['api_base_uri']}/{api_path}"
        _kwargs = dict(self.httpc_params)
        _kwargs["headers"] = {"Authorization": f"Bearer {grant['access_token']}"}
        if method == "GET":
            _kwargs["params"] = params or {}
        else:
            _kwargs["data"] = params or {}

        try:
            return self.httpc(method, _url, **_kwargs)
        except RequestException as err:
            logger.error(f"API call to {_url} failed: {err}")
            raise TransportError(f"Unable to reach '{_url}': {err}")
