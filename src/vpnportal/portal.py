import logging
import re
from typing import Callable
from typing import Optional

from vpnportal.defaults import CALLBACK_PATH
from vpnportal.defaults import DEFAULT_PREFERRED_LOCALE
from vpnportal.defaults import DEFAULT_REQUEST_SCOPE
from vpnportal.defaults import INSTITUTE_ACCESS
from vpnportal.defaults import SECURE_INTERNET
from vpnportal.directory import ProviderDirectory
from vpnportal.exception import ApiCallError
from vpnportal.exception import HttpError
from vpnportal.exception import NotFound
from vpnportal.exception import OAuthExchangeError
from vpnportal.exception import TransportError
from vpnportal.exception import ValidationError
from vpnportal.http import Request
from vpnportal.http import Response
from vpnportal.message import api_data
from vpnportal.oauth import NeedsAuthorization
from vpnportal.oauth import TokenBroker
from vpnportal.session import ProfileSession
from vpnportal.template import Renderer
from vpnportal.utils import BASE_URI_PATTERN
from vpnportal.utils import PROFILE_ID_PATTERN

logger = logging.getLogger(__name__)

# One line including its "\n" or "\r\n" ending, the last line may have none
LINE_PATTERN = re.compile(r"[^\n]*\n|[^\n]+")


def validate_base_uri(base_uri: Optional[str]) -> Optional[str]:
    if base_uri is not None and not BASE_URI_PATTERN.fullmatch(base_uri):
        raise ValidationError(f'invalid baseUri "{base_uri}"')
    return base_uri


def validate_profile_id(profile_id: Optional[str]) -> Optional[str]:
    if profile_id is not None and not PROFILE_ID_PATTERN.fullmatch(profile_id):
        raise ValidationError(f'invalid profileId "{profile_id}"')
    return profile_id


def line_ending(text: str) -> str:
    if "\r\n" in text:
        return "\r\n"
    return "\n"


def strip_udp_remotes(vpn_config: str) -> str:
    """
    Remove every 'remote' line that mentions udp. Everything else is kept
    in order, with the line endings it had.
    """
    _rows = LINE_PATTERN.findall(vpn_config)
    return "".join(r for r in _rows if not (r.startswith("remote ") and "udp" in r))


def add_key_pair(vpn_config: str, certificate: str, private_key: str) -> str:
    _eol = line_ending(vpn_config)
    if vpn_config and not vpn_config.endswith("\n"):
        vpn_config += _eol
    vpn_config += f"<cert>{_eol}{certificate}{_eol}</cert>{_eol}"
    vpn_config += f"<key>{_eol}{private_key}{_eol}</key>{_eol}"
    return vpn_config


class PortalController(object):
    """
    Answers the portal's requests. Every request gets the user's
    ProfileSession passed in; the caller saves it afterwards.
    """

    def __init__(self,
                 directory: ProviderDirectory,
                 renderer: Renderer,
                 client_id: str,
                 request_scope: Optional[str] = DEFAULT_REQUEST_SCOPE,
                 client_secret: Optional[str] = None,
                 httpc: Optional[Callable] = None,
                 httpc_params: Optional[dict] = None,
                 home_indirection: Optional[bool] = True,
                 preferred_locale: Optional[str] = DEFAULT_PREFERRED_LOCALE):
        self.directory = directory
        self.renderer = renderer
        self.client_id = client_id
        self.request_scope = request_scope
        self.client_secret = client_secret
        self.httpc = httpc
        self.httpc_params = httpc_params or {}
        self.home_indirection = home_indirection
        self.preferred_locale = preferred_locale

        self.get_routes = {
            "/": self.show_home,
            "/settings": self.show_settings,
            "/chooseServer": self.show_choose_server,
            "/addOtherServer": self.show_add_other_server,
            "/switchLocation": self.show_switch_location,
            "/chooseOrganization": self.show_choose_organization,
            "/getProfileList": self.get_profile_list,
            "/userInfo": self.get_user_info,
            f"/{CALLBACK_PATH}": self.handle_callback,
        }
        self.post_routes = {
            "/addServer": self.add_server,
            "/addOtherServer": self.add_other_server,
            "/selectOrganization": self.select_organization,
            "/switchLocation": self.switch_location,
            "/saveSettings": self.save_settings,
            "/downloadProfile": self.download_profile,
            "/resetAppData": self.reset_app_data,
        }

    def run(self, request: Request, session: ProfileSession) -> Response:
        try:
            if request.method in ["GET", "HEAD"]:
                _routes = self.get_routes
            elif request.method == "POST":
                _routes = self.post_routes
            else:
                raise HttpError("Method Not Allowed", 405, {"Allow": "GET,HEAD,POST"})

            try:
                _handler = _routes[request.path_info]
            except KeyError:
                raise NotFound("Not Found")

            return _handler(request, session)
        except HttpError as err:
            return self.error_response(err.status_code, str(err), err.headers)
        except OAuthExchangeError as err:
            logger.warning(f"OAuth exchange failed: {err}")
            return self.error_response(400, str(err))
        except (TransportError, ApiCallError) as err:
            logger.error(f"Talking to a VPN server failed: {err}")
            return self.error_response(502, str(err))

    def error_response(self, status_code: int, message: str, headers: Optional[dict] = None):
        return Response(status_code, headers,
                        self.render("error", {"error_code": status_code, "error_message": message}))

    def render(self, template_name: str, variables: dict) -> str:
        return self.renderer.render(template_name, variables)

    def page(self, template_name: str, variables: dict) -> Response:
        return Response(200, {}, self.render(template_name, variables))

    def _server_info(self, base_uri: str) -> dict:
        return self.directory.find_provider_by_base_uri(base_uri).to_dict(self.preferred_locale)

    def _broker(self, request: Request, session: ProfileSession) -> TokenBroker:
        return TokenBroker(self.client_id, session.tokens, directory=self.directory,
                           redirect_uri=f"{request.root_uri}{CALLBACK_PATH}",
                           request_scope=self.request_scope,
                           client_secret=self.client_secret,
                           httpc=self.httpc,
                           httpc_params=self.httpc_params,
                           home_indirection=self.home_indirection)

    def do_oauth_call(self, request, session, base_uri, method, api_path, params=None):
        _broker = self._broker(request, session)
        identity, provider_info = _broker.resolve(base_uri, session.state)
        result = _broker.call(identity, provider_info, method, api_path, params)
        if isinstance(result, NeedsAuthorization):
            session.set_pending_oauth_base_uri(base_uri)
        return result

    # GET

    def show_home(self, request, session):
        if not session.has_servers():
            return Response.redirect(f"{request.root_uri}chooseServer")

        _active = session.secure_internet_active
        return self.page("home", {
            "my_institute_access_server_list": [self._server_info(b) for b in
                                                session.institute_access_list],
            "my_alien_server_list": [self._server_info(b) for b in session.alien_list],
            "secure_internet_server_info": self._server_info(_active) if _active else None,
        })

    def show_settings(self, request, session):
        return self.page("settings", {"force_tcp": session.force_tcp})

    def show_choose_server(self, request, session):
        return self.page("choose_server", {
            "has_secure_internet": session.secure_internet_home is not None,
            "institute_list": [e.to_dict(self.preferred_locale) for e in
                               self.directory.list_institute_access()],
        })

    def show_add_other_server(self, request, session):
        return self.page("add_other_server", {})

    def show_switch_location(self, request, session):
        return self.page("switch_location", {
            "secure_internet_server_list": [e.to_dict(self.preferred_locale) for e in
                                            self.directory.list_secure_internet()],
        })

    def show_choose_organization(self, request, session):
        return self.page("choose_organization", {
            "organization_list": [e.to_dict(self.preferred_locale) for e in
                                  self.directory.list_organizations()],
        })

    def get_profile_list(self, request, session):
        base_uri = validate_base_uri(request.get_query_parameter("baseUri"))
        if base_uri is None:
            raise ValidationError("baseUri parameter missing")

        result = self.do_oauth_call(request, session, base_uri, "GET", "profile_list")
        if isinstance(result, NeedsAuthorization):
            return Response.redirect(result.authorize_uri)
        profile_list = api_data(result.response, "profile_list")

        result = self.do_oauth_call(request, session, base_uri, "GET", "system_messages")
        if isinstance(result, NeedsAuthorization):
            return Response.redirect(result.authorize_uri)
        system_messages = api_data(result.response, "system_messages")

        return self.page("profile_list", {
            "profile_list": profile_list,
            "system_messages": system_messages,
            "server_info": self._server_info(base_uri),
            "base_uri": base_uri,
        })

    def get_user_info(self, request, session):
        base_uri = validate_base_uri(request.get_query_parameter("baseUri"))
        if base_uri is None:
            raise ValidationError("baseUri parameter missing")

        result = self.do_oauth_call(request, session, base_uri, "GET", "user_info")
        if isinstance(result, NeedsAuthorization):
            return Response.redirect(result.authorize_uri)

        return self.page("user_info", {
            "user_info": api_data(result.response, "user_info"),
            "server_info": self._server_info(base_uri),
        })

    def handle_callback(self, request, session):
        base_uri = session.pop_pending_oauth_base_uri()
        if base_uri is None:
            raise ValidationError('missing "baseUri"')

        _broker = self._broker(request, session)
        identity, provider_info = _broker.resolve(base_uri, session.state)
        _broker.handle_callback(identity, provider_info, request.query, _broker.redirect_uri)

        _entry = self.directory.find_provider_by_base_uri(base_uri)
        if _entry.type == SECURE_INTERNET:
            if session.secure_internet_home is None:
                session.set_secure_internet_home(base_uri)
            session.set_secure_internet_active(base_uri)
        elif _entry.type == INSTITUTE_ACCESS:
            session.add_institute_access(base_uri)
        else:
            session.add_alien(base_uri)

        return Response.redirect(request.root_uri)

    # POST

    def _to_profile_list(self, request, base_uri):
        return Response.redirect(f"{request.root_uri}getProfileList?baseUri={base_uri}")

    def add_server(self, request, session):
        base_uri = validate_base_uri(request.get_post_parameter("baseUri"))
        if base_uri is None:
            raise ValidationError('missing "baseUri"')
        return self._to_profile_list(request, base_uri)

    def add_other_server(self, request, session):
        _server_name = request.get_post_parameter("serverName")
        if not _server_name:
            raise ValidationError('missing "serverName"')
        base_uri = validate_base_uri(f"https://{_server_name}/")
        return self._to_profile_list(request, base_uri)

    def select_organization(self, request, session):
        # the organization list is a whitelist
        base_uri = self.directory.find_organization_home_uri(request.get_post_parameter("orgId"))
        if base_uri is None:
            raise ValidationError('invalid "orgId"')
        base_uri = validate_base_uri(base_uri)
        return self._to_profile_list(request, base_uri)

    def switch_location(self, request, session):
        base_uri = validate_base_uri(request.get_post_parameter("baseUri"))
        if base_uri is None:
            raise ValidationError('missing "baseUri"')
        if self.directory.find_provider_by_base_uri(base_uri).type != SECURE_INTERNET:
            raise ValidationError(f'"{base_uri}" is not a secure internet server')

        session.set_secure_internet_active(base_uri)
        return Response.redirect(request.root_uri)

    def save_settings(self, request, session):
        session.set_force_tcp(request.get_post_parameter("forceTcp") == "on")
        return Response.redirect(request.root_uri)

    def download_profile(self, request, session):
        profile_id = validate_profile_id(request.get_post_parameter("profileId"))
        base_uri = validate_base_uri(request.get_post_parameter("baseUri"))
        if profile_id is None:
            raise ValidationError('missing "profileId"')
        if base_uri is None:
            raise ValidationError('missing "baseUri"')

        result = self.do_oauth_call(request, session, base_uri, "POST", "create_keypair")
        if isinstance(result, NeedsAuthorization):
            return Response.redirect(result.authorize_uri)
        key_pair = api_data(result.response, "create_keypair")
        if not (isinstance(key_pair, dict) and isinstance(key_pair.get("certificate"), str)
                and isinstance(key_pair.get("private_key"), str)):
            logger.error(f"{base_uri} returned an unusable key pair")
            raise ApiCallError('"create_keypair" did not return a certificate and private key')

        result = self.do_oauth_call(request, session, base_uri, "GET", "profile_config",
                                    {"profile_id": profile_id})
        if isinstance(result, NeedsAuthorization):
            return Response.redirect(result.authorize_uri)

        vpn_config = result.response.text
        if session.force_tcp:
            vpn_config = strip_udp_remotes(vpn_config)
        vpn_config = add_key_pair(vpn_config, key_pair["certificate"], key_pair["private_key"])

        return Response(200, {
            "Content-Type": "application/x-openvpn-profile",
            "Content-Disposition": f'attachment; filename="{profile_id}.ovpn"',
        }, vpn_config)

    def reset_app_data(self, request, session):
        session.reset()
        return Response.redirect(request.root_uri)
