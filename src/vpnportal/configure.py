"""Configuration of the portal and the discovery updater."""
import logging
import os
from typing import Dict
from typing import List
from typing import Optional

from idpyoidc.configure import Base

from vpnportal.defaults import DEFAULT_CANARY_LIFETIME
from vpnportal.defaults import DEFAULT_HTTPC_PARAMS
from vpnportal.defaults import DEFAULT_PREFERRED_LOCALE
from vpnportal.defaults import DEFAULT_REQUEST_SCOPE
from vpnportal.directory import ProviderDirectory
from vpnportal.discovery import sources_from_config
from vpnportal.discovery.store import DiscoveryStore
from vpnportal.portal import PortalController
from vpnportal.template import Renderer

logger = logging.getLogger(__name__)

DEFAULT_PORTAL_DIR_ATTRIBUTE_NAMES = ['data_dir', 'template_dir']


def with_base_path(path: Optional[str], base_path: Optional[str]) -> Optional[str]:
    if path and base_path and not os.path.isabs(path):
        return os.path.join(base_path, path)
    return path


class PortalConfiguration(Base):
    """Portal configuration"""

    def __init__(self,
                 conf: Dict,
                 entity_conf: Optional[List[dict]] = None,
                 base_path: Optional[str] = '',
                 file_attributes: Optional[List[str]] = None,
                 domain: Optional[str] = "",
                 port: Optional[int] = 0,
                 dir_attributes: Optional[List[str]] = None,
                 ):
        # entity_conf is passed by create_from_config_file, the portal has no entities.
        # Directories are read before Base gets to rewrite the configuration.
        _dirs = {k: conf.get(k) for k in DEFAULT_PORTAL_DIR_ATTRIBUTE_NAMES}

        Base.__init__(self, conf=conf, base_path=base_path, file_attributes=file_attributes,
                      dir_attributes=dir_attributes, domain=domain, port=port)

        self.data_dir = with_base_path(_dirs["data_dir"] or "data", base_path)
        self.template_dir = with_base_path(_dirs["template_dir"], base_path)
        self.discovery = conf.get("discovery", {})
        self.httpc_params = conf.get("httpc_params", DEFAULT_HTTPC_PARAMS)
        self.preferred_locale = conf.get("preferred_locale", DEFAULT_PREFERRED_LOCALE)
        self.secure_internet_home_indirection = conf.get("secure_internet_home_indirection",
                                                         True)
        self.secret_key = conf.get("secret_key")
        self.logging = conf.get("logging")

        _oauth = conf.get("oauth", {})
        self.client_id = _oauth.get("client_id")
        self.client_secret = _oauth.get("client_secret")
        self.request_scope = _oauth.get("request_scope", DEFAULT_REQUEST_SCOPE)
        if not self.client_id:
            raise ValueError("oauth.client_id must be configured")

        _session = conf.get("session", {})
        self.session_domain = _session.get("domain")
        self.session_path = _session.get("path")
        self.canary_lifetime = _session.get("canary_lifetime", DEFAULT_CANARY_LIFETIME)
        self.server_side_sessions = _session.get("server_side", False)


def make_discovery(config: PortalConfiguration):
    """
    :return: Tuple of DiscoveryStore instance and the configured discovery sources
    """
    store = DiscoveryStore(config.data_dir)
    sources = sources_from_config(config.discovery)
    logger.debug(f"Discovery sources: {list(sources.keys())}")
    return store, sources


def make_portal(config: PortalConfiguration, renderer: Renderer, httpc=None) -> PortalController:
    store, sources = make_discovery(config)
    directory = ProviderDirectory(store, sources, preferred_locale=config.preferred_locale)
    return PortalController(directory, renderer,
                            client_id=config.client_id,
                            request_scope=config.request_scope,
                            client_secret=config.client_secret,
                            httpc=httpc,
                            httpc_params=config.httpc_params,
                            home_indirection=config.secure_internet_home_indirection,
                            preferred_locale=config.preferred_locale)
