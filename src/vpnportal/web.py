"""
Flask front end for the portal.

Usage::

    app = init_app("portal.yaml")
    app.run()
"""
import logging
from typing import Optional

from flask import Blueprint
from flask import current_app
from flask import request
from flask import session
from flask.app import Flask
from flask.helpers import make_response
from flask.templating import render_template
from idpyoidc.configure import create_from_config_file
from idpyoidc.logging import configure_logging
from idpyoidc.util import rndstr

from vpnportal.configure import PortalConfiguration
from vpnportal.configure import make_portal
from vpnportal.exception import SessionBindingError
from vpnportal.http import Request
from vpnportal.session import MemorySessionStore
from vpnportal.session import ProfileSession
from vpnportal.session import SessionStore
from vpnportal.template import JsonRenderer
from vpnportal.template import Renderer

logger = logging.getLogger(__name__)

portal_views = Blueprint('vpnportal', __name__, url_prefix='')

ALL_METHODS = ['GET', 'HEAD', 'POST', 'PUT', 'DELETE', 'PATCH']


class FlaskSessionStore(SessionStore):
    """
    Keeps the portal's session data in the Flask session. The Flask session
    is a signed cookie, the identifier is a random value kept inside it.

    The cookie is signed, not encrypted, so the user's OAuth grants travel
    with it in readable form and browsers refuse cookies above about 4 KB.
    Deployments with many servers per user should set ``session.server_side``
    which selects :py:class:`FlaskServerSideStore`.
    """

    def get(self, key, default=None):
        return session.get(key, default)

    def set(self, key, value):
        session[key] = value

    def destroy(self):
        session.clear()

    def regenerate(self, delete_old: bool = False):
        # Nothing is kept server side, so there is no old session to delete
        session["sid"] = rndstr(32)


class FlaskServerSideStore(MemorySessionStore):
    """
    Session data stays in a dictionary in this process, the Flask session
    cookie only carries the identifier. Sessions are lost on restart and are
    not shared between worker processes.
    """

    def __init__(self, sessions: dict):
        MemorySessionStore.__init__(self, sessions, session.get("sid"))
        session["sid"] = self.session_id

    def destroy(self):
        MemorySessionStore.destroy(self)
        session["sid"] = self.session_id

    def regenerate(self, delete_old: bool = False):
        MemorySessionStore.regenerate(self, delete_old)
        session["sid"] = self.session_id


def session_store() -> SessionStore:
    if current_app.portal_sessions is None:
        return FlaskSessionStore()
    return FlaskServerSideStore(current_app.portal_sessions)


class FlaskRenderer(Renderer):

    def render(self, template_name: str, variables: dict) -> str:
        return render_template(f"{template_name}.html", **variables)


@portal_views.route('/', defaults={'path': ''}, methods=ALL_METHODS)
@portal_views.route('/<path:path>', methods=ALL_METHODS)
def portal(path):
    _conf = current_app.portal_config
    _session = ProfileSession(session_store(),
                              domain=_conf.session_domain,
                              path=_conf.session_path,
                              canary_lifetime=_conf.canary_lifetime)

    _request = Request(request.method, f"/{path}", request.url_root,
                       query=request.args.to_dict(), post=request.form.to_dict())
    logger.debug(f"{_request.method} {_request.path_info}")

    _response = current_app.portal.run(_request, _session)
    _session.save()

    resp = make_response(_response.body, _response.status_code)
    for key, value in _response.headers.items():
        resp.headers[key] = value
    return resp


@portal_views.errorhandler(SessionBindingError)
def session_binding_error(err):
    logger.error(f"Untrusted session: {err}")
    return make_response("Session not valid for this location", 400)


def init_app(config_file, name: Optional[str] = None, httpc=None, **kwargs) -> Flask:
    name = name or __name__
    config = create_from_config_file(PortalConfiguration, filename=config_file)
    if config.logging:
        configure_logging(config=config.logging)

    if config.template_dir:
        kwargs.setdefault("template_folder", config.template_dir)
        renderer = FlaskRenderer()
    else:
        renderer = JsonRenderer()

    app = Flask(name, static_folder=None, **kwargs)
    app.portal_config = config
    app.portal_sessions = {} if config.server_side_sessions else None
    if config.secret_key:
        app.secret_key = config.secret_key
    else:
        logger.warning("No secret_key configured, sessions will not survive a restart")
        app.secret_key = rndstr(32)

    app.register_blueprint(portal_views)

    app.portal = make_portal(config, renderer, httpc=httpc)
    return app
