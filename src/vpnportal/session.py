import logging
from typing import Optional

from cryptojwt.jwt import utc_time_sans_frac
from idpyoidc.impexp import ImpExp
from idpyoidc.util import rndstr

from vpnportal.defaults import DEFAULT_CANARY_LIFETIME
from vpnportal.defaults import SESSION_KEY
from vpnportal.exception import SessionBindingError
from vpnportal.oauth import TokenStore

logger = logging.getLogger(__name__)


class SessionStore(object):
    """
    Where the session data lives between requests. Implementations must keep
    one session per user and be able to give it a new identifier.
    """

    def get(self, key, default=None):
        raise NotImplementedError()

    def set(self, key, value):
        raise NotImplementedError()

    def destroy(self):
        raise NotImplementedError()

    def regenerate(self, delete_old: bool = False):
        raise NotImplementedError()


class MemorySessionStore(SessionStore):
    """Keeps sessions in a dictionary. For tests and single process deployments."""

    def __init__(self, sessions: Optional[dict] = None, session_id: Optional[str] = ""):
        self.sessions = sessions if sessions is not None else {}
        self.session_id = session_id or rndstr(32)
        self.sessions.setdefault(self.session_id, {})

    def get(self, key, default=None):
        return self.sessions.get(self.session_id, {}).get(key, default)

    def set(self, key, value):
        self.sessions.setdefault(self.session_id, {})[key] = value

    def destroy(self):
        self.sessions.pop(self.session_id, None)
        self.session_id = rndstr(32)
        self.sessions[self.session_id] = {}

    def regenerate(self, delete_old: bool = False):
        _data = self.sessions.get(self.session_id, {})
        if delete_old:
            self.sessions.pop(self.session_id, None)
        self.session_id = rndstr(32)
        self.sessions[self.session_id] = dict(_data)
        logger.debug("Session identifier regenerated")


class SessionState(ImpExp):
    parameter = ImpExp.parameter.copy()
    parameter.update({
        "secure_internet_home": None,
        "secure_internet_active": None,
        "institute_access_list": [],
        "alien_list": [],
        "force_tcp": False,
        "pending_oauth_base_uri": None,
        "canary": 0,
        "domain": None,
        "path": None,
    })

    def __init__(self):
        ImpExp.__init__(self)
        self.secure_internet_home = None
        self.secure_internet_active = None
        self.institute_access_list = []
        self.alien_list = []
        self.force_tcp = False
        self.pending_oauth_base_uri = None
        self.canary = 0
        self.domain = None
        self.path = None


class ProfileSession(object):
    """
    The user's relationship with VPN servers: the secure internet home and
    active location, the institute access and other servers added, settings
    and the OAuth grants. Loaded from a SessionStore when created, written
    back by :py:meth:`save`.
    """

    def __init__(self,
                 store: SessionStore,
                 domain: Optional[str] = None,
                 path: Optional[str] = None,
                 canary_lifetime: Optional[int] = DEFAULT_CANARY_LIFETIME):
        self.store = store
        self.domain = domain
        self.path = path
        self.canary_lifetime = canary_lifetime
        self.state = SessionState()
        self.tokens = TokenStore()

        _info = self.store.get(SESSION_KEY)
        if _info:
            self.state.load(_info.get("state", {}))
            self.tokens.load(_info.get("tokens", {}))

        self._check_canary()
        self._bind("domain", self.domain)
        self._bind("path", self.path)

    def _check_canary(self):
        _now = utc_time_sans_frac()
        if not self.state.canary:
            # Never trust a session we did not start
            self.state = SessionState()
            self.tokens = TokenStore()
            self.store.regenerate(delete_old=True)
            self.state.canary = _now
        elif self.state.canary + self.canary_lifetime < _now:
            self.store.regenerate(delete_old=True)
            self.state.canary = _now

    def _bind(self, attr, value):
        if value is None:
            return

        _bound = getattr(self.state, attr)
        if _bound is None:
            setattr(self.state, attr, value)
        elif _bound != value:
            logger.warning(f'Session bound to {attr} "{_bound}", got "{value}"')
            raise SessionBindingError(f'session bound to {attr} "{_bound}", expected "{value}"')

    def save(self):
        self.store.set(SESSION_KEY, {"state": self.state.dump(), "tokens": self.tokens.dump()})

    @property
    def secure_internet_home(self) -> Optional[str]:
        return self.state.secure_internet_home

    @property
    def secure_internet_active(self) -> Optional[str]:
        return self.state.secure_internet_active

    @property
    def institute_access_list(self) -> list:
        return list(self.state.institute_access_list)

    @property
    def alien_list(self) -> list:
        return list(self.state.alien_list)

    @property
    def force_tcp(self) -> bool:
        return self.state.force_tcp

    @property
    def pending_oauth_base_uri(self) -> Optional[str]:
        return self.state.pending_oauth_base_uri

    def set_secure_internet_home(self, base_uri: str):
        self.state.secure_internet_home = base_uri

    def set_secure_internet_active(self, base_uri: str):
        self.state.secure_internet_active = base_uri

    def add_institute_access(self, base_uri: str):
        if base_uri not in self.state.institute_access_list:
            self.state.institute_access_list.append(base_uri)

    def add_alien(self, base_uri: str):
        if base_uri not in self.state.alien_list:
            self.state.alien_list.append(base_uri)

    def set_force_tcp(self, force_tcp: bool):
        self.state.force_tcp = bool(force_tcp)

    def set_pending_oauth_base_uri(self, base_uri: str):
        self.state.pending_oauth_base_uri = base_uri

    def pop_pending_oauth_base_uri(self) -> Optional[str]:
        _base_uri = self.state.pending_oauth_base_uri
        self.state.pending_oauth_base_uri = None
        return _base_uri

    def has_servers(self) -> bool:
        return bool(self.state.institute_access_list or self.state.alien_list
                    or self.state.secure_internet_active)

    def reset(self):
        """Forget everything, including the grants, and continue under a new session identifier."""
        self.store.destroy()
        self.store.regenerate(delete_old=True)
        self.state = SessionState()
        self.tokens = TokenStore()
        self.state.canary = utc_time_sans_frac()
        self._bind("domain", self.domain)
        self._bind("path", self.path)
        logger.info("Session reset")
