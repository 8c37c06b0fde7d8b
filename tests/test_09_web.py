import base64
import json
from urllib.parse import parse_qs
from urllib.parse import urlparse

import pytest
import responses
from cryptojwt.jwt import utc_time_sans_frac

from vpnportal.defaults import SESSION_KEY
from vpnportal.discovery import sources_from_config
from vpnportal.discovery.store import DiscoveryStore
from vpnportal.web import init_app
from tests import DISCOVERY_URL
from tests import INSTITUTE
from tests import api_response
from tests import info_json
from tests import populate_store

TOKEN_RESPONSE = {"access_token": "access-1", "token_type": "bearer", "expires_in": 3600}


def make_app(tmp_path, **session_conf):
    _key = base64.b64encode(b"\x01" * 32).decode()
    conf = {
        "data_dir": str(tmp_path / "data"),
        "discovery": {name: {"url": url, "public_key": _key} for name, url in
                      DISCOVERY_URL.items()},
        "oauth": {"client_id": "org.example.portal"},
        "session": dict({"domain": "localhost", "path": "/"}, **session_conf),
        "secret_key": "test secret",
    }
    _file = tmp_path / "portal.json"
    _file.write_text(json.dumps(conf))

    populate_store(DiscoveryStore(conf["data_dir"]), sources_from_config(conf["discovery"]))

    app = init_app(str(_file), "vpnportal_test")
    app.testing = True
    return app


def login(client):
    with responses.RequestsMock() as rsps:
        rsps.add("GET", f"{INSTITUTE}info.json", json=info_json(INSTITUTE))
        resp = client.get("/getProfileList", query_string={"baseUri": INSTITUTE})
        assert resp.status_code == 302
        _query = parse_qs(urlparse(resp.headers["Location"]).query)
        assert _query["redirect_uri"] == ["http://localhost/callback"]

        rsps.add("POST", f"{INSTITUTE}oauth/token", json=TOKEN_RESPONSE)
        resp = client.get("/callback", query_string={"code": "code-1",
                                                     "state": _query["state"][0]})
        assert resp.status_code == 302


class TestWeb(object):

    @pytest.fixture(autouse=True)
    def create_app(self, tmp_path):
        self.app = make_app(tmp_path)
        self.client = self.app.test_client()

    def test_home_redirects(self):
        resp = self.client.get("/")
        assert resp.status_code == 302
        assert resp.headers["Location"].endswith("/chooseServer")

    def test_choose_server(self):
        resp = self.client.get("/chooseServer")
        assert resp.status_code == 200
        _info = json.loads(resp.get_data(as_text=True))
        assert _info["template"] == "choose_server"
        assert len(_info["institute_list"]) == 2

    def test_every_path_reaches_the_portal(self):
        assert self.app.static_folder is None
        resp = self.client.get("/settings")
        assert resp.status_code == 200
        assert json.loads(resp.get_data(as_text=True))["template"] == "settings"
        assert self.client.post("/saveSettings", data={"forceTcp": "on"}).status_code == 302

    def test_not_found(self):
        assert self.client.get("/nope").status_code == 404

    def test_method_not_allowed(self):
        resp = self.client.put("/")
        assert resp.status_code == 405
        assert resp.headers["Allow"] == "GET,HEAD,POST"

    def test_bad_input(self):
        resp = self.client.post("/addServer", data={"baseUri": "javascript:alert(1)"})
        assert resp.status_code == 400

    def test_login_and_profile_list(self):
        login(self.client)

        with responses.RequestsMock() as rsps:
            rsps.add("GET", f"{INSTITUTE}info.json", json=info_json(INSTITUTE))
            rsps.add("GET", f"{INSTITUTE}api.php/profile_list",
                     json=api_response("profile_list", [{"profile_id": "internet"}]))
            rsps.add("GET", f"{INSTITUTE}api.php/system_messages",
                     json=api_response("system_messages", []))
            resp = self.client.get("/getProfileList", query_string={"baseUri": INSTITUTE})

        assert resp.status_code == 200
        assert json.loads(resp.get_data(as_text=True))["profile_list"] == [
            {"profile_id": "internet"}]

        resp = self.client.get("/")
        assert resp.status_code == 200
        _info = json.loads(resp.get_data(as_text=True))
        assert [s["base_uri"] for s in _info["my_institute_access_server_list"]] == [INSTITUTE]

    def test_session_bound_elsewhere(self):
        with self.client.session_transaction() as sess:
            sess[SESSION_KEY] = {
                "state": {"canary": utc_time_sans_frac(), "domain": "evil.example.org"},
                "tokens": {}
            }

        assert self.client.get("/").status_code == 400


class TestServerSideSessions(object):

    @pytest.fixture(autouse=True)
    def create_app(self, tmp_path):
        self.app = make_app(tmp_path, server_side=True)
        self.client = self.app.test_client()

    def test_grants_stay_on_the_server(self):
        login(self.client)

        with self.client.session_transaction() as sess:
            assert set(sess.keys()) == {"sid"}
            _sid = sess["sid"]

        assert list(self.app.portal_sessions.keys()) == [_sid]
        assert "access-1" in json.dumps(self.app.portal_sessions[_sid][SESSION_KEY])

        resp = self.client.get("/")
        assert resp.status_code == 200
        _info = json.loads(resp.get_data(as_text=True))
        assert [s["base_uri"] for s in _info["my_institute_access_server_list"]] == [INSTITUTE]

    def test_reset_drops_server_side_data(self):
        login(self.client)
        with self.client.session_transaction() as sess:
            _sid = sess["sid"]

        assert self.client.post("/resetAppData").status_code == 302
        assert _sid not in self.app.portal_sessions

    def test_session_bound_elsewhere(self):
        self.app.portal_sessions["known"] = {SESSION_KEY: {
            "state": {"canary": utc_time_sans_frac(), "domain": "evil.example.org"},
            "tokens": {}
        }}
        with self.client.session_transaction() as sess:
            sess["sid"] = "known"

        assert self.client.get("/").status_code == 400
