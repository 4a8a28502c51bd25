# tests/test_trigger_server.py
import http.client
import json
import threading
import urllib.error
import urllib.request

import pytest

from modules.internship_crawler.lib.db import count_rows
from service import trigger_server

SECRET = "s3cret"


@pytest.fixture
def server(crawl_kwargs, monkeypatch):
    monkeypatch.setenv("CRON_SECRET", SECRET)
    ctl = trigger_server.start("127.0.0.1", 0, kwargs_getter=lambda: dict(crawl_kwargs, test_limit=1))
    yield ctl
    ctl.stop()
    ctl.join(timeout=5)


def _url(ctl, path=trigger_server.API_PATH):
    host, port = ctl.address
    return f"http://{host}:{port}{path}"


def _request(ctl, method="POST", token=SECRET, body=None, path=trigger_server.API_PATH):
    data = json.dumps(body).encode("utf-8") if body is not None else b""
    req = urllib.request.Request(_url(ctl, path), data=data if method == "POST" else None, method=method)
    if token is not None:
        req.add_header("Authorization", f"Bearer {token}")
    req.add_header("Content-Type", "application/json")
    try:
        with urllib.request.urlopen(req, timeout=30) as resp:
            return resp.status, json.loads(resp.read())
    except urllib.error.HTTPError as e:
        return e.code, json.loads(e.read())


def test_get_reports_ready(server):
    status, body = _request(server, method="GET", token=None)
    assert status == 200
    assert body["status"] == "ready"
    assert body["busy"] is False


def test_post_runs_crawl(server):
    status, body = _request(server)
    assert status == 200
    assert body["success"] is True
    assert body["jobs_added"] == 3
    assert body["companies_processed"] == 3
    assert "report" not in body
    assert body["run_id"]


def test_post_body_only_overrides_test_mode(server, crawl_kwargs):
    status, body = _request(server, body={"test_mode": True, "sqlite_path": "/nonexistent/evil.db"})
    assert status == 200
    assert body["companies_processed"] == 1
    assert count_rows(crawl_kwargs["sqlite_path"]) == 1


@pytest.mark.parametrize("token", [None, "wrong", SECRET + "x"])
def test_post_requires_bearer_secret(server, token):
    status, body = _request(server, token=token)
    assert status == 401
    assert body["error"] == "Unauthorized"


def test_post_refused_when_secret_unset(server, monkeypatch):
    monkeypatch.delenv("CRON_SECRET")
    status, _ = _request(server, token="anything")
    assert status == 503


def test_bad_json_body_is_400(server):
    req = urllib.request.Request(_url(server), data=b"{oops", method="POST")
    req.add_header("Authorization", f"Bearer {SECRET}")
    with pytest.raises(urllib.error.HTTPError) as ei:
        urllib.request.urlopen(req, timeout=10)
    assert ei.value.code == 400


@pytest.mark.parametrize("length", ["abc", "-1", "1.5"])
def test_malformed_content_length_is_400(server, length):
    host, port = server.address
    conn = http.client.HTTPConnection(host, port, timeout=10)
    try:
        conn.putrequest("POST", trigger_server.API_PATH)
        conn.putheader("Authorization", f"Bearer {SECRET}")
        conn.putheader("Content-Length", length)
        conn.endheaders()
        resp = conn.getresponse()
        assert resp.status == 400
        assert json.loads(resp.read())["error"] == "Invalid Content-Length"
    finally:
        conn.close()


def test_unknown_path_is_404(server):
    status, _ = _request(server, method="GET", path="/nope")
    assert status == 404


def test_concurrent_post_is_409(server, monkeypatch):
    release = threading.Event()
    started = threading.Event()

    def slow_run(module, kwargs=None, trigger_type="scheduled", **_):
        started.set()
        release.wait(10)
        from service.runner import RunResult

        return RunResult(ok=True, message="slow", meta={}), "run-1"

    monkeypatch.setattr(trigger_server.runner, "run_module_once", slow_run)

    results = {}
    t = threading.Thread(target=lambda: results.setdefault("first", _request(server)))
    t.start()
    assert started.wait(10)

    status, body = _request(server)
    assert status == 409
    _, busy = _request(server, method="GET", token=None)
    assert busy["busy"] is True

    release.set()
    t.join(10)
    assert results["first"][0] == 200
    assert results["first"][1]["message"] == "slow"


def test_run_failure_is_500(server, monkeypatch):
    def boom(*a, **k):
        raise RuntimeError("db locked")

    monkeypatch.setattr(trigger_server.runner, "run_module_once", boom)
    status, body = _request(server)
    assert status == 500
    assert body == {"success": False, "error": "db locked"}
    assert _request(server, method="GET", token=None)[1]["busy"] is False
