# service/trigger_server.py
"""
Tiny HTTP trigger for on-demand crawl runs.

  GET  /api/scraper   -> 200 {"status": "ready", "busy": bool}
  POST /api/scraper   -> runs the crawler module once via runner.run_module_once()
      Authorization: Bearer <CRON_SECRET>   (401 if wrong/missing, 503 if unset)
      optional JSON body: {"test_mode": true}
      409 while another triggered run is still in progress.

Started by `python -m service.cli serve` next to the scheduler; the
controller mirrors SchedulerController (stop/join).
"""

from __future__ import annotations

import hmac
import http.server
import json
import logging
import os
import threading
from collections.abc import Callable
from typing import Any

from service import runner
from service.logging_utils import write_activity_log, write_error_log

LOG = logging.getLogger(__name__)

API_PATH = "/api/scraper"
DEFAULT_MODULE = "modules.internship_crawler"
_MAX_BODY = 64 * 1024
_ALLOWED_BODY_KEYS = {"test_mode"}


class TriggerServerController:
    def __init__(self, server: http.server.ThreadingHTTPServer, thread: threading.Thread):
        self._server = server
        self._thread = thread

    @property
    def address(self) -> tuple[str, int]:
        host, port = self._server.server_address[:2]
        return str(host), int(port)

    def stop(self) -> None:
        """Stop serving and release the socket."""
        self._server.shutdown()
        self._server.server_close()

    def join(self, timeout: float | None = None) -> None:
        if self._thread.is_alive():
            self._thread.join(timeout=timeout)


def start(
    host: str | None = None,
    port: int | None = None,
    *,
    module: str = DEFAULT_MODULE,
    kwargs_getter: Callable[[], dict[str, Any]] | None = None,
    secret_getter: Callable[[], str | None] | None = None,
) -> TriggerServerController:
    """
    Start the trigger server in a background thread (non-blocking).

    host/port default to TRIGGER_BIND_ADDR (127.0.0.1) / TRIGGER_PORT (8080).
    kwargs_getter supplies the base module kwargs for every run (e.g. the
    crawl job's kwargs from the service config). The secret is read from
    CRON_SECRET on every request unless secret_getter is given.
    """
    bind = host or os.getenv("TRIGGER_BIND_ADDR", "127.0.0.1")
    bind_port = int(port if port is not None else os.getenv("TRIGGER_PORT", "8080"))
    handler = _make_handler(
        module=module,
        kwargs_getter=kwargs_getter or dict,
        secret_getter=secret_getter or (lambda: os.getenv("CRON_SECRET")),
        run_lock=threading.Lock(),
    )
    server = http.server.ThreadingHTTPServer((bind, bind_port), handler)
    server.daemon_threads = True
    t = threading.Thread(target=server.serve_forever, name="trigger-server", daemon=True)
    t.start()
    ctl = TriggerServerController(server, t)
    LOG.info("Trigger server listening on http://%s:%d%s", *ctl.address, API_PATH)
    return ctl


def _make_handler(
    *,
    module: str,
    kwargs_getter: Callable[[], dict[str, Any]],
    secret_getter: Callable[[], str | None],
    run_lock: threading.Lock,
) -> type[http.server.BaseHTTPRequestHandler]:
    class TriggerHandler(http.server.BaseHTTPRequestHandler):
        protocol_version = "HTTP/1.1"

        def do_GET(self) -> None:
            if self.path.rstrip("/") != API_PATH:
                self._send_json(404, {"error": "Not found"})
                return
            self._send_json(200, {
                "status": "ready",
                "busy": run_lock.locked(),
                "message": "Scraper API is ready. Send POST request to run.",
            })

        def do_POST(self) -> None:
            if self.path.rstrip("/") != API_PATH:
                self._send_json(404, {"error": "Not found"})
                return

            secret = secret_getter()
            if not secret:
                self._send_json(503, {"error": "CRON_SECRET is not configured"})
                return
            auth = self.headers.get("Authorization", "")
            if not hmac.compare_digest(auth.encode("utf-8"), f"Bearer {secret}".encode()):
                self._send_json(401, {"error": "Unauthorized"})
                return

            overrides = self._read_overrides()
            if overrides is None:
                return

            if not run_lock.acquire(blocking=False):
                self._send_json(409, {"error": "Scraper run already in progress"})
                return
            try:
                kwargs = {**kwargs_getter(), **overrides}
                result, run_id = runner.run_module_once(module, kwargs=kwargs, trigger_type="http")
            except Exception as e:
                LOG.exception("Triggered run failed")
                write_error_log({"where": "trigger_server", "module": module, "error": repr(e)})
                self._send_json(500, {"success": False, "error": str(e) or type(e).__name__})
                return
            finally:
                run_lock.release()

            meta = result.public_meta()
            write_activity_log({"event": "http_trigger", "module": module, "run_id": run_id})
            self._send_json(200, {**meta, "success": True, "run_id": run_id, "message": result.message})

        # ---- helpers ----
        def _read_overrides(self) -> dict[str, Any] | None:
            try:
                length = int(self.headers.get("Content-Length") or 0)
            except ValueError:
                length = -1
            if length < 0:
                self._send_json(400, {"error": "Invalid Content-Length"})
                return None
            if length > _MAX_BODY:
                self._send_json(413, {"error": "Request body too large"})
                return None
            raw = self.rfile.read(length) if length else b""
            if not raw.strip():
                return {}
            try:
                body = json.loads(raw)
            except json.JSONDecodeError:
                self._send_json(400, {"error": "Body must be JSON"})
                return None
            if not isinstance(body, dict):
                self._send_json(400, {"error": "Body must be a JSON object"})
                return None
            return {k: v for k, v in body.items() if k in _ALLOWED_BODY_KEYS}

        def _send_json(self, status: int, payload: dict[str, Any]) -> None:
            data = json.dumps(payload, default=str).encode("utf-8")
            self.send_response(status)
            self.send_header("Content-Type", "application/json")
            self.send_header("Content-Length", str(len(data)))
            self.send_header("Cache-Control", "no-store")
            self.end_headers()
            self.wfile.write(data)

        def log_message(self, format: str, *args: Any) -> None:
            LOG.debug("%s - %s", self.address_string(), format % args)

    return TriggerHandler
