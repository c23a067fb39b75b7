from __future__ import annotations

import logging
from typing import Callable

from flask import Flask, Response, request
from gunicorn.app.base import BaseApplication

from .config import Config
from .doctor import is_ready
from .events import WebhookError, decode_event
from .orchestrator import BackportOrchestrator

log = logging.getLogger(__name__)


def _text(body: str, status: int) -> Response:
    return Response(body, status=status, mimetype="text/plain")


def _error(status: int, message: str) -> Response:
    log.info("webhook response status_code=%s response=%s", status, message)
    return _text(message, status)


def create_app(
    config: Config,
    orchestrator: BackportOrchestrator,
    readiness: Callable[[], bool] | None = None,
) -> Flask:
    app = Flask("backport-bot")
    ready_check = readiness or (lambda: is_ready(config))

    @app.get("/health")
    def health():
        log.debug("health check")
        return _text("", 204)

    @app.get("/ready")
    def ready():
        log.debug("ready check")
        if ready_check():
            return _text("", 204)
        return _text("", 503)

    @app.route("/", methods=["GET", "POST"])
    def webhook():
        if request.method != "POST":
            log.debug("non-post request method=%s", request.method)
            return _text("", 200)

        body = request.get_data(cache=False)
        try:
            event = decode_event(request.headers, body, config.hmac_token, config.scm_host)
        except WebhookError as exc:
            log.warning("failed to parse webhook error=%s", exc)
            return _error(400, f"400 Bad Request: Failed to parse webhook: {exc}")

        log.info("webhook received kind=%s", event.kind)
        try:
            output = orchestrator.handle(event)
        except Exception as exc:
            log.exception("webhook processing failed kind=%s", event.kind)
            return _error(500, f"500 Internal Server Error: {exc}")
        return _text(output, 200)

    return app


class GunicornApp(BaseApplication):
    def __init__(self, app: Flask, gunicorn_config: dict):
        self.flask_app = app
        self.gunicorn_config = gunicorn_config
        super().__init__()

    def load_config(self):
        for key, value in self.gunicorn_config.items():
            self.cfg.set(key, value)

    def load(self):
        return self.flask_app


def serve(config: Config, orchestrator: BackportOrchestrator) -> None:
    app = create_app(config, orchestrator)
    options = {
        "bind": f"[::]:{config.port}",
        "workers": config.gunicorn_workers,
        "threads": config.gunicorn_threads,
        "worker_class": "gthread",
        "timeout": 0,
        "accesslog": "-",
        "loglevel": config.log_level.lower(),
    }
    log.info("serving port=%s workers=%s threads=%s", config.port, config.gunicorn_workers, config.gunicorn_threads)
    GunicornApp(app, options).run()
