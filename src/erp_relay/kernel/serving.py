"""
Background HTTP serving for the Flask apps.

Both services need a server they can stop again (tests, graceful shutdown)
and the extractor needs its bound port before registering its callback URL,
so the apps run on a werkzeug server owned by a thread instead of app.run().
"""

import threading

from flask import Flask
from werkzeug.serving import BaseWSGIServer, make_server

from erp_relay.kernel.logging import get_logger

logger = get_logger(__name__)


class ServerThread:
    """Threaded werkzeug server for one Flask app."""

    def __init__(self, app: Flask, host: str = "0.0.0.0", port: int = 0) -> None:
        self.app = app
        self.host = host
        self._server: BaseWSGIServer = make_server(host, port, app, threaded=True)
        self._thread: threading.Thread | None = None

    @property
    def port(self) -> int:
        return self._server.server_port

    @property
    def address(self) -> str:
        host = "127.0.0.1" if self.host in ("0.0.0.0", "") else self.host
        return f"http://{host}:{self.port}"

    def start(self) -> None:
        self._thread = threading.Thread(
            target=self._server.serve_forever, name=f"http-{self.app.name}", daemon=True
        )
        self._thread.start()
        logger.info("HTTP server listening", app=self.app.name, address=self.address)

    def shutdown(self) -> None:
        # shutdown() blocks until serve_forever() exits, so only call it once serving
        if self._thread is not None:
            self._server.shutdown()
            self._thread.join(timeout=10.0)
            self._thread = None
        self._server.server_close()
        logger.info("HTTP server stopped", app=self.app.name)
