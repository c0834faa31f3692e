import logging
import socket
import threading
from typing import Optional

import uvicorn
from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse, PlainTextResponse

from traefik_fed.internal.domain.errors import ServingFailure
from traefik_fed.internal.domain.models import UnifiedConfiguration
from traefik_fed.internal.output import render
from traefik_fed.internal.version.version import VersionInfo

logger = logging.getLogger(__name__)


class SnapshotCache:
    """Holds the most recent snapshot for the HTTP output.

    Snapshots are immutable and replaced wholesale, so swapping the reference
    under a lock is enough for readers never to see a partial one.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._snapshot = UnifiedConfiguration()

    def update(self, snapshot: UnifiedConfiguration) -> None:
        with self._lock:
            self._snapshot = snapshot

    def read(self) -> UnifiedConfiguration:
        with self._lock:
            return self._snapshot


def wants_json(request: Request) -> bool:
    if request.query_params.get("format") == "json":
        return True
    accept = request.headers.get("accept", "")
    media_types = [part.split(";", 1)[0].strip().lower() for part in accept.split(",")]
    return render.JSON_MEDIA_TYPE in media_types


def create_app(cache: SnapshotCache, path: str = "/config", version_info: Optional[VersionInfo] = None) -> FastAPI:
    app = FastAPI(
        title="traefik-fed",
        description="Aggregated Traefik dynamic configuration",
        version=version_info.version if version_info else "dev",
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )

    def get_config(request: Request) -> Response:
        snapshot = cache.read()
        try:
            if wants_json(request):
                return Response(content=render.to_json(snapshot), media_type=render.JSON_MEDIA_TYPE)
            return Response(content=render.to_yaml(snapshot), media_type=render.YAML_MEDIA_TYPE)
        except Exception as e:
            logger.error(f"Failed to encode configuration: {e}", exc_info=True)
            return PlainTextResponse("Internal server error", status_code=500)

    def health_check() -> Response:
        return PlainTextResponse("OK")

    app.add_api_route(path, get_config, methods=["GET"])
    app.add_api_route("/health", health_check, methods=["GET"])

    if version_info is not None:
        def get_version() -> Response:
            return JSONResponse(version_info.to_dict())

        app.add_api_route("/version", get_version, methods=["GET"])

    return app


class HTTPServer:
    """Serves the snapshot cache over HTTP with uvicorn."""

    def __init__(self, cache: SnapshotCache, host: str, port: int, path: str,
                 version_info: Optional[VersionInfo] = None):
        self.cache = cache
        self.host = host
        self.port = port
        self.path = path
        self.app = create_app(cache, path, version_info)
        self._socket: Optional[socket.socket] = None
        self._server: Optional[uvicorn.Server] = None
        self._stopping = False

    def bind(self) -> socket.socket:
        """Bind the listening socket. Raises ServingFailure if the address is unavailable."""
        if self._socket is not None:
            return self._socket
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        try:
            sock.bind((self.host, self.port))
        except (OSError, OverflowError) as e:
            sock.close()
            raise ServingFailure(f"failed to bind HTTP output on {self.host}:{self.port}: {e}") from e
        self._socket = sock
        return sock

    def serve(self) -> None:
        """Run the server until shutdown() or a termination signal."""
        sock = self.bind()
        config = uvicorn.Config(self.app, log_config=None, access_log=False)
        self._server = uvicorn.Server(config)
        # shutdown() may have run before the server existed.
        self._server.should_exit = self._stopping
        logger.info(f"Starting HTTP server on {self.host}:{self.port}, path {self.path}")
        try:
            self._server.run(sockets=[sock])
        except SystemExit as e:
            # uvicorn exits the interpreter when startup fails.
            raise ServingFailure(f"HTTP server failed to start: exit status {e.code}") from e
        finally:
            sock.close()
            self._socket = None
        logger.info("HTTP server stopped.")

    def shutdown(self) -> None:
        self._stopping = True
        if self._server is not None:
            self._server.should_exit = True
