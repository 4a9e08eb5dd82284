"""Agent REST API server (FastAPI)."""

import logging
import threading
from typing import Any, Optional, TYPE_CHECKING

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from .exceptions import BusyError, InvalidCursorError, InvalidStateError
from .tracker import ChangeTracker

if TYPE_CHECKING:
    from .process import AgentProcess

logger = logging.getLogger(__name__)


def _error(code: str, detail: str, status_code: int) -> JSONResponse:
    return JSONResponse({"error": code, "detail": detail}, status_code=status_code)


def _parse_positive_float(value: Any) -> Optional[float]:
    if value is None:
        return None
    number = float(value)
    if number <= 0:
        raise ValueError(f"must be positive: {value}")
    return number


# ---------------------------------------------------------------------------
# App factory
# ---------------------------------------------------------------------------

def create_app(tracker: ChangeTracker, process: Optional["AgentProcess"] = None) -> FastAPI:
    app = FastAPI(title="Incremental Agent API", docs_url=None, redoc_url=None)

    app.state.tracker = tracker
    app.state.process = process

    @app.exception_handler(BusyError)
    async def busy_handler(request: Request, exc: BusyError):
        return _error("busy", str(exc), 409)

    @app.exception_handler(InvalidCursorError)
    async def invalid_cursor_handler(request: Request, exc: InvalidCursorError):
        return _error("invalid_cursor", str(exc), 404)

    @app.exception_handler(InvalidStateError)
    async def invalid_state_handler(request: Request, exc: InvalidStateError):
        return _error("invalid_state", str(exc), 409)

    # ------------------------------------------------------------------
    # Self-change registration
    # ------------------------------------------------------------------

    @app.post("/self-changes")
    async def register_self_change(request: Request):
        try:
            payload = await request.json()
        except ValueError:
            return _error("bad_request", "Body must be JSON", 400)
        if not isinstance(payload, dict):
            return _error("bad_request", "Body must be a JSON object", 400)
        path_prefix = str(payload.get("path_prefix") or "").strip()
        if not path_prefix:
            return _error("bad_request", "Missing path_prefix", 400)
        try:
            ttl = _parse_positive_float(payload.get("ttl_seconds"))
        except (TypeError, ValueError) as e:
            return _error("bad_request", f"Invalid ttl_seconds: {e}", 400)
        expiry = tracker.register_self_change(path_prefix, ttl)
        return {"ok": True, "expires_at": expiry}

    # ------------------------------------------------------------------
    # Snapshot protocol
    # ------------------------------------------------------------------

    @app.post("/snapshots")
    def begin_snapshot():
        return tracker.begin_snapshot().to_dict()

    @app.get("/snapshots/{generation}/page")
    def get_page(generation: int, cursor: str, size: Optional[int] = None):
        if size is not None and size < 1:
            return _error("bad_request", f"size must be at least 1: {size}", 400)
        page = tracker.get_page(generation, cursor, size)
        return page.to_dict()

    @app.post("/snapshots/{generation}/commit")
    def commit(generation: int):
        removed = tracker.commit(generation)
        return {"ok": True, "removed": removed}

    @app.post("/snapshots/{generation}/abandon")
    def abandon(generation: int):
        abandoned = tracker.abandon(generation)
        return {"ok": True, "abandoned": abandoned}

    # ------------------------------------------------------------------
    # Stats and maintenance
    # ------------------------------------------------------------------

    @app.get("/stats")
    def stats():
        return tracker.stats().to_dict()

    @app.put("/reset")
    def reset():
        tracker.reset()
        return {"ok": True}

    @app.get("/health")
    def health():
        watching = process.is_watching if process is not None else False
        return {"status": "ok", "watching": watching}

    return app


# ---------------------------------------------------------------------------
# Service wrapper
# ---------------------------------------------------------------------------

class AgentAPIService:
    """Wrapper to run the FastAPI server via uvicorn in a background thread."""

    def __init__(
        self,
        host: str,
        port: int,
        tracker: ChangeTracker,
        process: Optional["AgentProcess"] = None,
    ):
        self.host = host
        self.port = port
        self.tracker = tracker
        self.process = process
        self._thread: Optional[threading.Thread] = None
        self._server: Any = None

    def start(self) -> None:
        import uvicorn

        app = create_app(self.tracker, self.process)

        config = uvicorn.Config(
            app,
            host=self.host,
            port=self.port,
            log_level="warning",
            access_log=False,
        )
        self._server = uvicorn.Server(config)

        self._thread = threading.Thread(target=self._server.run, daemon=True)
        self._thread.start()
        logger.info(f"API listening on {self.host}:{self.port}")

    def stop(self) -> None:
        if self._server:
            self._server.should_exit = True
            self._server = None
        if self._thread is not None:
            self._thread.join(timeout=5.0)
            self._thread = None
