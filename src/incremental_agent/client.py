"""HTTP client for scanners talking to a running agent."""

import logging
from typing import List, Optional, Tuple

import httpx

from .exceptions import AgentAPIError, BusyError, InvalidCursorError, InvalidStateError
from .models import ChangeRecord, OverflowReason, Page, SnapshotHandle

logger = logging.getLogger(__name__)

_ERRORS = {
    "busy": BusyError,
    "invalid_cursor": InvalidCursorError,
    "invalid_state": InvalidStateError,
}


class AgentClient:
    """
    Thin httpx wrapper over the agent's REST API.

    Protocol errors come back as the same exceptions the in-process
    tracker raises.
    """

    def __init__(
        self,
        base_url: str = "http://localhost:8080",
        timeout: float = 10.0,
        client: Optional[httpx.Client] = None,
    ):
        """
        Initialize the client.

        Args:
            base_url: Agent API base URL
            timeout: Request timeout in seconds
            client: Pre-built httpx client (e.g. a test client)
        """
        self.base_url = base_url.rstrip("/")
        self._owns_client = client is None
        self._client = client or httpx.Client(base_url=self.base_url, timeout=timeout)

    def _request(self, method: str, path: str, **kwargs) -> dict:
        try:
            resp = self._client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            raise AgentAPIError(f"Failed to reach agent at {self.base_url}: {e}") from e

        if resp.status_code == 200:
            return resp.json()

        try:
            body = resp.json()
        except ValueError:
            body = {}
        code = body.get("error", "") if isinstance(body, dict) else ""
        detail = body.get("detail", resp.text) if isinstance(body, dict) else resp.text
        error_cls = _ERRORS.get(code)
        if error_cls is not None:
            raise error_cls(detail)
        raise AgentAPIError(f"{method} {path} failed ({resp.status_code}): {detail}", resp.status_code)

    def register_self_change(self, path_prefix: str, ttl_seconds: Optional[float] = None) -> float:
        payload = {"path_prefix": path_prefix}
        if ttl_seconds is not None:
            payload["ttl_seconds"] = ttl_seconds
        return self._request("POST", "/self-changes", json=payload)["expires_at"]

    def begin_snapshot(self) -> SnapshotHandle:
        data = self._request("POST", "/snapshots")
        return SnapshotHandle(
            generation=data["generation"],
            cursor=data["cursor"],
            total=data["total"],
        )

    def get_page(self, generation: int, cursor: str, page_size: Optional[int] = None) -> Page:
        params = {"cursor": cursor}
        if page_size is not None:
            params["size"] = page_size
        return Page.from_dict(self._request("GET", f"/snapshots/{generation}/page", params=params))

    def commit(self, generation: int) -> int:
        return self._request("POST", f"/snapshots/{generation}/commit")["removed"]

    def abandon(self, generation: int) -> bool:
        return self._request("POST", f"/snapshots/{generation}/abandon")["abandoned"]

    def stats(self) -> dict:
        return self._request("GET", "/stats")

    def reset(self) -> None:
        self._request("PUT", "/reset")

    def health(self) -> dict:
        return self._request("GET", "/health")

    def drain(
        self,
        page_size: Optional[int] = None,
    ) -> Tuple[List[ChangeRecord], bool, Optional[OverflowReason]]:
        """
        Run one full begin/page/commit cycle.

        If anything fails mid-cycle the generation is abandoned so the
        records are offered again next time.

        Args:
            page_size: Records per page (server default if omitted)

        Returns:
            (records, overflow, overflow_reason)
        """
        handle = self.begin_snapshot()
        records: List[ChangeRecord] = []
        overflow = False
        reason: Optional[OverflowReason] = None
        cursor: Optional[str] = handle.cursor

        try:
            while cursor is not None:
                page = self.get_page(handle.generation, cursor, page_size)
                records.extend(page.records)
                overflow = overflow or page.overflow
                reason = page.overflow_reason or reason
                cursor = None if page.done else page.next_cursor
            self.commit(handle.generation)
        except Exception:
            logger.warning(f"Drain of generation {handle.generation} failed, abandoning")
            try:
                self.abandon(handle.generation)
            except AgentAPIError as e:
                logger.error(f"Abandon of generation {handle.generation} failed: {e}")
            raise

        logger.debug(f"Drained generation {handle.generation}: {len(records)} record(s)")
        return records, overflow, reason

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
