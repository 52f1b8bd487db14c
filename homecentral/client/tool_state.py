"""Local-first sync of one tool's state in one project.

The local JSON cache is written on every update so nothing is lost offline.
Pushes to the server are debounced and carry ``baseRevision``; when the
server answers 409 its state wins and the rejected local state is kept on
``last_conflict`` for the caller to merge or discard.
"""

import asyncio
import copy
import inspect
import json
import re
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional, Union

import httpx

from homecentral.core.logging import get_logger

logger = get_logger(__name__)

Payload = dict[str, Any]
Updater = Callable[[Payload], Payload]
ConflictCallback = Callable[[Payload, Payload], Union[None, Awaitable[None]]]

DEFAULT_DEBOUNCE_SECONDS = 0.5

_UNSAFE_FILENAME = re.compile(r"[^A-Za-z0-9_.-]")


class ToolStateSync:
    """Keeps a tool payload in sync between a local cache file and the API.

    Args:
        client: An ``httpx.AsyncClient`` whose base URL points at the API and
            which carries the session cookie and CSRF header.
        project_id: Project the state belongs to; part of the cache key.
        tool_key: Tool registry key; part of the cache key.
        default_state: State used when neither server nor cache has any.
        cache_dir: Directory for the local JSON cache.
        on_conflict: Called with ``(rejected_local, server_payload)`` after a 409.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        project_id: str,
        tool_key: str,
        default_state: Payload,
        cache_dir: Union[str, Path],
        debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
        on_conflict: Optional[ConflictCallback] = None,
    ):
        self._client = client
        self.project_id = project_id
        self.tool_key = tool_key
        self._default_state = default_state
        self._debounce_seconds = debounce_seconds
        self._on_conflict = on_conflict

        safe_project = _UNSAFE_FILENAME.sub("_", project_id)
        safe_tool = _UNSAFE_FILENAME.sub("_", tool_key)
        self.cache_path = Path(cache_dir) / f"hhc_tool_{safe_project}_{safe_tool}.json"

        self.state: Payload = copy.deepcopy(default_state)
        self.revision = 0
        self.is_loaded = False
        self.is_syncing = False
        self.last_error: Optional[str] = None
        self.last_conflict: Optional[dict[str, Payload]] = None

        self._dirty = False
        self._local_version = 0
        self._pending: Optional[asyncio.Task] = None
        self._push_lock = asyncio.Lock()

    @property
    def is_dirty(self) -> bool:
        return self._dirty

    # --- Local cache ----------------------------------------------------------

    def _read_cache(self) -> Optional[dict[str, Any]]:
        try:
            raw = json.loads(self.cache_path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return None
        except (OSError, ValueError) as exc:
            logger.warning("Ignoring unreadable tool cache", data={"tool_key": self.tool_key, "error": type(exc).__name__})
            return None
        if not isinstance(raw, dict) or not isinstance(raw.get("payload"), dict):
            return None
        return raw

    def _write_cache(self) -> None:
        self.cache_path.parent.mkdir(parents=True, exist_ok=True)
        self.cache_path.write_text(
            json.dumps({"payload": self.state, "revision": self.revision, "dirty": self._dirty}),
            encoding="utf-8",
        )

    def _restore_from_cache(self, cached: Optional[dict[str, Any]]) -> None:
        if cached is None:
            self.state = copy.deepcopy(self._default_state)
            return
        self.state = cached["payload"]
        self._dirty = bool(cached.get("dirty"))
        if isinstance(cached.get("revision"), int):
            self.revision = cached["revision"]

    # --- Public API -----------------------------------------------------------

    def _url(self) -> str:
        return f"/api/tools/{self.tool_key}"

    async def load(self) -> Payload:
        """Fetch server state; fall back to the local cache when it has none or is unreachable."""
        cached = self._read_cache()
        try:
            response = await self._client.get(self._url(), params={"projectId": self.project_id})
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            self.last_error = f"load failed: {type(exc).__name__}"
            logger.warning("Tool state load failed, using local cache", data={"tool_key": self.tool_key})
            self._restore_from_cache(cached)
        else:
            self.last_error = None
            remote = data.get("payload")
            if remote is not None:
                self.state = remote
                self.revision = data.get("revision", 0)
                self._dirty = False
                self._write_cache()
            else:
                self._restore_from_cache(cached)
                self.revision = data.get("revision", 0)

        self.is_loaded = True
        return self.state

    def update(self, fn: Updater) -> Payload:
        """Apply ``fn`` to a copy of the state, cache it, and schedule a push."""
        self.state = fn(copy.deepcopy(self.state))
        self._dirty = True
        self._local_version += 1
        self._write_cache()

        if self._pending is not None and not self._pending.done():
            self._pending.cancel()
        self._pending = asyncio.create_task(self._debounced_push())
        return self.state

    async def flush(self) -> None:
        """Push now instead of waiting for the debounce."""
        if self._pending is not None and not self._pending.done():
            self._pending.cancel()
            try:
                await self._pending
            except asyncio.CancelledError:
                pass
        self._pending = None
        await self._push()

    async def close(self) -> None:
        await self.flush()
        await self._client.aclose()

    # --- Push -----------------------------------------------------------------

    async def _debounced_push(self) -> None:
        await asyncio.sleep(self._debounce_seconds)
        # An in-flight request must finish even if a newer update cancels this task.
        await asyncio.shield(asyncio.ensure_future(self._background_push()))

    async def _background_push(self) -> None:
        try:
            await self._push()
        except Exception as exc:
            self.last_error = f"push failed: {type(exc).__name__}"
            logger.error("Tool state push crashed", data={"tool_key": self.tool_key}, exc_info=True)

    async def _push(self) -> None:
        async with self._push_lock:
            if not self._dirty:
                return
            sent_version = self._local_version
            sent_state = self.state
            body = {"payload": sent_state, "baseRevision": self.revision, "projectId": self.project_id}

            self.is_syncing = True
            try:
                response = await self._client.put(self._url(), json=body)
            except httpx.HTTPError as exc:
                self.last_error = f"push failed: {type(exc).__name__}"
                logger.warning("Tool state push failed, will retry", data={"tool_key": self.tool_key})
                return
            finally:
                self.is_syncing = False

            if response.status_code >= 400 and response.status_code != 409:
                self.last_error = f"push rejected: HTTP {response.status_code}"
                logger.warning(
                    "Tool state push rejected",
                    data={"tool_key": self.tool_key, "status": response.status_code},
                )
                return

            try:
                data = response.json()
                if response.status_code == 409:
                    await self._handle_conflict(data, sent_state, sent_version)
                    return
                self.last_error = None
                self.revision = data.get("revision", self.revision)
                if self._local_version == sent_version:
                    self._dirty = False
                self._write_cache()
            except (ValueError, AttributeError, OSError) as exc:
                # Unreadable response or unwritable cache: stay dirty and retry on the next push.
                self.last_error = f"push failed: {type(exc).__name__}"
                logger.warning("Tool state push not applied, will retry", data={"tool_key": self.tool_key})

    async def _handle_conflict(self, data: Any, sent_state: Payload, sent_version: int) -> None:
        current = (data or {}).get("current") or {}
        server_payload = current.get("payload")
        # Edits made while the request was in flight build on the sent state,
        # so the latest local state is what the caller needs to merge.
        rejected = self.state if self._local_version != sent_version else sent_state
        self.last_conflict = {"local": rejected, "server": server_payload}
        self.state = server_payload if server_payload is not None else copy.deepcopy(self._default_state)
        self.revision = current.get("revision", 0)
        self._dirty = False
        logger.info("Tool state conflict, server state kept", data={"tool_key": self.tool_key, "revision": self.revision})
        self._write_cache()

        if self._on_conflict is not None:
            try:
                result = self._on_conflict(rejected, self.state)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.error("Tool state conflict callback failed", data={"tool_key": self.tool_key}, exc_info=True)
