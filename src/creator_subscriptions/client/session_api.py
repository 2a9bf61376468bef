"""
HTTP client for the usage-session and subscription-status endpoints
"""
import asyncio
import logging
from typing import Optional, Dict, Any, List, Callable, Set

import httpx

from ..exceptions import TransientNetworkError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = httpx.Timeout(10.0, connect=5.0)


class SessionApi:
    """
    Calls the accounting API on behalf of the signed-in user

    Every request method raises TransientNetworkError on transport failures
    and non-2xx responses. ``notify_best_effort`` is the one exception: it
    sends without waiting for a response and never raises.
    """

    def __init__(self, base_url: str, token_provider: Callable[[], Optional[str]],
                 client: Optional[httpx.AsyncClient] = None):
        """
        Initialize API client

        Args:
            base_url: API base URL
            token_provider: Returns the current bearer token (None when signed out)
            client: Optional preconfigured httpx.AsyncClient
        """
        self.token_provider = token_provider
        self.client = client or httpx.AsyncClient(base_url=base_url, timeout=DEFAULT_TIMEOUT)
        self._pending: Set[asyncio.Task] = set()

    def _headers(self) -> Dict[str, str]:
        token = self.token_provider()
        return {"Authorization": f"Bearer {token}"} if token else {}

    async def _request(self, method: str, path: str, json: Optional[Dict[str, Any]] = None) -> Any:
        try:
            response = await self.client.request(method, path, json=json, headers=self._headers())
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise TransientNetworkError(
                f"{method} {path} failed with HTTP {e.response.status_code}"
            ) from e
        except httpx.HTTPError as e:
            raise TransientNetworkError(f"{method} {path} failed: {e}") from e
        return response.json()

    async def start(self) -> int:
        """Open (or reuse) a usage session; returns its id"""
        data = await self._request("POST", "/api/usage-session/start")
        return data["session_id"]

    async def pause(self, session_id: Optional[int]) -> int:
        """Pause the session; returns accumulated seconds"""
        data = await self._request("POST", "/api/usage-session/pause", json={"session_id": session_id})
        return data["accumulated_seconds"]

    async def resume(self, session_id: Optional[int]) -> int:
        """Resume the session; returns the session id, which may be new"""
        data = await self._request("POST", "/api/usage-session/resume", json={"session_id": session_id})
        return data["session_id"]

    async def heartbeat(self) -> None:
        await self._request("POST", "/api/usage-session/heartbeat")

    async def end(self) -> Dict[str, Any]:
        return await self._request("POST", "/api/usage-session/end")

    async def get_subscription_status(self) -> Dict[str, Any]:
        return await self._request("GET", "/api/teams/subscription-status")

    async def list_plans(self) -> List[Dict[str, Any]]:
        return await self._request("GET", "/api/plans")

    def notify_best_effort(self, action: str, session_id: Optional[int] = None) -> None:
        """
        Fire-and-forget session signal for page teardown

        Schedules the request on the running loop and returns immediately.
        Delivery is not guaranteed and failures are only logged.
        """
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug(f"No running loop; dropping best-effort {action}")
            return

        task = loop.create_task(self._send_quietly(action, session_id))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _send_quietly(self, action: str, session_id: Optional[int]) -> None:
        try:
            await self.client.post(
                f"/api/usage-session/{action}",
                json={"session_id": session_id},
                headers=self._headers(),
            )
        except httpx.HTTPError as e:
            logger.debug(f"Best-effort {action} not delivered: {e}")

    async def aclose(self, flush_timeout: float = 1.0) -> None:
        """Give pending best-effort notifications a moment, then close the client"""
        if self._pending:
            await asyncio.wait(set(self._pending), timeout=flush_timeout)
        await self.client.aclose()
