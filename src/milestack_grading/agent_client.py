from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx

from .config import DEFAULT_AGENT_URL
from .errors import GradingProviderError

logger = logging.getLogger(__name__)

PROVIDER = "external_agent"


def milestone_session_id(milestone_id: str) -> str:
    """One conversation per milestone, so the agent keeps the attempt history."""
    return f"milestone-{milestone_id}-session"


class ExternalAgentClient:
    """Chat client for the hosted grading agent. One request per call, no retries."""

    def __init__(
        self,
        *,
        api_key: str,
        agent_id: str,
        url: str = DEFAULT_AGENT_URL,
        timeout_seconds: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.api_key = api_key
        self.agent_id = agent_id
        self.url = url
        self.timeout_seconds = timeout_seconds
        self._client = client

    async def chat(self, message: str, *, session_id: str, user_id: str) -> Dict[str, Any]:
        payload = {
            "user_id": user_id,
            "agent_id": self.agent_id,
            "session_id": session_id,
            "message": message,
        }
        headers = {"Content-Type": "application/json", "x-api-key": self.api_key}

        local_client = self._client or httpx.AsyncClient(timeout=self.timeout_seconds)
        close_client = self._client is None
        try:
            response = await local_client.post(self.url, json=payload, headers=headers)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise GradingProviderError(PROVIDER, f"External agent call failed: {exc}") from exc
        finally:
            if close_client:
                await local_client.aclose()

        try:
            data = response.json()
        except ValueError as exc:
            raise GradingProviderError(PROVIDER, f"External agent returned a non-JSON body: {exc}") from exc
        if not isinstance(data, dict):
            raise GradingProviderError(PROVIDER, f"External agent returned {type(data).__name__}, expected an object")

        logger.debug("External agent replied for session %s", session_id)
        return data
