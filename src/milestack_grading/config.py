from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping, Optional


DEFAULT_AGENT_URL = "https://agent-prod.studio.lyzr.ai/v3/inference/chat/"
DEFAULT_GEMINI_MODEL = "gemini-2.5-flash"


def _optional(env: Mapping[str, str], key: str) -> Optional[str]:
    value = env.get(key, "").strip()
    return value or None


@dataclass(frozen=True)
class GradingSettings:
    """Provider credentials and endpoints, read from the environment."""

    gemini_api_key: Optional[str] = None
    gemini_model: str = DEFAULT_GEMINI_MODEL
    agent_api_key: Optional[str] = None
    agent_url: str = DEFAULT_AGENT_URL
    agent_id: Optional[str] = None
    agent_user_id: str = "milestack-user"
    agent_timeout_seconds: float = 30.0

    @property
    def external_agent_enabled(self) -> bool:
        return bool(self.agent_api_key and self.agent_id)

    @property
    def fallback_llm_enabled(self) -> bool:
        return bool(self.gemini_api_key)

    @staticmethod
    def from_env(env: Optional[Mapping[str, str]] = None) -> "GradingSettings":
        env = os.environ if env is None else env
        timeout_raw = env.get("EXTERNAL_AGENT_TIMEOUT_SECONDS", "30")
        try:
            timeout = max(float(timeout_raw), 1.0)
        except ValueError:
            raise RuntimeError(f"EXTERNAL_AGENT_TIMEOUT_SECONDS must be a number, got {timeout_raw!r}.")
        return GradingSettings(
            gemini_api_key=_optional(env, "GEMINI_API_KEY"),
            gemini_model=_optional(env, "MILESTACK_GEMINI_MODEL") or DEFAULT_GEMINI_MODEL,
            agent_api_key=_optional(env, "EXTERNAL_AGENT_API_KEY"),
            agent_url=_optional(env, "EXTERNAL_AGENT_URL") or DEFAULT_AGENT_URL,
            agent_id=_optional(env, "EXTERNAL_AGENT_ID"),
            agent_user_id=_optional(env, "EXTERNAL_AGENT_USER_ID") or "milestack-user",
            agent_timeout_seconds=timeout,
        )
