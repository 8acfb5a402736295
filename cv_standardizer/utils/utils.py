import asyncio
from typing import Optional

import requests

from cv_standardizer.models.models import GenerateOptions
from cv_standardizer.models.settings import LLMSettings
from cv_standardizer.utils.exceptions import UpstreamError, UpstreamTimeout
from cv_standardizer.utils.logging_config import get_logger

logger = get_logger(__name__)

SERVICE_NAME = "ollama"


def ollama_chat(
    system: str,
    user: str,
    opts: GenerateOptions,
    settings: Optional[LLMSettings] = None,
) -> str:
    """Blocking call to Ollama's /api/chat; returns the trimmed message content."""
    settings = settings or LLMSettings()
    url = f"{settings.base_url.rstrip('/')}/api/chat"
    body = {
        "model": settings.model_name,
        "messages": [
            {"role": "system", "content": system},
            {"role": "user", "content": user},
        ],
        "stream": False,  # important
        "options": {"temperature": opts.temperature, "num_predict": opts.max_output_tokens},
        "keep_alive": settings.keep_alive,
    }
    if opts.json_mode:
        body["format"] = "json"

    try:
        resp = requests.post(url, json=body, timeout=opts.timeout_ms / 1000)
    except requests.Timeout as e:
        raise UpstreamTimeout(
            f"Ollama did not answer within {opts.timeout_ms}ms",
            timeout_ms=opts.timeout_ms, service_name=SERVICE_NAME, cause=e,
        ) from e
    except requests.RequestException as e:
        raise UpstreamError(f"Ollama request failed: {e}", service_name=SERVICE_NAME, cause=e) from e

    if not resp.ok:
        raise UpstreamError(
            f"Ollama error ({resp.status_code}): {resp.text[:500]}",
            service_name=SERVICE_NAME, status_code=resp.status_code,
        )
    try:
        data = resp.json()
    except ValueError as e:
        raise UpstreamError(f"Ollama returned invalid JSON: {resp.text[:500]}", service_name=SERVICE_NAME, cause=e) from e

    content = ((data.get("message") or {}).get("content") or data.get("response") or "").strip()
    if not content:
        raise UpstreamError(f"Ollama returned no content: {resp.text[:500]}", service_name=SERVICE_NAME)
    return content


class OllamaGenerator:
    """Async facade over ``ollama_chat``; the HTTP call runs in a worker thread."""

    def __init__(self, settings: Optional[LLMSettings] = None):
        self.settings = settings or LLMSettings()

    async def generate(self, system_prompt: str, user_prompt: str, opts: GenerateOptions) -> str:
        logger.debug(
            f"Calling {self.settings.model_name} (json={opts.json_mode}, "
            f"num_predict={opts.max_output_tokens}, timeout={opts.timeout_ms}ms)"
        )
        return await asyncio.to_thread(ollama_chat, system_prompt, user_prompt, opts, self.settings)
