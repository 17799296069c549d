"""OpenRouter Oracle Client
==========================

Minimal async client for OpenRouter chat completions, used as the roadmap
text-generation oracle.

Features:
- Single request/response per call (no automatic retry)
- JSON response format requested from the model
- Every failure surfaces as ``UpstreamError``

Synchronous callers go through :meth:`OpenRouterOracle.complete`, which wraps
the coroutine with ``run_async_safely``.
"""
from __future__ import annotations

import asyncio
import time
import uuid
from typing import Any, Dict, List, Optional

import aiohttp

from ..utils.async_utils import run_async_safely
from ..utils.logging_config import get_logger
from .service_base import UpstreamError

logger = get_logger("oracle")


class OpenRouterOracle:
    """Chat-completions oracle.

    Usage:
        oracle = OpenRouterOracle(api_key="...", model="openai/gpt-4-turbo-preview")
        raw_json = oracle.complete(system_prompt, user_prompt)
    """

    API_URL = "https://openrouter.ai/api/v1/chat/completions"

    def __init__(
        self,
        api_key: str,
        model: str,
        timeout: int = 120,
        temperature: float = 0.7,
        max_tokens: int = 8000,
        site_url: str = "https://roadmaps.local",
        site_name: str = "Roadmap Generator",
        api_url: Optional[str] = None,
    ):
        self.api_key = api_key or ''
        self.model = model
        self.timeout = timeout
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.site_url = site_url
        self.site_name = site_name
        self.api_url = api_url or self.API_URL

        if not self.api_key:
            logger.warning("OPENROUTER_API_KEY not set")

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> 'OpenRouterOracle':
        return cls(
            api_key=config.get('OPENROUTER_API_KEY', ''),
            model=config.get('OPENROUTER_MODEL', 'openai/gpt-4-turbo-preview'),
            timeout=int(config.get('OPENROUTER_TIMEOUT', 120)),
            temperature=float(config.get('OPENROUTER_TEMPERATURE', 0.7)),
            max_tokens=int(config.get('OPENROUTER_MAX_TOKENS', 8000)),
            site_url=config.get('OPENROUTER_SITE_URL', 'https://roadmaps.local'),
            site_name=config.get('OPENROUTER_SITE_NAME', 'Roadmap Generator'),
        )

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "HTTP-Referer": self.site_url,
            "X-Title": self.site_name,
            "Content-Type": "application/json",
            "X-Request-ID": str(uuid.uuid4()),
        }

    def _payload(self, messages: List[Dict[str, str]]) -> Dict[str, Any]:
        return {
            "model": self.model,
            "messages": messages,
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
            "response_format": {"type": "json_object"},
        }

    @staticmethod
    def _extract_content(data: Dict[str, Any]) -> str:
        choices = data.get('choices') or []
        if not choices:
            error = data.get('error', {})
            if isinstance(error, dict):
                error = error.get('message', 'Missing choices')
            raise UpstreamError(f"Malformed oracle response: {error}", status_code=200)
        message = choices[0].get('message') or {}
        return (message.get('content') or '').strip()

    async def complete_async(self, system_prompt: str, user_prompt: str) -> str:
        """Send one chat completion and return the raw message content."""
        if not self.api_key:
            raise UpstreamError("Oracle API key not configured", status_code=401)

        messages = [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_prompt},
        ]
        short_model = self.model.split('/')[-1] if '/' in self.model else self.model
        start_time = time.time()
        logger.info(f"Oracle call -> {short_model}")

        try:
            async with aiohttp.ClientSession() as session:
                async with session.post(
                    self.api_url,
                    json=self._payload(messages),
                    headers=self._headers(),
                    timeout=aiohttp.ClientTimeout(total=self.timeout),
                ) as response:
                    status_code = response.status
                    content_type = response.headers.get('Content-Type', '')
                    if 'application/json' in content_type:
                        try:
                            data = await response.json()
                        except (aiohttp.ContentTypeError, ValueError):
                            text = await response.text()
                            data = {"error": f"Invalid JSON: {text[:200]}"}
                    else:
                        text = await response.text()
                        data = {"error": f"Non-JSON response: {text[:200]}"}
        except aiohttp.ClientError as e:
            logger.warning(f"Oracle network error: {e}")
            raise UpstreamError(f"Oracle unreachable: {e}") from e
        except asyncio.TimeoutError as e:
            logger.warning(f"Oracle timeout after {self.timeout}s")
            raise UpstreamError(f"Oracle timed out after {self.timeout}s") from e

        if status_code != 200:
            error_obj = data.get('error', {})
            error_msg = error_obj.get('message', str(data)) if isinstance(error_obj, dict) else str(error_obj)
            logger.warning(f"Oracle error {status_code} ({short_model}): {error_msg}")
            raise UpstreamError(f"Oracle returned {status_code}: {error_msg}", status_code=status_code)

        content = self._extract_content(data)
        usage = data.get('usage', {})
        logger.info(
            f"Oracle {short_model} answered in {time.time() - start_time:.1f}s "
            f"({usage.get('prompt_tokens', 0)}->{usage.get('completion_tokens', 0)} tokens)"
        )
        return content

    def complete(self, system_prompt: str, user_prompt: str) -> str:
        return run_async_safely(self.complete_async(system_prompt, user_prompt))
