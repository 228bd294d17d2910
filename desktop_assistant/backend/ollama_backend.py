"""
Conversation backend using Ollama.

Ollama runs LLMs locally and exposes an HTTP API on localhost:11434.
This backend answers typed queries by streaming /api/chat with httpx and
turning the reply into the events the session expects.

It has no speech recognition, so audio turns are rejected with an
UNIMPLEMENTED (12) backend error.
"""

import asyncio
import json
import logging
from typing import Optional

import httpx

from ..config import BackendConfig
from .base import (
    BackendError,
    BaseConversationBackend,
    Ended,
    QueuedTurnHandle,
    ResponsePayload,
    ResponseReceived,
    Transcription,
)

logger = logging.getLogger(__name__)

# gRPC-style status codes, so errors map the same way as other backends
UNKNOWN = 2
DEADLINE_EXCEEDED = 4
PERMISSION_DENIED = 7
UNIMPLEMENTED = 12
UNAVAILABLE = 14
UNAUTHENTICATED = 16


def status_code_for_http(status: int) -> int:
    """Map an HTTP status to the closest status code."""
    if status == 401:
        return UNAUTHENTICATED
    if status == 403:
        return PERMISSION_DENIED
    if status in (502, 503, 504):
        return UNAVAILABLE
    return UNKNOWN


class OllamaBackend(BaseConversationBackend):
    """
    Text conversation backend for Ollama.

    Attributes:
        model: Model name (e.g., "llama3.2:3b")
        base_url: Ollama API URL
        messages: Conversation context sent with every turn
    """

    supports_audio = False

    def __init__(
        self,
        config: Optional[BackendConfig] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.config = config or BackendConfig()
        self.model = self.config.model
        self.base_url = self.config.base_url
        # Keep one session open to reuse connections
        self._client = client or httpx.AsyncClient(
            base_url=self.base_url, timeout=self.config.timeout
        )
        self.messages: list[dict] = [
            {"role": "system", "content": self._system_message()}
        ]
        self._tasks: set[asyncio.Task] = set()

    def _system_message(self) -> str:
        """System prompt plus the language the user speaks and wants answers in."""
        prompt = self.config.system_prompt
        if self.config.language:
            prompt += f" The user's locale is {self.config.language}; always answer in that language."
        return prompt

    def reset_context(self):
        """Forget the conversation (keep system prompt)."""
        self.messages = self.messages[:1]

    async def start_turn(
        self,
        is_text_query: bool,
        text: Optional[str] = None,
        new_conversation: bool = False,
    ) -> QueuedTurnHandle:
        handle = QueuedTurnHandle()

        if not is_text_query:
            handle.emit(BackendError(
                code=UNIMPLEMENTED,
                message="Audio queries are not supported by the Ollama backend",
            ))
            return handle

        if new_conversation:
            self.reset_context()

        task = asyncio.create_task(self._run_text_turn(handle, text or ""))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return handle

    async def _run_text_turn(self, handle: QueuedTurnHandle, text: str):
        logger.info(f"📤 Streaming request to Ollama ({self.model})...")
        handle.emit(Transcription(text=text, is_final=True))

        messages = self.messages + [{"role": "user", "content": text}]
        reply = ""
        last: dict = {}

        try:
            async with self._client.stream(
                "POST",
                "/api/chat",
                json={
                    "model": self.model,
                    "messages": messages,
                    "stream": True,
                },
            ) as response:
                response.raise_for_status()

                # Ollama sends JSON lines, one per token
                async for line in response.aiter_lines():
                    if handle.cancelled:
                        logger.debug("Turn cancelled, closing Ollama stream")
                        return
                    if not line:
                        continue
                    last = json.loads(line)
                    if "message" in last and "content" in last["message"]:
                        reply += last["message"]["content"]

        except (httpx.ConnectError, httpx.TimeoutException) as e:
            handle.emit(BackendError(code=UNAVAILABLE, message=str(e) or type(e).__name__))
            return
        except httpx.HTTPStatusError as e:
            handle.emit(BackendError(
                code=status_code_for_http(e.response.status_code),
                message=f"HTTP {e.response.status_code}: {e.response.reason_phrase}",
            ))
            return
        except (httpx.HTTPError, json.JSONDecodeError) as e:
            handle.emit(BackendError(code=UNKNOWN, message=str(e)))
            return

        self.messages = messages + [{"role": "assistant", "content": reply}]

        handle.emit(ResponseReceived(ResponsePayload(text=reply.strip(), raw=last)))
        handle.emit(Ended(continue_expected=False))

    async def close(self):
        """Properly close the HTTP connection."""
        for task in list(self._tasks):
            task.cancel()
        await self._client.aclose()
