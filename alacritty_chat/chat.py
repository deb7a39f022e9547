"""Chat history, language-model services and the chat panel state."""

from __future__ import annotations

import json
import os
import queue
import threading
import time
import urllib.error
import urllib.request
from abc import ABC, abstractmethod
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from enum import Enum

OPENAI_URL = "https://api.openai.com/v1/chat/completions"
DEFAULT_MODEL = "gpt-3.5-turbo"
DEFAULT_TEMPERATURE = 0.7
MOCK_DELAY = 0.5


class ChatRole(str, Enum):
    """Who wrote a chat message."""

    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


@dataclass
class ChatMessage:
    """One message of a conversation, in the chat-completions wire shape."""

    role: str = ""
    content: str = ""

    @classmethod
    def user(cls, content: str) -> "ChatMessage":
        return cls(ChatRole.USER.value, str(content))

    @classmethod
    def assistant(cls, content: str) -> "ChatMessage":
        return cls(ChatRole.ASSISTANT.value, str(content))

    @classmethod
    def system(cls, content: str) -> "ChatMessage":
        return cls(ChatRole.SYSTEM.value, str(content))

    def is_user(self) -> bool:
        return self.role == ChatRole.USER.value

    def is_assistant(self) -> bool:
        return self.role == ChatRole.ASSISTANT.value

    def to_dict(self) -> dict[str, str]:
        return {"role": self.role, "content": self.content}

    @classmethod
    def from_dict(cls, data: Mapping) -> "ChatMessage":
        """Build a message from a mapping; missing fields default to empty."""
        if not isinstance(data, Mapping):
            raise ValueError(f"message must be an object, not {type(data).__name__}")
        role = data.get("role", "")
        content = data.get("content", "")
        for name, value in (("role", role), ("content", content)):
            if not isinstance(value, str):
                raise ValueError(f"field {name!r} must be a string")
        return cls(role, content)


class LLMError(Exception):
    """A language-model service failed to produce a reply."""


class LLMService(ABC):
    """Something that answers a conversation with a reply text."""

    @abstractmethod
    def send_message(self, messages: list[ChatMessage]) -> str:
        """Return the reply to ``messages`` or raise :class:`LLMError`."""


class OpenAIService(LLMService):
    """Chat-completions client over HTTPS."""

    def __init__(self, api_key: str, model: str = DEFAULT_MODEL) -> None:
        self.api_key = api_key
        self.model = model

    def build_request(self, messages: Iterable[ChatMessage]) -> dict:
        return {
            "model": self.model,
            "messages": [message.to_dict() for message in messages],
            "temperature": DEFAULT_TEMPERATURE,
        }

    def parse_response(self, payload: object) -> str:
        """Extract the first choice's content from a decoded response body."""
        try:
            if not isinstance(payload, Mapping):
                raise ValueError("response must be an object")
            choices = payload.get("choices", [])
            if not isinstance(choices, list):
                raise ValueError("field 'choices' must be a list")
            if not choices:
                raise LLMError("APIからの応答に選択肢がありません")
            first = choices[0]
            if not isinstance(first, Mapping):
                raise ValueError("choice must be an object")
            return ChatMessage.from_dict(first.get("message", {})).content
        except ValueError as exc:
            raise LLMError(f"JSONのパースに失敗: {exc}") from exc

    def send_message(self, messages: list[ChatMessage]) -> str:
        body = json.dumps(self.build_request(messages)).encode("utf-8")
        request = urllib.request.Request(
            OPENAI_URL,
            data=body,
            method="POST",
            headers={
                "Authorization": f"Bearer {self.api_key}",
                "Content-Type": "application/json",
            },
        )
        try:
            with urllib.request.urlopen(request, timeout=30) as response:
                raw = response.read()
        except urllib.error.HTTPError as exc:
            raise LLMError(f"API エラー: ステータスコード {exc.code} {exc.reason}") from exc
        except (urllib.error.URLError, OSError) as exc:
            raise LLMError(f"APIリクエストが失敗: {exc}") from exc
        try:
            payload = json.loads(raw)
        except (ValueError, UnicodeDecodeError) as exc:
            raise LLMError(f"JSONのパースに失敗: {exc}") from exc
        return self.parse_response(payload)


class MockLLMService(LLMService):
    """Offline stand-in that echoes the latest user message."""

    def __init__(self, delay: float = MOCK_DELAY) -> None:
        self.delay = delay

    def send_message(self, messages: list[ChatMessage]) -> str:
        last = next((m for m in reversed(messages) if m.is_user()), None)
        if last is None:
            raise LLMError("ユーザーメッセージがありません")
        reply = (
            f"あなたのメッセージ「{last.content}」を受け取りました。\n\n"
            "これはモック応答です。実際のAPI接続を設定するには、"
            "環境変数 OPENAI_API_KEY を設定してください。"
        )
        if self.delay > 0:
            time.sleep(self.delay)
        return reply


def service_from_environment(environ: Mapping[str, str] | None = None) -> LLMService:
    """Use the OpenAI service when OPENAI_API_KEY is set and non-empty."""
    env = os.environ if environ is None else environ
    api_key = env.get("OPENAI_API_KEY", "")
    if api_key:
        return OpenAIService(api_key, DEFAULT_MODEL)
    return MockLLMService()


def split_code_blocks(content: str) -> list[tuple[str, str]]:
    """Classify each line as ``"fence"``, ``"code"`` or ``"text"``.

    A line whose trimmed form starts with three backticks toggles code mode
    and is reported as a bare fence.
    """
    lines = content.split("\n")
    if lines and lines[-1] == "":
        lines.pop()
    result: list[tuple[str, str]] = []
    in_code = False
    for line in lines:
        if line.endswith("\r"):
            line = line[:-1]
        if line.strip().startswith("```"):
            in_code = not in_code
            result.append(("fence", "```"))
        elif in_code:
            result.append(("code", line))
        else:
            result.append(("text", line))
    return result


class ChatPanel:
    """Conversation state: history, pending input and the outstanding request."""

    def __init__(self, service: LLMService | None = None) -> None:
        self.service = service if service is not None else service_from_environment()
        self.history: list[ChatMessage] = []
        self.input_buffer = ""
        self.awaiting_response = False
        self._replies: queue.Queue | None = None

    def send_message(self) -> bool:
        """Submit the input buffer; return whether a request was started."""
        if not self.input_buffer.strip() or self.awaiting_response:
            return False
        self.history.append(ChatMessage.user(self.input_buffer))
        self.input_buffer = ""
        self.awaiting_response = True
        replies: queue.Queue = queue.Queue(maxsize=1)
        self._replies = replies
        snapshot = list(self.history)
        service = self.service

        def worker() -> None:
            try:
                replies.put((True, service.send_message(snapshot)))
            except Exception as exc:  # reported to the user as a system message
                replies.put((False, str(exc)))

        threading.Thread(target=worker, daemon=True).start()
        return True

    def _accept(self, outcome: tuple[bool, str]) -> ChatMessage:
        ok, text = outcome
        message = ChatMessage.assistant(text) if ok else ChatMessage.system(f"エラー: {text}")
        self.history.append(message)
        self.awaiting_response = False
        self._replies = None
        return message

    def poll_response(self) -> ChatMessage | None:
        """Record a finished reply without blocking; return it if there was one."""
        if self._replies is None:
            return None
        try:
            outcome = self._replies.get_nowait()
        except queue.Empty:
            return None
        return self._accept(outcome)

    def wait_for_response(self, timeout: float | None = None) -> ChatMessage | None:
        """Block until the reply arrives or ``timeout`` seconds pass."""
        if self._replies is None:
            return None
        try:
            outcome = self._replies.get(timeout=timeout)
        except queue.Empty:
            return None
        return self._accept(outcome)