"""Chat assistant turns with provider-side conversation memory."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Protocol

from creator_studio.errors import ChatError, MissingInput

logger = logging.getLogger(__name__)

GREETING = "Hi there! I'm your AI assistant. Ask me anything!"
FALLBACK_REPLY = "Sorry, I couldn't get a response. Please try again."


class ChatGateway(Protocol):
    def chat_turn(self, handle: str | None, text: str) -> tuple[str, str]: ...


@dataclass(frozen=True)
class ChatMessage:
    role: str  # "user" or "assistant"
    text: str


@dataclass
class ChatSession:
    """One conversation, owned by the view that created it.

    The provider handle is created on the first turn and reused after that;
    only the new user text goes over the wire.
    """

    gateway: ChatGateway
    transcript: list[ChatMessage] = field(default_factory=lambda: [ChatMessage("assistant", GREETING)])
    handle: str | None = None

    def send_turn(self, text: str) -> str:
        if not (text or "").strip():
            raise MissingInput("Message is empty.")
        try:
            reply, handle = self.gateway.chat_turn(self.handle, text)
        except ChatError:
            raise
        except Exception as exc:
            raise ChatError(f"Failed to get chat response: {exc}") from exc
        self.handle = handle
        return reply

    def respond(self, text: str) -> ChatMessage:
        """Append the user turn and exactly one assistant reply."""
        if not (text or "").strip():
            raise MissingInput("Message is empty.")
        self.transcript.append(ChatMessage("user", text))
        try:
            reply = self.send_turn(text)
        except ChatError as exc:
            logger.error("Chat turn failed: %s", exc)
            reply = FALLBACK_REPLY
        message = ChatMessage("assistant", reply)
        self.transcript.append(message)
        return message
