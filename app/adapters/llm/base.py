from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class ChatReply:
	"""A single assistant reply plus provider usage accounting."""

	content: str
	model: str
	usage: dict[str, int] = field(default_factory=dict)


class AbstractLLMClient(ABC):
	"""Interface for chat-completion providers behind the AI proxy."""

	@abstractmethod
	async def chat(
		self,
		messages: list[dict[str, str]],
		*,
		model: str | None = None,
		**kwargs: Any,
	) -> ChatReply:
		"""Send a conversation to the provider and return the reply.

		Args:
			messages: Conversation as ``{"role", "content"}`` dicts.
			model: Provider model name; the client default when omitted.
			**kwargs: Provider-specific options (e.g., temperature, max_tokens).

		Returns:
			ChatReply: Assistant text, resolved model name and token usage.

		Raises:
			RuntimeError: If the provider call fails or returns no content.
		"""
		...
