"""LLM adapter layer - abstracts over chat providers for the AI proxy."""

from app.adapters.llm.base import AbstractLLMClient, ChatReply
from app.adapters.llm.factory import create_llm_client, get_llm_client
from app.adapters.llm.openai_client import OpenAIClient

__all__ = [
    "AbstractLLMClient",
    "ChatReply",
    "OpenAIClient",
    "create_llm_client",
    "get_llm_client",
]
