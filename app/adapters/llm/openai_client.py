"""OpenAI LLM client adapter."""

from typing import Any

from openai import AsyncOpenAI

from app.adapters.llm.base import AbstractLLMClient, ChatReply


class OpenAIClient(AbstractLLMClient):
    """Client for OpenAI (or OpenAI-compatible) chat completions.

    Uses the official OpenAI Python SDK with async support.
    """

    def __init__(
        self,
        api_key: str,
        model: str,
        base_url: str | None = None,
        timeout_seconds: float = 45.0,
    ) -> None:
        """Initialize OpenAI async client.

        Args:
            api_key: OpenAI API key for authentication.
            model: Default model name (e.g., "gpt-4o-mini").
            base_url: Optional custom base URL for OpenAI-compatible gateways.
            timeout_seconds: Timeout for requests in seconds.
        """
        self.client = AsyncOpenAI(
            api_key=api_key,
            base_url=base_url,
            timeout=timeout_seconds,
        )
        self.model = model

    async def chat(
        self,
        messages: list[dict[str, str]],
        *,
        model: str | None = None,
        **kwargs: Any,
    ) -> ChatReply:
        """Run a chat completion and return the first choice.

        Args:
            messages: Conversation as role/content dicts.
            model: Model override for this request.
            **kwargs: Provider options (temperature, max_tokens, top_p, etc.).

        Returns:
            ChatReply with content, model and usage counts.

        Raises:
            RuntimeError: If the API call fails or the response is empty.
        """
        request_params: dict[str, Any] = {
            "model": model or self.model,
            "messages": messages,
            "temperature": kwargs.pop("temperature", 0.7),
        }

        # Pass through additional parameters if provided
        allowed_params = {
            "max_tokens",
            "top_p",
            "frequency_penalty",
            "presence_penalty",
            "seed",
        }
        for param in allowed_params:
            if param in kwargs:
                request_params[param] = kwargs[param]

        try:
            response = await self.client.chat.completions.create(**request_params)
        except Exception as exc:
            raise RuntimeError(f"OpenAI API error: {str(exc)}") from exc

        content = response.choices[0].message.content
        if content is None:
            raise RuntimeError("LLM returned empty response")

        usage: dict[str, int] = {}
        if response.usage is not None:
            usage = {
                "prompt_tokens": response.usage.prompt_tokens,
                "completion_tokens": response.usage.completion_tokens,
                "total_tokens": response.usage.total_tokens,
            }

        return ChatReply(content=content.strip(), model=response.model or request_params["model"], usage=usage)
