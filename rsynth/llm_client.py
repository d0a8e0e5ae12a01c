"""Chat completion wrapper for OpenAI-compatible servers (Ollama, OpenAI, vLLM...)."""

import logging
from typing import Dict, List, Optional, Sequence, Union

from openai import OpenAI

logger = logging.getLogger(__name__)

Messages = Sequence[Dict[str, str]]


class LLMClient:
    """Thin synchronous client used by every stage that talks to a model.

    Transport failures (connection errors, 429s, 5xx) are retried inside the
    SDK up to ``max_retries`` times. Anything still failing is logged and
    re-raised to the calling stage.
    """

    def __init__(
        self,
        api_key: str,
        api_endpoint: str,
        default_model: str,
        max_retries: int = 3,
        timeout: Optional[float] = None,
    ):
        """
        Args:
            api_key: Key sent as bearer token; Ollama accepts any value
            api_endpoint: Base URL of the ``/v1`` API
            default_model: Model used when a call does not name one
            max_retries: SDK-level retries per request
            timeout: Per-request timeout in seconds, SDK default when ``None``
        """
        options = dict(api_key=api_key, base_url=api_endpoint, max_retries=max_retries)
        if timeout is not None:
            options["timeout"] = timeout
        self.client = OpenAI(**options)
        self.default_model = default_model
        self.max_retries = max_retries
        logger.info(f"LLM client ready: {api_endpoint} (default model: {default_model}, max_retries: {max_retries})")

    @staticmethod
    def _to_messages(prompt: Union[str, Messages], system: Optional[str]) -> List[Dict[str, str]]:
        messages = [{"role": "user", "content": prompt}] if isinstance(prompt, str) else list(prompt)
        if system:
            messages.insert(0, {"role": "system", "content": system})
        return messages

    def complete(
        self,
        prompt: Union[str, Messages],
        model: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: Optional[int] = None,
        json_mode: bool = False,
        system: Optional[str] = None,
    ) -> str:
        """Send one chat request and return the reply text (``""`` if the model sent none)."""
        model = model or self.default_model
        messages = self._to_messages(prompt, system)

        request = {"model": model, "messages": messages, "temperature": temperature}
        if max_tokens:
            request["max_tokens"] = max_tokens
        if json_mode:
            request["response_format"] = {"type": "json_object"}

        chars = sum(len(m.get("content") or "") for m in messages)
        logger.debug(f"Requesting completion from {model} ({len(messages)} messages, {chars} chars)")

        try:
            response = self.client.chat.completions.create(**request)
        except Exception as e:
            logger.error(f"Completion request to {model} failed: {e}")
            raise

        choice = response.choices[0]
        text = choice.message.content or ""
        if getattr(choice, "finish_reason", None) == "length":
            logger.warning(f"Reply from {model} was cut off at the token limit")

        usage = getattr(response, "usage", None)
        if usage is not None:
            logger.debug(
                f"{model} usage: prompt={getattr(usage, 'prompt_tokens', '?')} "
                f"completion={getattr(usage, 'completion_tokens', '?')}"
            )
        logger.debug(f"Received {len(text)} chars from {model}")
        return text
