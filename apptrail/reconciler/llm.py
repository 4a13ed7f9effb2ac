"""LLM client for AI status classification.

Implements the text classification service the AI tier talks to, using
LiteLLM. The client returns the model's raw text; turning it into a status
(including tolerating free text) is the classifier's job.
"""

from __future__ import annotations

import asyncio
import logging
import os
import re
from typing import Any

from litellm import Timeout, acompletion

from apptrail.reconciler.config import ReconcilerConfig, get_reconciler_config
from apptrail.reconciler.models import ClassificationRequest
from apptrail.reconciler.prompts import STATUS_SYSTEM_PROMPT, build_status_prompt

logger = logging.getLogger(__name__)

# LiteLLM loads `.env` into the process environment in DEV mode; stay explicit.
os.environ.setdefault("LITELLM_MODE", "PRODUCTION")

HEBREW_PATTERN = re.compile(r"[\u0590-\u05FF]")
LATIN_PATTERN = re.compile(r"[a-zA-Z]")
MAX_SIMPLE_LINES = 20

# Initial confidences inside this band are ambiguous enough to escalate
ESCALATION_BAND = (0.15, 0.85)


class StatusLLMError(Exception):
    """Exception raised when the classification service cannot answer."""

    def __init__(self, message: str, original_error: Exception | None = None):
        super().__init__(message)
        self.original_error = original_error


def complexity_score(request: ClassificationRequest, length_threshold: int) -> int:
    """Count the signals that make a message hard for the routine model."""
    text = f"{request.subject} {request.body}".lower()
    has_hebrew = HEBREW_PATTERN.search(text) is not None
    indicators = [
        has_hebrew,
        has_hebrew and LATIN_PATTERN.search(text) is not None,
        len(request.body) > length_threshold
        or request.body.count("\n") + 1 > MAX_SIMPLE_LINES,
        "forwarded" in text or "fwd:" in text,
        request.signals.has_complex_content,
        request.signals.is_in_review_queue,
    ]
    return sum(1 for indicator in indicators if indicator)


class StatusLLM:
    """LiteLLM-backed text classification service.

    Picks a model tier per call: the escalation model for ambiguous initial
    confidence, review-queue messages, or at least two complexity signals;
    the routine model otherwise.
    """

    def __init__(self, config: ReconcilerConfig | None = None):
        """Initialize the LLM client.

        Args:
            config: Optional ReconcilerConfig. Uses global config if not provided.
        """
        self.config = config or get_reconciler_config()
        self.calls_by_model: dict[str, int] = {}
        self._setup_provider_env()

    def _setup_provider_env(self) -> None:
        """Anthropic takes its base URL from the environment, not a parameter."""
        if self.config.llm_base_url and self.config.llm_provider == "anthropic":
            base_url = self.config.llm_base_url.rstrip("/")
            if base_url.endswith("/v1"):
                base_url = base_url[:-3]
            os.environ["ANTHROPIC_BASE_URL"] = base_url
            if self.config.llm_api_key:
                os.environ["ANTHROPIC_API_KEY"] = self.config.llm_api_key

    def select_model(self, request: ClassificationRequest) -> str:
        """Return the bare model name for this request's tier."""
        signals = request.signals
        low, high = ESCALATION_BAND
        escalate = (
            low <= signals.initial_confidence <= high
            or signals.is_in_review_queue
            or complexity_score(request, self.config.complex_content_length) >= 2
        )
        if escalate:
            return self.config.llm_escalation_model
        return self.config.llm_model

    def _qualify_model_name(self, model: str) -> str:
        """Add the provider prefix LiteLLM routes on."""
        if "/" in model:
            return model

        if self.config.llm_provider == "anthropic":
            return f"anthropic/{model}"

        # Custom base URLs (local models, proxies) speak the OpenAI protocol
        if self.config.llm_base_url:
            return f"openai/{model}"

        if self.config.llm_provider == "openai":
            return model

        return f"{self.config.llm_provider}/{model}"

    async def classify(self, request: ClassificationRequest) -> str:
        """Ask the model to classify one message.

        Args:
            request: Message and context to classify.

        Returns:
            The raw text content of the model's answer.

        Raises:
            StatusLLMError: If the call times out, keeps failing after
                retries, or returns no content.
        """
        model = self._qualify_model_name(self.select_model(request))
        self.calls_by_model[model] = self.calls_by_model.get(model, 0) + 1
        messages = [
            {"role": "system", "content": STATUS_SYSTEM_PROMPT},
            {"role": "user", "content": build_status_prompt(request)},
        ]
        logger.debug("Classifying %r with %s", request.subject[:50], model)

        last_error: Exception | None = None
        for attempt in range(self.config.llm_max_retries + 1):
            try:
                response = await self._call_completion(model=model, messages=messages)
                return self._extract_content(response)

            except StatusLLMError:
                raise

            except Timeout as e:
                raise StatusLLMError(
                    "LLM request timed out "
                    f"(timeout={self.config.llm_timeout}s). Increase "
                    "`RECONCILER_LLM_TIMEOUT` or use a faster model.",
                    e,
                ) from e

            except Exception as e:
                last_error = e
                if attempt < self.config.llm_max_retries:
                    is_rate_limit = "rate_limit" in str(e).lower() or "429" in str(e)
                    wait_time = (8 if is_rate_limit else 2) * (attempt + 1)
                    logger.warning(
                        "LLM call failed (attempt %s), retrying in %ss: %s",
                        attempt + 1,
                        wait_time,
                        e,
                    )
                    await asyncio.sleep(wait_time)
                else:
                    raise StatusLLMError(f"LLM call failed after retries: {e}", e) from e

        raise StatusLLMError(f"LLM call failed: {last_error}", last_error)

    async def _call_completion(self, *, model: str, messages: list[dict]):
        kwargs: dict[str, Any] = {
            "model": model,
            "messages": messages,
            "timeout": self.config.llm_timeout,
            "response_format": {"type": "json_object"},
        }

        reasoning_effort = _normalize_reasoning_effort(self.config.llm_reasoning_effort)
        if reasoning_effort is not None:
            kwargs["reasoning_effort"] = reasoning_effort

        if self.config.llm_api_key:
            kwargs["api_key"] = self.config.llm_api_key

        if self.config.llm_base_url and self.config.llm_provider != "anthropic":
            kwargs["base_url"] = self.config.llm_base_url

        return await acompletion(**kwargs)

    def _extract_content(self, response) -> str:
        message = response.choices[0].message
        content = getattr(message, "content", None)

        # Some providers put structured output in tool call arguments
        if not content:
            tool_calls = getattr(message, "tool_calls", None) or []
            if tool_calls:
                function = getattr(tool_calls[0], "function", None)
                arguments = getattr(function, "arguments", None)
                if isinstance(arguments, str) and arguments.strip():
                    content = arguments

        if not content or not str(content).strip():
            raise StatusLLMError("LLM returned no content.")
        return str(content)


def _normalize_reasoning_effort(value: str | None) -> str | None:
    if value is None:
        return None
    normalized = str(value).strip().lower()
    if not normalized:
        return None
    if normalized in {"off", "disabled", "0", "false"}:
        return "disable"
    return normalized
