"""
LLM Service: centralized interface for all LLM API calls.

Routes calls to the configured provider. `openai` covers every
OpenAI-compatible endpoint (api.openai.com, DeepSeek via `llm_base_url`);
`anthropic` goes through AnthropicAdapter.

The primary entry point is `call()`.
"""

import json
import re
import time
from typing import Dict, Any, Optional
import anthropic
from openai import OpenAI, OpenAIError, RateLimitError, APITimeoutError
import logging

from config import Settings, get_settings

logger = logging.getLogger(__name__)

_CODE_FENCE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)


class LLMService:
    """
    Service for making LLM API calls with retry logic and error handling.

    Both `provider` and `model_id` are required. Use `get_llm_service()` to
    build one from settings.
    """

    def __init__(
        self,
        api_key: str,
        *,
        provider: str,
        model_id: str,
        base_url: Optional[str] = None,
        anthropic_api_key: Optional[str] = None,
        max_retries: int = 3,
        initial_retry_delay: float = 1.0,
        timeout: int = 60,
    ):
        self.client = OpenAI(api_key=api_key, base_url=base_url) if api_key else None
        self.max_retries = max_retries
        self.initial_retry_delay = initial_retry_delay
        self.timeout = timeout
        self.provider = provider
        self.model_id = model_id

        self.anthropic_adapter = None
        if anthropic_api_key:
            from shared.services.anthropic_adapter import AnthropicAdapter
            self.anthropic_adapter = AnthropicAdapter(
                api_key=anthropic_api_key, timeout=timeout, model=model_id
            )

    # ─── Primary entry point ───────────────────────────────────────────

    def call(
        self,
        prompt: str,
        json_mode: bool = True,
        system_prompt: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: int = 2048,
    ) -> Dict[str, Any]:
        """
        Generic LLM call. Routes to the correct API based on self.provider.

        Always returns: {output_text: str, parsed: dict|list|None}
        """
        if self.provider == "anthropic":
            return self._call_anthropic(prompt, json_mode, system_prompt, max_tokens)

        text = self._call_chat_completions(
            prompt, self.model_id, system_prompt, max_tokens, temperature, json_mode
        )
        parsed = None
        if json_mode:
            parsed = self.parse_json_response(text)
        return {"output_text": text, "parsed": parsed}

    # ─── OpenAI-compatible Chat Completions ───────────────────────────

    def _call_chat_completions(
        self,
        prompt: str,
        model: str,
        system_prompt: Optional[str] = None,
        max_tokens: int = 2048,
        temperature: float = 0.7,
        json_mode: bool = True,
    ) -> str:
        """Call an OpenAI-compatible Chat Completions API. Returns raw text."""
        if self.client is None:
            raise LLMServiceError("OpenAI-compatible client not configured (missing API key)")

        logger.info(json.dumps({
            "step": "LLM_CALL",
            "status": "starting",
            "model": model,
            "params": {"json_mode": json_mode, "has_system_prompt": system_prompt is not None}
        }))

        def _api_call():
            messages = []
            if system_prompt:
                messages.append({"role": "system", "content": system_prompt})
            messages.append({"role": "user", "content": prompt})
            kwargs = {
                "model": model,
                "messages": messages,
                "max_tokens": max_tokens,
                "temperature": temperature,
                "timeout": self.timeout,
            }
            if json_mode:
                kwargs["response_format"] = {"type": "json_object"}
            response = self.client.chat.completions.create(**kwargs)
            return response.choices[0].message.content or ""

        return self._execute_with_retry(_api_call, model)

    # ─── Anthropic ────────────────────────────────────────────────────

    def _call_anthropic(
        self,
        prompt: str,
        json_mode: bool = True,
        system_prompt: Optional[str] = None,
        max_tokens: int = 2048,
    ) -> Dict[str, Any]:
        """Call Anthropic Claude via the adapter."""
        if not self.anthropic_adapter:
            raise LLMServiceError("Anthropic adapter not configured (missing API key)")

        logger.info(json.dumps({
            "step": "LLM_CALL",
            "status": "starting",
            "model": self.model_id,
            "params": {"json_mode": json_mode, "provider": "anthropic"}
        }))

        result = self._execute_with_retry(
            lambda: self.anthropic_adapter.call_sync(
                prompt=prompt,
                json_mode=json_mode,
                system_prompt=system_prompt,
                max_tokens=max_tokens,
            ),
            self.model_id,
        )
        if json_mode and result.get("parsed") is None:
            result["parsed"] = self.parse_json_response(result["output_text"])
        return result

    # ─── Helpers ──────────────────────────────────────────────────────

    def _execute_with_retry(self, api_call_fn, model_name: str) -> Any:
        """Execute API call with exponential backoff retry logic."""
        last_error = None
        delay = self.initial_retry_delay
        start_time = time.time()

        for attempt in range(self.max_retries):
            try:
                result = api_call_fn()
                duration_ms = int((time.time() - start_time) * 1000)

                logger.info(json.dumps({
                    "step": "LLM_CALL",
                    "status": "complete",
                    "model": model_name,
                    "output": {"response_length": len(str(result)) if result else 0},
                    "duration_ms": duration_ms,
                    "attempts": attempt + 1
                }))

                if attempt > 0:
                    logger.info(f"{model_name} call succeeded on attempt {attempt + 1}")
                return result

            except (RateLimitError, anthropic.RateLimitError) as e:
                last_error = e
                logger.warning(
                    f"{model_name} rate limit hit (attempt {attempt + 1}/{self.max_retries}). "
                    f"Retrying in {delay}s..."
                )
                time.sleep(delay)
                delay *= 2

            except (APITimeoutError, anthropic.APITimeoutError) as e:
                last_error = e
                logger.warning(
                    f"{model_name} timeout (attempt {attempt + 1}/{self.max_retries}). "
                    f"Retrying in {delay}s..."
                )
                time.sleep(delay)
                delay *= 2

            except (OpenAIError, anthropic.AnthropicError) as e:
                last_error = e
                logger.error(f"{model_name} API error: {str(e)}")
                raise LLMServiceError(f"{model_name} API error: {str(e)}") from e

            except LLMServiceError:
                raise

            except Exception as e:
                last_error = e
                logger.error(f"{model_name} unexpected error: {str(e)}")
                raise LLMServiceError(f"{model_name} unexpected error: {str(e)}") from e

        duration_ms = int((time.time() - start_time) * 1000)
        logger.info(json.dumps({
            "step": "LLM_CALL",
            "status": "failed",
            "model": model_name,
            "error": str(last_error),
            "duration_ms": duration_ms,
            "attempts": self.max_retries
        }))
        raise LLMServiceError(
            f"{model_name} failed after {self.max_retries} attempts. Last error: {str(last_error)}"
        ) from last_error

    @staticmethod
    def strip_code_fences(response: str) -> str:
        """Remove a surrounding ```json ... ``` fence, if any."""
        return _CODE_FENCE.sub("", response.strip()).strip()

    def parse_json_response(self, response: str) -> Any:
        """Parse JSON response from LLM."""
        try:
            return json.loads(self.strip_code_fences(response or ""))
        except json.JSONDecodeError as e:
            logger.error(f"Failed to parse JSON response: {(response or '')[:200]}...")
            raise LLMResponseParseError(f"Invalid JSON response: {str(e)}", response) from e


class LLMServiceError(Exception):
    """Custom exception for LLM service errors"""
    pass


class LLMResponseParseError(LLMServiceError):
    """Raised when the model output is not valid JSON."""

    def __init__(self, message: str, raw_output: Optional[str] = None):
        super().__init__(message)
        self.raw_output = raw_output or ""


def get_llm_service(settings: Optional[Settings] = None) -> LLMService:
    """Build an LLMService from application settings."""
    settings = settings or get_settings()
    return LLMService(
        api_key=settings.openai_api_key,
        provider=settings.llm_provider,
        model_id=settings.llm_model,
        base_url=settings.llm_base_url,
        anthropic_api_key=settings.anthropic_api_key or None,
        max_retries=settings.llm_max_retries,
        timeout=settings.llm_timeout_seconds,
    )
