"""
OpenAI Client Helpers
Builds the shared AsyncOpenAI client and maps SDK errors onto the
pipeline's model-call failures.
"""
from typing import Type

import openai
from openai import AsyncOpenAI

from eventrag.config import Settings
from eventrag.exceptions import ModelCallError, ModelTimeout


def build_openai_client(settings: Settings) -> AsyncOpenAI:
    """
    Create the AsyncOpenAI client used by every model service.

    Retries are disabled here; the ingestion layer owns retry policy.
    """
    return AsyncOpenAI(
        api_key=settings.openai_api_key,
        timeout=settings.model_timeout_seconds,
        max_retries=0,
    )


def translate_openai_error(
    error: Exception,
    failure_cls: Type[ModelCallError],
    timeout_cls: Type[ModelTimeout],
    operation: str,
) -> ModelCallError:
    """
    Convert an OpenAI SDK exception into a pipeline failure.

    Args:
        error: Exception raised by the SDK
        failure_cls: Failure type for this operation
        timeout_cls: Timeout subtype for this operation
        operation: Short label used in the message ("embedding", ...)

    Returns:
        The failure to raise (caller chains it with ``from``)
    """
    if isinstance(error, openai.APITimeoutError):
        return timeout_cls(f"{operation} request timed out", details={"upstream": str(error)})

    if isinstance(error, openai.APIStatusError):
        detail = _status_error_message(error)
        transient = error.status_code == 429 or error.status_code >= 500
        return failure_cls(
            f"Failed to {operation}: {detail}",
            transient=transient,
            details={"status_code": error.status_code},
        )

    if isinstance(error, openai.APIConnectionError):
        return failure_cls(f"Failed to {operation}: {error}", transient=True)

    return failure_cls(f"Failed to {operation}: {error}", transient=False)


def _status_error_message(error: "openai.APIStatusError") -> str:
    body = error.body
    if isinstance(body, dict):
        message = body.get("message")
        if message:
            return str(message)
        inner = body.get("error")
        if isinstance(inner, dict) and inner.get("message"):
            return str(inner["message"])
    return error.message
