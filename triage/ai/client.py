# triage/ai/client.py
from __future__ import annotations

from typing import Any, Optional, Type, TypeVar

import openai
from openai import OpenAI
from pydantic import BaseModel
from pydantic import ValidationError as SchemaError

from ..config import Settings, settings
from ..errors import ConfigurationError, CredentialError, UpstreamError
from ..runtime import get_logger

logger = get_logger("ai.client")

M = TypeVar("M", bound=BaseModel)

PROVIDER = "openai"
MISSING_KEY_MESSAGE = "OpenAI API key is not configured. Please set OPENAI_API_KEY in your .env file."


def _shorten(s: str, limit: int = 300) -> str:
    s = (s or "").strip()
    if len(s) <= limit:
        return s
    return s[:limit - 1].rstrip() + "…"


class AIClient:
    """
    Thin wrapper around the OpenAI chat completions API that turns the model's
    reply into a validated pydantic object. Treats the reply as untrusted text:
    anything that does not match the schema fails the call.

    No retries here; callers decide whether to try again.
    """

    def __init__(
        self,
        *,
        api_key: Optional[str],
        model: str = "gpt-4o-mini",
        temperature: float = 0.2,
        timeout: float = 30.0,
        max_tokens: int = 600,
        sdk: Any = None,
    ) -> None:
        self.api_key = api_key
        self.model = model
        self.temperature = temperature
        self.timeout = timeout
        self.max_tokens = max_tokens
        self._sdk = sdk

    @classmethod
    def from_settings(cls, s: Optional[Settings] = None) -> "AIClient":
        s = s or settings()
        return cls(
            api_key=s.OPENAI_API_KEY,
            model=s.OPENAI_MODEL,
            temperature=s.OPENAI_TEMPERATURE,
            timeout=s.OPENAI_TIMEOUT,
            max_tokens=s.OPENAI_MAX_TOKENS,
        )

    @property
    def configured(self) -> bool:
        return bool(self.api_key) or self._sdk is not None

    def sdk(self) -> Any:
        if self._sdk is None:
            if not self.api_key:
                raise ConfigurationError(MISSING_KEY_MESSAGE, missing=["OPENAI_API_KEY"])
            self._sdk = OpenAI(api_key=self.api_key, timeout=self.timeout, max_retries=0)
        return self._sdk

    def complete_json(self, *, system: str, user: str, schema: Type[M], task: str) -> M:
        cli = self.sdk()
        try:
            resp = cli.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": system},
                    {"role": "user", "content": user},
                ],
                temperature=self.temperature,
                max_tokens=self.max_tokens,
                response_format={"type": "json_object"},
            )
        except (openai.AuthenticationError, openai.PermissionDeniedError) as e:
            raise CredentialError(
                f"{task} failed: OpenAI API key is missing or invalid ({e.__class__.__name__})",
                provider=PROVIDER,
                status_code=getattr(e, "status_code", None),
                body=getattr(e, "body", None),
            ) from e
        except openai.APIStatusError as e:
            raise UpstreamError(
                f"{task} failed: OpenAI HTTP {e.status_code}",
                provider=PROVIDER,
                status_code=e.status_code,
                body=e.body,
            ) from e
        except openai.APIError as e:
            raise UpstreamError(f"{task} failed: {e}", provider=PROVIDER) from e

        content = ((resp.choices[0].message.content if resp and resp.choices else None) or "").strip()
        if not content:
            raise UpstreamError(f"{task} failed: empty completion content", provider=PROVIDER)

        try:
            return schema.model_validate_json(content)
        except SchemaError as e:
            logger.warning("%s returned malformed output: %s", task, _shorten(content))
            raise UpstreamError(
                f"{task} failed: AI response did not match the {schema.__name__} schema "
                f"({e.error_count()} problem(s))",
                provider=PROVIDER,
                body=_shorten(content),
            ) from e
