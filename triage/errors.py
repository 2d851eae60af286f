# triage/errors.py
"""
Error taxonomy shared by every integration.

ConfigurationError  required setting absent/unusable (never retried)
ValidationError     caller-supplied input missing or invalid (never retried)
UpstreamError       provider rejected the call or returned unusable data
  CredentialError   provider rejected our credentials
  TransportError    messaging transport refused / failed the dispatch
"""

from __future__ import annotations

from typing import Any, Iterable, List, Optional


class TriageError(RuntimeError):
    """Base class for all triage errors."""


class ConfigurationError(TriageError):
    def __init__(self, message: str, *, missing: Optional[Iterable[str]] = None) -> None:
        super().__init__(message)
        self.missing: List[str] = list(missing or [])


class ValidationError(TriageError):
    pass


class UpstreamError(TriageError):
    """Carries the provider name, HTTP status and response body when known."""

    def __init__(
        self,
        message: str,
        *,
        provider: str = "upstream",
        status_code: Optional[int] = None,
        body: Any = None,
    ) -> None:
        super().__init__(message)
        self.provider = provider
        self.status_code = status_code
        self.body = body

    def __str__(self) -> str:
        base = super().__str__()
        if self.body in (None, "", b""):
            return base
        if isinstance(self.body, (dict, list)):
            body_repr = str(self.body)
        else:
            body_repr = str(self.body).strip()
        if not body_repr or body_repr in base:
            return base
        return f"{base} | body={body_repr}"


class CredentialError(UpstreamError):
    pass


class TransportError(UpstreamError):
    pass


def is_credential_problem(err: BaseException) -> bool:
    """True when fixing local setup (keys, env) is the likely remedy."""
    if isinstance(err, (ConfigurationError, CredentialError)):
        return True
    return "api key" in str(err).lower()


def error_payload(err: BaseException) -> dict:
    out: dict = {"error": str(err), "type": err.__class__.__name__}
    if isinstance(err, ConfigurationError) and err.missing:
        out["missing"] = list(err.missing)
    if isinstance(err, UpstreamError):
        out["provider"] = err.provider
        if err.status_code is not None:
            out["status_code"] = err.status_code
    return out
