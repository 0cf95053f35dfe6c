"""Shared error types for reportbot.

Every failure that can end a report attempt is one of these. Each carries a
``kind`` discriminator, the step it failed in, and structured context, so the
executor can record a readable message on the run without guessing what went
wrong.
"""

from typing import Any, Literal


class ReportbotError(Exception):
    """Base error for reportbot."""

    kind: str = "error"

    def __init__(
        self,
        message: str,
        *,
        step: str | None = None,
        context: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.step = step
        self.context = dict(context or {})

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "message": self.message,
            "step": self.step,
            "context": self.context,
        }


class ConfigurationError(ReportbotError):
    """Delivery not configured, or a schedule with nothing to deliver to."""

    kind = "configuration"


AuthReason = Literal["form_missing", "rejected", "timeout"]


class AuthenticationError(ReportbotError):
    """Login to the dashboard failed."""

    kind = "authentication"

    def __init__(
        self,
        message: str,
        *,
        reason: AuthReason,
        snapshot: str | None = None,
        context: dict[str, Any] | None = None,
    ):
        super().__init__(message, step="authenticating", context=context)
        self.reason = reason
        self.snapshot = snapshot
        self.context["reason"] = reason
        if snapshot is not None:
            self.context["snapshot"] = snapshot


class RenderTimeoutError(ReportbotError):
    """The print view never signalled readiness."""

    kind = "render_timeout"

    def __init__(self, message: str, *, snapshot: str = "", context: dict[str, Any] | None = None):
        super().__init__(message, step="polling_readiness", context=context)
        self.snapshot = snapshot
        self.context["snapshot"] = snapshot


class UpstreamDataError(ReportbotError):
    """The print view showed its error marker."""

    kind = "upstream_data"


class RenderError(ReportbotError):
    """Unexpected browser automation failure during a render step."""

    kind = "render"


class TransportError(ReportbotError):
    """The delivery channel rejected or failed to send a message."""

    kind = "transport"

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        context: dict[str, Any] | None = None,
    ):
        super().__init__(message, step="delivering", context=context)
        self.status_code = status_code
        if status_code is not None:
            self.context["status_code"] = status_code
