"""Structured logging helpers (PHI-safe)."""

from typing import Any
from uuid import UUID


def build_log_context(
    *,
    user_id: UUID | str | None = None,
    org_id: UUID | str | None = None,
    job: str | None = None,
    category: str | None = None,
) -> dict[str, Any]:
    """Return a PHI-safe log context dict for use as ``extra``."""
    context: dict[str, Any] = {}
    if user_id:
        context["user_id"] = str(user_id)
    if org_id:
        context["org_id"] = str(org_id)
    if job:
        context["job"] = job
    if category:
        context["category"] = category
    return context


def mask_email(email: str | None) -> str:
    """Keep enough of an address to debug delivery without logging it."""
    if not email:
        return ""
    local, _, domain = email.partition("@")
    prefix = local[:3] if local else ""
    return f"{prefix}...@{domain}" if domain else f"{prefix}..."
