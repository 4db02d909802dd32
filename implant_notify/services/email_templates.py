"""Email rendering for notification alerts and digests.

Only the two templates this service sends live here; the branded HTML layout
of the main application is not reproduced.
"""

from __future__ import annotations

import html
from dataclasses import dataclass, field
from typing import Any

from implant_notify.db.enums import NotificationSeverity

DIGEST_TEMPLATE = "notification_digest"
ALERT_TEMPLATE = "notification_alert"

DIGEST_MAX_ITEMS = 10

SEVERITY_COLORS = {
    NotificationSeverity.INFO.value: ("#F0F9FF", "#0EA5E9"),
    NotificationSeverity.WARNING.value: ("#FFFBEB", "#F59E0B"),
    NotificationSeverity.CRITICAL.value: ("#FEF2F2", "#EF4444"),
}


@dataclass(frozen=True)
class RenderedEmail:
    subject: str
    html: str
    text: str


@dataclass
class DigestItem:
    title: str
    severity: str
    created_at: str
    body: str | None = None
    entity_type: str | None = None


@dataclass
class DigestEmailData:
    period_label: str
    dashboard_url: str
    items: list[DigestItem] = field(default_factory=list)
    first_name: str | None = None


@dataclass
class AlertEmailData:
    title: str
    action_url: str
    body: str | None = None
    severity: str = NotificationSeverity.INFO.value
    first_name: str | None = None


def _greeting(first_name: str | None) -> str:
    return f"Hello {first_name}," if first_name else "Hello,"


def _summary_line(items: list[DigestItem]) -> str:
    critical = sum(1 for i in items if i.severity == NotificationSeverity.CRITICAL.value)
    warning = sum(1 for i in items if i.severity == NotificationSeverity.WARNING.value)
    summary = f"Here is the summary of your {len(items)} notification{'s' if len(items) != 1 else ''}"
    details = []
    if critical:
        details.append(f"{critical} critical")
    if warning:
        details.append(f"{warning} warning{'s' if warning != 1 else ''}")
    if details:
        summary += f" ({', '.join(details)})"
    return summary + "."


def _item_card(item: DigestItem) -> str:
    bg, border = SEVERITY_COLORS.get(item.severity, SEVERITY_COLORS["INFO"])
    body = f'<p style="margin:0;color:#4B5563;">{html.escape(item.body)}</p>' if item.body else ""
    return (
        f'<div style="background:{bg};border-left:4px solid {border};padding:12px 16px;'
        f'margin-bottom:12px;">'
        f'<p style="margin:0 0 4px 0;font-weight:600;">{html.escape(item.title)}</p>'
        f"{body}"
        f'<p style="margin:8px 0 0 0;font-size:11px;color:#9CA3AF;">{html.escape(item.created_at)}</p>'
        f"</div>"
    )


def render_digest(data: DigestEmailData) -> RenderedEmail:
    shown = data.items[:DIGEST_MAX_ITEMS]
    remaining = len(data.items) - len(shown)
    summary = _summary_line(data.items)
    url = html.escape(data.dashboard_url, quote=True)

    more_html = f"<p>And {remaining} more notifications...</p>" if remaining > 0 else ""
    html_body = (
        f"<h1>Notification summary - {html.escape(data.period_label)}</h1>"
        f"<p>{html.escape(_greeting(data.first_name))}</p>"
        f"<p>{html.escape(summary)}</p>"
        f"<div>{''.join(_item_card(i) for i in shown)}{more_html}</div>"
        f'<p><a href="{url}">View all notifications</a></p>'
    )

    lines = [
        f"NOTIFICATION SUMMARY - {data.period_label.upper()}",
        "=" * 50,
        "",
        _greeting(data.first_name),
        "",
        summary,
        "",
    ]
    for index, item in enumerate(shown, start=1):
        lines.append(f"{index}. [{item.severity}] {item.title}")
        if item.body:
            lines.append(f"   {item.body}")
    if remaining > 0:
        lines.append(f"...and {remaining} more notifications")
    lines.extend(["", "View all notifications:", data.dashboard_url])

    return RenderedEmail(
        subject=f"Notification summary - {data.period_label}",
        html=html_body,
        text="\n".join(lines),
    )


def render_alert(data: AlertEmailData) -> RenderedEmail:
    url = html.escape(data.action_url, quote=True)
    body_html = f"<p>{html.escape(data.body)}</p>" if data.body else ""
    html_body = (
        f"<p>{html.escape(_greeting(data.first_name))}</p>"
        f"<h2>{html.escape(data.title)}</h2>"
        f"{body_html}"
        f'<p><a href="{url}">Open</a></p>'
    )
    text_parts = [_greeting(data.first_name), "", data.title]
    if data.body:
        text_parts.extend(["", data.body])
    text_parts.extend(["", data.action_url])
    prefix = "[Action required] " if data.severity == NotificationSeverity.CRITICAL.value else ""
    return RenderedEmail(
        subject=f"{prefix}{data.title}",
        html=html_body,
        text="\n".join(text_parts),
    )


def render(template: str, data: Any) -> RenderedEmail:
    if template == DIGEST_TEMPLATE:
        return render_digest(data)
    if template == ALERT_TEMPLATE:
        return render_alert(data)
    raise ValueError(f"Unknown email template: {template}")
