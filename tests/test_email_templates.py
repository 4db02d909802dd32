import pytest

from implant_notify.services import email_templates
from implant_notify.services.email_templates import (
    AlertEmailData,
    DigestEmailData,
    DigestItem,
)


def _items(count, severity="INFO"):
    return [
        DigestItem(title=f"Item {i}", severity=severity, created_at="2026-10-18 07:10")
        for i in range(count)
    ]


def test_digest_subject_and_summary():
    data = DigestEmailData(
        period_label="Daily",
        dashboard_url="http://localhost:5000/notifications",
        items=_items(1, "CRITICAL") + _items(2, "WARNING"),
        first_name="Marie",
    )

    rendered = email_templates.render(email_templates.DIGEST_TEMPLATE, data)

    assert rendered.subject == "Notification summary - Daily"
    assert "Hello Marie," in rendered.text
    assert "3 notifications (1 critical, 2 warnings)" in rendered.text
    assert "http://localhost:5000/notifications" in rendered.html


def test_digest_truncates_long_lists():
    data = DigestEmailData(
        period_label="Daily",
        dashboard_url="http://localhost:5000/notifications",
        items=_items(13),
    )

    rendered = email_templates.render_digest(data)

    assert "Item 9" in rendered.text
    assert "Item 10" not in rendered.text
    assert "...and 3 more notifications" in rendered.text


def test_digest_escapes_html():
    data = DigestEmailData(
        period_label="Daily",
        dashboard_url="http://localhost:5000/notifications",
        items=[DigestItem(title="<script>x</script>", severity="INFO", created_at="now")],
    )

    rendered = email_templates.render_digest(data)

    assert "<script>" not in rendered.html
    assert "&lt;script&gt;" in rendered.html


def test_critical_alert_subject_prefix():
    rendered = email_templates.render_alert(
        AlertEmailData(title="Low ISQ detected", action_url="http://x/patients/1", severity="CRITICAL")
    )

    assert rendered.subject == "[Action required] Low ISQ detected"
    assert "http://x/patients/1" in rendered.text


def test_info_alert_subject_is_title():
    rendered = email_templates.render_alert(
        AlertEmailData(title="Import finished", action_url="http://x/import")
    )

    assert rendered.subject == "Import finished"
    assert rendered.text.startswith("Hello,")


def test_unknown_template_raises():
    with pytest.raises(ValueError):
        email_templates.render("nope", None)
