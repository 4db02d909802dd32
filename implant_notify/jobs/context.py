"""Run context handed to scheduled job handlers."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime

from implant_notify.services.email_sender import EmailSender


@dataclass
class ScheduledJob:
    job_type: str
    now: datetime
    email_sender: EmailSender | None = None
    id: str = field(default_factory=lambda: uuid.uuid4().hex[:8])
