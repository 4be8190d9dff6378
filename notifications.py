"""
Downstream sinks for engine events.

Sinks run after the originating mutation has committed and all learner locks
are released. A failing sink never undoes engine state; the engine logs and
moves on.
"""

from __future__ import annotations

import logging

from db_stores import DocumentStoreDB, NotificationStoreDB
from events import DomainEvent
from models import Notification
from push import send_push

logger = logging.getLogger(__name__)

STREAK_MILESTONES = (3, 7, 14, 30, 50, 100)

NOTIFICATION_TYPES = {
    "achievement": {
        "title_template": "New badge earned: {badge_name}!",
        "url": "/badges",
    },
    "streak_milestone": {
        "title_template": "{streak}-day study streak!",
        "url": "/dashboard",
    },
}


class NotificationSink:
    """In-app notifications plus best-effort web push for earned badges and streak milestones."""

    def handle(self, event: DomainEvent) -> None:
        if event.kind == "badge_earned":
            self._notify(event.learner_id, "achievement",
                         {"badge_name": event.payload["name"]},
                         event.payload.get("description", ""), event.payload)
        elif event.kind == "streak_updated":
            streak = event.payload.get("current_streak", 0)
            if streak in STREAK_MILESTONES:
                self._notify(event.learner_id, "streak_milestone", {"streak": streak},
                             "Keep it going tomorrow.", event.payload)

    def _notify(self, learner_id: int, notif_type: str, fields: dict, body: str, data: dict) -> None:
        spec = NOTIFICATION_TYPES[notif_type]
        title = spec["title_template"].format(**fields)
        NotificationStoreDB(learner_id).add(Notification(
            id="", learner_id=learner_id, type=notif_type, title=title, body=body, data=data,
        ))
        send_push(learner_id, title, body, spec["url"])


def _format_duration(seconds: float) -> str:
    minutes = int(seconds // 60)
    if minutes >= 60:
        return f"{minutes // 60}h {minutes % 60}m"
    return f"{minutes}m"


class DocumentSink:
    """Saves a summary document for each completed session and scored quiz."""

    def handle(self, event: DomainEvent) -> None:
        if event.kind == "session_completed":
            p = event.payload
            content = f"Studied {p['subject']} for {_format_duration(p['duration'])}."
            milestones = p.get("metrics", {}).get("milestones", [])
            if milestones:
                content += "\nMilestones: " + ", ".join(milestones)
            DocumentStoreDB(event.learner_id).add(
                title=f"{p['subject']} study session",
                content=content,
                doc_type="session",
                metadata={"session_id": p["session_id"], "duration": p["duration"]},
            )
        elif event.kind == "quiz_scored":
            p = event.payload
            lines = [f"Score: {p['score']}%"]
            for rec in p.get("recommendations", []):
                lines.append(f"- {rec['question']}: {rec['correct_answer']}. {rec['explanation']}".rstrip())
            DocumentStoreDB(event.learner_id).add(
                title=f"{p['subject']} quiz results",
                content="\n".join(lines),
                doc_type="quiz",
                metadata={"quiz_id": p["quiz_id"], "result_id": p["result_id"], "score": p["score"]},
            )
