import logging

import requests

from uni_feedback.config import settings

logger = logging.getLogger("app.notify")

TELEGRAM_MAX_LEN = 4096


def stars(rating) -> str:
    if not rating:
        return "N/A"
    return f"{rating} - " + "*" * int(rating)


def format_school_year(year: int) -> str:
    return f"{year}/{year + 1}"


class NotificationService:
    """Moderator notifications over the Telegram bot API; a no-op without credentials."""

    def __init__(self, token: str = None, chat_id: str = None, timeout: int = 10):
        self.token = token if token is not None else settings.TELEGRAM_BOT_TOKEN
        self.chat_id = chat_id if chat_id is not None else settings.TELEGRAM_CHAT_ID
        self.timeout = timeout

    @property
    def enabled(self) -> bool:
        return bool(self.token and self.chat_id)

    def send(self, message: str) -> bool:
        if not self.enabled:
            logger.debug("Telegram disabled, message skipped:\n%s", message)
            return False
        url = f"https://api.telegram.org/bot{self.token}/sendMessage"
        try:
            resp = requests.post(
                url,
                json={"chat_id": self.chat_id, "text": message[:TELEGRAM_MAX_LEN]},
                timeout=self.timeout,
            )
        except requests.RequestException:
            logger.exception("Telegram request failed")
            return False
        if resp.status_code != 200:
            logger.warning("Telegram API error %s: %s", resp.status_code, resp.text[:300])
            return False
        return True

    def course_review_received(self, email, school_year, course, degree, rating, workload_rating, comment):
        message = "\n".join([
            "NEW REVIEW",
            "",
            f"Submitted by: {email}",
            f"School Year: {format_school_year(school_year)}",
            f"Degree: {degree.acronym} - {degree.name}",
            f"Course: {course.acronym} - {course.name}",
            f"Overall Rating: {stars(rating)}",
            f"Workload Rating: {stars(workload_rating)}",
            "",
            f"Comment: {comment or 'N/A'}",
            "",
            f"Review: {settings.WEBSITE_URL}/courses/{course.id}",
        ])
        return self.send(message)

    def feedback_reported(self, report_id, feedback_id, category, details, reporter_id, feedback_comment):
        message = "\n".join([
            "FEEDBACK REPORTED",
            "",
            f"Report #{report_id} on feedback #{feedback_id}",
            f"Reporter: user #{reporter_id}",
            f"Category: {category}",
            f"Details: {details}",
            "",
            f"Comment: {feedback_comment or 'N/A'}",
        ])
        return self.send(message)

    def new_signup(self, email):
        return self.send(f"New user signed up: {email}")

    def admin_change(self, admin, resource_type, resource_id, resource_name, action, changes=None, item=None):
        lines = [
            f"ADMIN {action.upper()}",
            "",
            f"By: {admin.username} ({admin.email})",
            f"{resource_type} #{resource_id}: {resource_name}",
        ]
        if changes:
            lines.append("")
            lines.append("Changes:")
            for field, (old, new) in changes.items():
                lines.append(f"- {field}: {old!r} -> {new!r}")
        elif item:
            lines.append(f"{action.capitalize()}: {item}")
        return self.send("\n".join(lines))
