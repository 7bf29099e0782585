import logging

from uni_feedback.config import settings

logger = logging.getLogger("app.email")


class EmailService:
    """
    Renders transactional emails and hands them to the mail backend.
    The backend only logs; tests monkeypatch `send`.
    """

    def __init__(self, sender: str = None):
        self.sender = sender or settings.MAIL_FROM

    def send(self, to: str, subject: str, text: str):
        logger.info("EMAIL from=%s to=%s subject=%s\n%s", self.sender, to, subject, text)

    def send_otp_email(self, email: str, code: str, ttl_minutes: int):
        text = (
            f"Your Uni Feedback sign-in code is {code}.\n\n"
            f"It expires in {ttl_minutes} minutes. If you didn't request it, ignore this email."
        )
        self.send(email, f"Your Uni Feedback code: {code}", text)

    def send_magic_link_email(self, email: str, token: str):
        link = f"{settings.WEBSITE_URL}/auth/verify?token={token}"
        text = f"Click the link below to sign in to Uni Feedback:\n{link}\n\nThis link expires in 15 minutes."
        self.send(email, "Sign in to Uni Feedback", text)

    def send_password_reset_email(self, email: str, username: str, token: str):
        link = f"{settings.DASHBOARD_URL}/reset-password?token={token}"
        text = (
            f"Hi {username},\n\n"
            "You requested to reset your password for the Uni Feedback admin dashboard.\n\n"
            f"Reset it here:\n{link}\n\n"
            "This link expires in 24 hours. If you didn't request this, please ignore this email."
        )
        self.send(email, "Uni Feedback Admin Dashboard - Reset Your Password", text)

    def send_invitation_email(self, email: str, token: str):
        link = f"{settings.DASHBOARD_URL}/create-account?token={token}"
        text = (
            "Hi there,\n\n"
            "You've been invited to join the Uni Feedback Admin Dashboard.\n\n"
            f"Create your account here:\n{link}\n\n"
            "This link expires in 7 days."
        )
        self.send(email, "Invitation to Uni Feedback Admin Dashboard", text)

    def send_feedback_unapproved_email(self, email: str, course_name: str, message: str):
        text = (
            f"Your feedback for {course_name} was removed from public view by a moderator.\n\n"
            f"Message from the moderator:\n{message}\n\n"
            "You can edit your feedback and it will be reviewed again."
        )
        self.send(email, "Your Uni Feedback review needs changes", text)
