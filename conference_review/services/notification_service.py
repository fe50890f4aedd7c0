"""
Notification Service

Decision notifier plus the best-effort author/reviewer mails.

The mail collaborator receives an EmailMessage (to, subject, template,
variables). Decision mails are sent only after the status transition has
been committed; a failing provider surfaces as NotificationFailedError and
never undoes the decision. Receipt and assignment mails are best-effort:
failures are logged and swallowed.
"""
import asyncio
import logging
import smtplib
from dataclasses import dataclass, field
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from pathlib import Path
from typing import Any, Dict, Optional

from jinja2 import Environment, FileSystemLoader, select_autoescape
from sqlalchemy.ext.asyncio import AsyncSession
from tenacity import Retrying, stop_after_attempt, wait_exponential

from conference_review.config.settings import settings
from conference_review.errors import NotificationFailedError
from conference_review.orm.assignment import ReviewAssignment
from conference_review.orm.submission import Submission
from conference_review.orm.user import User
from conference_review.state_machines.submission_state import Decision, normalize_decision

logger = logging.getLogger(__name__)

TEMPLATES_DIR = Path(__file__).resolve().parent.parent / "templates"

DECISION_TEMPLATES = {
    Decision.ACCEPT: "decision_accept.html",
    Decision.REJECT: "decision_reject.html",
}

DECISION_LABELS = {
    Decision.ACCEPT: "Accepted",
    Decision.REJECT: "Rejected",
}


@dataclass
class EmailMessage:
    """Payload handed to the mail collaborator."""
    to: str
    subject: str
    template: str
    variables: Dict[str, Any] = field(default_factory=dict)


class EmailDeliveryError(Exception):
    """Raised by senders when the provider refuses or cannot be reached."""
    pass


class TemplateRenderer:
    def __init__(self, templates_dir: Path = TEMPLATES_DIR):
        self._jinja = Environment(
            loader=FileSystemLoader(str(templates_dir)),
            autoescape=select_autoescape(["html", "xml"]),
        )

    def render(self, template_name: str, variables: Dict[str, Any]) -> str:
        return self._jinja.get_template(template_name).render(**variables)


class EmailSender:
    """Mail collaborator interface."""

    async def send(self, message: EmailMessage) -> None:
        raise NotImplementedError


class LoggingEmailSender(EmailSender):
    """Used when SMTP is not configured: render and log, deliver nothing."""

    def __init__(self, renderer: Optional[TemplateRenderer] = None):
        self.renderer = renderer or TemplateRenderer()

    async def send(self, message: EmailMessage) -> None:
        html = self.renderer.render(message.template, message.variables)
        logger.info(
            f"[MAIL SKIPPED] SMTP not configured; to={message.to} "
            f"subject={message.subject!r} template={message.template}"
        )
        logger.debug(f"[MAIL BODY] to={message.to}\n{html}")


class SmtpEmailSender(EmailSender):
    """Renders the template and delivers over SMTP from a worker thread."""

    def __init__(
        self,
        *,
        host: str,
        port: int = 587,
        from_email: str,
        user: Optional[str] = None,
        password: Optional[str] = None,
        use_starttls: bool = True,
        timeout: int = 30,
        max_attempts: int = 3,
        renderer: Optional[TemplateRenderer] = None,
    ):
        self.host = host
        self.port = port
        self.from_email = from_email
        self.user = user
        self.password = password
        self.use_starttls = use_starttls
        self.timeout = timeout
        self.max_attempts = max_attempts
        self.renderer = renderer or TemplateRenderer()

    @classmethod
    def from_settings(cls) -> "SmtpEmailSender":
        return cls(
            host=settings.SMTP_HOST,
            port=settings.SMTP_PORT,
            from_email=settings.EMAIL_FROM,
            user=settings.SMTP_USER,
            password=settings.SMTP_PASSWORD,
            use_starttls=settings.SMTP_USE_STARTTLS,
            timeout=settings.SMTP_TIMEOUT_SECONDS,
        )

    async def send(self, message: EmailMessage) -> None:
        html = self.renderer.render(message.template, message.variables)
        try:
            await asyncio.to_thread(self._send_with_retry, message.to, message.subject, html)
        except (smtplib.SMTPException, OSError) as e:
            raise EmailDeliveryError(f"SMTP delivery to {message.to} failed: {e}") from e

    def _send_with_retry(self, to_email: str, subject: str, html_body: str) -> None:
        retrying = Retrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=1, min=2, max=10),
            reraise=True,
        )
        for attempt in retrying:
            with attempt:
                self._deliver(to_email, subject, html_body)

    def _deliver(self, to_email: str, subject: str, html_body: str) -> None:
        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = self.from_email
        msg["To"] = to_email
        msg.attach(MIMEText(html_body, "html", "utf-8"))

        with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as server:
            if self.use_starttls:
                server.starttls()
            if self.user and self.password:
                server.login(self.user, self.password)
            server.sendmail(self.from_email, [to_email], msg.as_string())


def get_email_sender() -> EmailSender:
    if settings.smtp_configured():
        return SmtpEmailSender.from_settings()
    return LoggingEmailSender()


def _base_variables(recipient: User) -> Dict[str, Any]:
    return {
        "recipient_name": recipient.full_name or recipient.email,
        "portal_name": settings.PORTAL_NAME,
        "frontend_url": settings.FRONTEND_URL,
    }


class DecisionNotifier:
    """
    Builds fixed-template mails for lifecycle events and hands them to
    the configured EmailSender.
    """

    def __init__(self, sender: Optional[EmailSender] = None):
        self.sender = sender or get_email_sender()

    # ================= DECISIONS =================

    def build_decision_message(
        self,
        submission: Submission,
        recipient: User,
        decision: Decision,
        comments: Optional[str] = None
    ) -> EmailMessage:
        decision = normalize_decision(decision)
        if decision not in DECISION_TEMPLATES:
            raise ValueError(f"No decision mail for {decision!r}")

        label = DECISION_LABELS[decision]
        variables = {
            **_base_variables(recipient),
            "submission_id": submission.id,
            "submission_title": submission.title,
            "event_id": submission.event_id,
            "decision": decision.value,
            "decision_label": label,
            "comments": (comments or "").strip() or None,
            "submission_url": f"{settings.FRONTEND_URL}/my-submissions",
        }
        return EmailMessage(
            to=recipient.email,
            subject=f"Decision on your submission \"{submission.title}\": {label}",
            template=DECISION_TEMPLATES[decision],
            variables=variables,
        )

    async def notify_decision(
        self,
        db: AsyncSession,
        submission: Submission,
        decision: Decision,
        comments: Optional[str] = None
    ) -> Optional[EmailMessage]:
        """
        Send the accept/reject mail to the submission owner.

        Raises:
            NotificationFailedError: owner has no address, or the sender failed.
                The submission's status is already persisted at this point.
        """
        decision = normalize_decision(decision)
        if not settings.EMAIL_NOTIFICATIONS_ENABLED:
            logger.info(f"[NOTIFY SKIPPED] notifications disabled; submission={submission.id}")
            return None

        owner = await db.get(User, submission.owner_id)
        if owner is None or not owner.email:
            logger.error(f"[NOTIFY FAILED] submission={submission.id}: owner has no email address")
            raise NotificationFailedError(
                "Decision saved, but the submission owner has no email address",
                submission=submission,
                decision=decision.value if decision else None,
            )

        message = self.build_decision_message(submission, owner, decision, comments)
        try:
            await self.sender.send(message)
        except Exception as e:
            logger.exception(
                f"[NOTIFY FAILED] submission={submission.id} decision={decision.value} to={owner.email}"
            )
            raise NotificationFailedError(
                f"Decision saved, but the notification could not be sent: {e}",
                submission=submission,
                decision=decision.value,
            ) from e

        logger.info(f"[NOTIFY SENT] submission={submission.id} decision={decision.value} to={owner.email}")
        return message

    # ================= BEST-EFFORT MAILS =================

    async def notify_submission_received(self, db: AsyncSession, submission: Submission) -> bool:
        owner = await db.get(User, submission.owner_id)
        if owner is None or not owner.email:
            return False
        message = EmailMessage(
            to=owner.email,
            subject=f"Submission Received: {submission.title}",
            template="submission_received.html",
            variables={
                **_base_variables(owner),
                "submission_id": submission.id,
                "submission_title": submission.title,
                "event_id": submission.event_id,
            },
        )
        return await self._send_best_effort(message, f"submission={submission.id}")

    async def notify_reviewer_assignment(
        self,
        db: AsyncSession,
        assignment: ReviewAssignment,
        submission: Submission
    ) -> bool:
        reviewer = await db.get(User, assignment.reviewer_id)
        if reviewer is None or not reviewer.email:
            return False
        message = EmailMessage(
            to=reviewer.email,
            subject=f"Review Assignment: {submission.title}",
            template="reviewer_assignment.html",
            variables={
                **_base_variables(reviewer),
                "submission_id": submission.id,
                "submission_title": submission.title,
                "submission_abstract": submission.abstract,
                "event_id": submission.event_id,
                "due_date": assignment.due_date.strftime("%Y-%m-%d") if assignment.due_date else None,
                "review_url": f"{settings.FRONTEND_URL}/reviewer",
            },
        )
        return await self._send_best_effort(message, f"assignment={assignment.id}")

    async def _send_best_effort(self, message: EmailMessage, context: str) -> bool:
        if not settings.EMAIL_NOTIFICATIONS_ENABLED:
            return False
        try:
            await self.sender.send(message)
            return True
        except Exception as e:
            # Receipts and assignment mails never block the caller
            logger.warning(f"[MAIL FAILED] {context} template={message.template}: {e}")
            return False


_notifier: Optional[DecisionNotifier] = None


def get_decision_notifier() -> DecisionNotifier:
    global _notifier
    if _notifier is None:
        _notifier = DecisionNotifier()
    return _notifier
