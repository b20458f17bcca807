"""
Transactional email for subscription lifecycle notices.

Messages are rendered from Jinja2 templates and delivered over SMTP. With
``EMAIL_ENABLED=false`` the rendered message is only logged.
"""

import logging
import math
import smtplib
import ssl
from dataclasses import dataclass
from datetime import datetime
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from enum import Enum
from typing import Any, Dict, Optional

from jinja2 import Template

from academy.core.config import settings
from academy.models.subscription import UserSubscription


class EmailTemplate(str, Enum):
    SUBSCRIPTION_EXPIRING_SOON = "subscription-expiring-soon"
    SUBSCRIPTION_EXPIRED = "subscription-expired"


@dataclass
class EmailMessage:
    to_email: str
    subject: str
    template: EmailTemplate
    data: Dict[str, Any]
    html_content: str
    text_content: str


_LAYOUT_STYLE = """
    body { font-family: Arial, sans-serif; line-height: 1.6; color: #333; }
    .container { max-width: 600px; margin: 0 auto; padding: 20px; }
    .header { background: #3b82f6; color: white; padding: 20px; text-align: center; }
    .content { background: #f9fafb; padding: 30px; }
    .button { display: inline-block; background: #3b82f6; color: white; padding: 12px 24px;
              text-decoration: none; border-radius: 4px; margin: 20px 0; }
    .footer { text-align: center; padding: 20px; color: #6b7280; font-size: 12px; }
"""

HTML_TEMPLATES = {
    EmailTemplate.SUBSCRIPTION_EXPIRING_SOON: """
<!DOCTYPE html>
<html>
<head><style>{{ style }}</style></head>
<body>
    <div class="container">
        <div class="header"><h1>Your subscription expires soon</h1></div>
        <div class="content">
            <h2>Hi {{ firstName or 'there' }},</h2>
            <p>Your <strong>{{ planName }}</strong> subscription expires in
               {{ daysUntilExpiration }} day{{ '' if daysUntilExpiration == 1 else 's' }}, on {{ expirationDate }}.</p>
            <p>Renew now to keep access to your courses, live sessions and community.</p>
            <a href="{{ renewalUrl }}" class="button">Renew Subscription</a>
        </div>
        <div class="footer"><p>This is an automated message from Trading Academy.</p></div>
    </div>
</body>
</html>
""",
    EmailTemplate.SUBSCRIPTION_EXPIRED: """
<!DOCTYPE html>
<html>
<head><style>{{ style }}</style></head>
<body>
    <div class="container">
        <div class="header"><h1>Your subscription has expired</h1></div>
        <div class="content">
            <h2>Hi {{ firstName or 'there' }},</h2>
            <p>Your <strong>{{ planName }}</strong> subscription expired on {{ expirationDate }}.
               Your account has been moved to the Free plan.</p>
            <a href="{{ renewalUrl }}" class="button">Renew Subscription</a>
        </div>
        <div class="footer"><p>This is an automated message from Trading Academy.</p></div>
    </div>
</body>
</html>
""",
}

TEXT_TEMPLATES = {
    EmailTemplate.SUBSCRIPTION_EXPIRING_SOON: (
        "Hi {{ firstName or 'there' }},\n\n"
        "Your {{ planName }} subscription expires in {{ daysUntilExpiration }} days, on {{ expirationDate }}.\n"
        "Renew here: {{ renewalUrl }}\n"
    ),
    EmailTemplate.SUBSCRIPTION_EXPIRED: (
        "Hi {{ firstName or 'there' }},\n\n"
        "Your {{ planName }} subscription expired on {{ expirationDate }} and your account is now on the Free plan.\n"
        "Renew here: {{ renewalUrl }}\n"
    ),
}


def renewal_url() -> str:
    return f"{settings.app_url.rstrip('/')}/subscription?renewal=true"


def days_until(period_end: datetime, now: datetime) -> int:
    """Whole days left until ``period_end``, rounded up"""
    return math.ceil((period_end - now).total_seconds() / 86400)


class EmailService:
    def __init__(self):
        self.logger = logging.getLogger(__name__)

    def render(self, template: EmailTemplate, data: Dict[str, Any]) -> tuple[str, str]:
        context = dict(data, style=_LAYOUT_STYLE)
        html = Template(HTML_TEMPLATES[template], autoescape=True).render(**context)
        text = Template(TEXT_TEMPLATES[template]).render(**context)
        return html, text

    def build_message(self, to_email: str, subject: str, template: EmailTemplate, data: Dict[str, Any]) -> EmailMessage:
        html, text = self.render(template, data)
        return EmailMessage(
            to_email=to_email,
            subject=subject,
            template=template,
            data=data,
            html_content=html,
            text_content=text,
        )

    def send_email(self, to_email: str, subject: str, template: EmailTemplate, data: Dict[str, Any]) -> bool:
        """Render and deliver one message; returns False if delivery failed"""
        self.logger.info(f"send_email: Entry - to: {to_email}, template: {template.value}")

        message = self.build_message(to_email, subject, template, data)

        if not settings.email_enabled:
            self.logger.warning(f"send_email: Email disabled, not sending '{subject}' to {to_email}")
            return True

        try:
            self._deliver(message)
            self.logger.info(f"send_email: Success - to: {to_email}, subject: {subject}")
            return True
        except (smtplib.SMTPException, OSError) as e:
            self.logger.error(f"send_email: Failure - {e}")
            return False

    def _deliver(self, message: EmailMessage):
        mime = MIMEMultipart("alternative")
        mime["Subject"] = message.subject
        mime["From"] = settings.smtp_from
        mime["To"] = message.to_email
        mime.attach(MIMEText(message.text_content, "plain"))
        mime.attach(MIMEText(message.html_content, "html"))

        context = ssl.create_default_context()
        if settings.smtp_secure:
            with smtplib.SMTP_SSL(settings.smtp_host, settings.smtp_port, context=context, timeout=30) as server:
                self._login_and_send(server, mime, message.to_email)
        else:
            with smtplib.SMTP(settings.smtp_host, settings.smtp_port, timeout=30) as server:
                server.starttls(context=context)
                self._login_and_send(server, mime, message.to_email)

    def _login_and_send(self, server: smtplib.SMTP, mime: MIMEMultipart, to_email: str):
        if settings.smtp_user:
            server.login(settings.smtp_user, settings.smtp_pass)
        server.sendmail(settings.smtp_from, [to_email], mime.as_string())

    def send_expiration_reminder(self, subscription: UserSubscription, now: Optional[datetime] = None) -> bool:
        """Warn a user that their subscription period is about to end"""
        now = now or datetime.utcnow()
        user = subscription.user
        plan = subscription.plan
        days = days_until(subscription.current_period_end, now)

        return self.send_email(
            to_email=user.email,
            subject=f"Your Trading Academy subscription expires in {days} days",
            template=EmailTemplate.SUBSCRIPTION_EXPIRING_SOON,
            data={
                'firstName': user.first_name,
                'planName': plan.display_name,
                'expirationDate': subscription.current_period_end.strftime('%Y-%m-%d'),
                'daysUntilExpiration': days,
                'renewalUrl': renewal_url(),
            },
        )

    def send_expiration_notice(self, subscription: UserSubscription) -> bool:
        """Tell a user their paid period ended and they are on the free plan"""
        user = subscription.user
        plan = subscription.plan
        period_end = subscription.current_period_end

        return self.send_email(
            to_email=user.email,
            subject="Your Trading Academy Subscription Has Expired",
            template=EmailTemplate.SUBSCRIPTION_EXPIRED,
            data={
                'firstName': user.first_name,
                'planName': plan.display_name,
                'expirationDate': period_end.strftime('%Y-%m-%d') if period_end else 'Unknown',
                'renewalUrl': renewal_url(),
            },
        )
