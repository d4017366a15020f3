"""
Email service for sending transactional newsletter emails via SendGrid.

Campaigns go through mail_service; this module only handles one-off
messages such as the welcome email.
"""
import os
import logging
from sendgrid import SendGridAPIClient
from sendgrid.helpers.mail import Mail, Email, To, Content

from config import get_settings

logger = logging.getLogger(__name__)

# SendGrid configuration
SENDGRID_API_KEY = os.getenv("SENDGRID_API_KEY")
FROM_EMAIL = os.getenv("FROM_EMAIL", "no-reply@example.com")
FROM_NAME = os.getenv("FROM_NAME", "Newsletter")


def is_email_enabled() -> bool:
    """Check if email sending is enabled (API key is configured)."""
    return bool(SENDGRID_API_KEY)


def send_email(to_email: str, subject: str, html_content: str) -> bool:
    """
    Send an email via SendGrid.

    Returns True if sent successfully, False otherwise.
    """
    if not SENDGRID_API_KEY:
        logger.warning("SendGrid API key not configured - email not sent")
        return False

    try:
        message = Mail(
            from_email=Email(FROM_EMAIL, FROM_NAME),
            to_emails=To(to_email),
            subject=subject,
            html_content=Content("text/html", html_content),
        )

        sg = SendGridAPIClient(SENDGRID_API_KEY)
        response = sg.send(message)

        if response.status_code in (200, 201, 202):
            logger.info(f"Email sent successfully to {to_email}")
            return True
        else:
            logger.error(f"Failed to send email to {to_email}: {response.status_code}")
            return False

    except Exception as e:
        logger.error(f"Error sending email to {to_email}: {str(e)}")
        return False


def unsubscribe_url(token: str) -> str:
    """Public link to the unsubscribe confirmation page served by this API."""
    return f"{get_settings().api_base_url.rstrip('/')}/api/unsubscribe/{token}"


def send_welcome_email(first_name: str, email: str, unsubscribe_token: str = None) -> bool:
    """Send welcome email to a new subscriber."""
    name = first_name or "there"
    subject = f"Welcome to {FROM_NAME}, {name}!" if first_name else f"Welcome to {FROM_NAME}!"

    footer_link = ""
    if unsubscribe_token:
        footer_link = f'<p><a href="{unsubscribe_url(unsubscribe_token)}">Unsubscribe</a></p>'

    html_content = f"""
    <!DOCTYPE html>
    <html>
    <head>
        <style>
            body {{ font-family: Arial, sans-serif; line-height: 1.6; color: #333; margin: 0; padding: 0; }}
            .container {{ max-width: 600px; margin: 0 auto; padding: 20px; }}
            .header {{ background: #1a1a1a; padding: 30px; text-align: center; border-radius: 10px 10px 0 0; }}
            .header h1 {{ color: #ffffff; margin: 0; font-size: 26px; }}
            .content {{ background: #ffffff; padding: 30px; }}
            .footer {{ background: #1a1a1a; padding: 25px; text-align: center; border-radius: 0 0 10px 10px; }}
            .footer p {{ color: #999; font-size: 12px; margin: 5px 0; }}
            .footer a {{ color: #ffffff; }}
        </style>
    </head>
    <body>
        <div class="container">
            <div class="header">
                <h1>{FROM_NAME}</h1>
            </div>
            <div class="content">
                <h2 style="margin-top: 0;">Hi {name},</h2>
                <p>Thanks for subscribing. You'll hear from us whenever we have something worth sharing.</p>
                <p>If you didn't sign up, you can safely ignore this email.</p>
            </div>
            <div class="footer">
                <p>You're receiving this because you subscribed to {FROM_NAME}.</p>
                {footer_link}
            </div>
        </div>
    </body>
    </html>
    """

    return send_email(email, subject, html_content)
