from html import escape
from typing import Any, Callable, Dict, Mapping, Tuple

from email_bulk import derive_text_from_html

SIGNATURE_HTML = "<p style=\"margin-bottom: 0;\">Regards,<br><strong>Dance Entry Office</strong></p>"
SIGNATURE_TEXT = "Regards,\nDance Entry Office\n"


class UnknownTemplateError(KeyError):
    pass


def _wrap(title: str, body: str) -> str:
    return f"""
    <html>
      <body style="font-family: Arial, sans-serif; line-height: 1.6; color: #1b1f24;">
        <div style="max-width: 600px; margin: 0 auto; padding: 24px; border: 1px solid #e6e6e6; border-radius: 12px;">
          <h1 style="margin-top: 0; color: #333;">{title}</h1>
          {body}
          <hr style="border: none; border-top: 1px solid #e6e6e6; margin: 24px 0;" />
          {SIGNATURE_HTML}
        </div>
      </body>
    </html>
    """


def _value(data: Mapping[str, Any], key: str, default: str = "") -> str:
    value = data.get(key)
    if value is None or value == "":
        return escape(default)
    return escape(str(value))


def _entry_confirmation(data: Mapping[str, Any]) -> str:
    return _wrap("Entry confirmation", f"""
          <p>Hello {_value(data, "name")},</p>
          <p>We have received your entry with the following details:</p>
          <ul>
            <li>Dance style: {_value(data, "dance_style")}</li>
            <li>Team: {_value(data, "team_name", "Individual entry")}</li>
            <li>Entry ID: {_value(data, "entry_id")}</li>
          </ul>
          <p>Please contact us if anything looks wrong.</p>
    """)


def _selection_result(data: Mapping[str, Any]) -> str:
    selected = data.get("result") == "selected"
    background = "#e6f7ff" if selected else "#fff1f0"
    color = "#1890ff" if selected else "#ff4d4f"
    heading = "You have been selected" if selected else "Selection result"
    return _wrap("Selection result", f"""
          <p>Hello {_value(data, "name")},</p>
          <p>The selection results are now available.</p>
          <div style="padding: 20px; background-color: {background}; border-radius: 8px; margin: 20px 0;">
            <h2 style="color: {color};">{heading}</h2>
            <p>{_value(data, "message")}</p>
          </div>
          <p>Thank you for taking part.</p>
    """)


def _deadline_reminder(data: Mapping[str, Any]) -> str:
    return _wrap("Deadline reminder", f"""
          <p>Hello {_value(data, "name")},</p>
          <p>The following submission deadline is approaching:</p>
          <div style="padding: 15px; background-color: #fff7e6; border-left: 4px solid #ffa940; margin: 20px 0;">
            <p><strong>{_value(data, "item_name")}</strong></p>
            <p>Deadline: {_value(data, "deadline")}</p>
          </div>
          <p>Please submit it as soon as possible.</p>
    """)


def _welcome(data: Mapping[str, Any]) -> str:
    url = _value(data, "setup_url")
    return _wrap("Welcome", f"""
          <p>Hello {_value(data, "name")},</p>
          <p>An account has been created for you on the dance entry system.</p>
          <p>Use the button below to set your password and sign in.</p>
          <p style="text-align: center; margin: 24px 0;">
            <a href="{url}" style="display:inline-block;padding:12px 18px;background:#11131a;color:#fff;text-decoration:none;border-radius:6px;">Set password</a>
          </p>
          <p>If the button doesn't work, copy and paste this URL into your browser:</p>
          <p style="word-break: break-all;">{url}</p>
    """)


BUILTIN_TEMPLATES: Dict[str, Callable[[Mapping[str, Any]], str]] = {
    "entry-confirmation": _entry_confirmation,
    "selection-result": _selection_result,
    "deadline-reminder": _deadline_reminder,
    "welcome": _welcome,
}


def render_builtin_template(template_id: str, data: Mapping[str, Any]) -> str:
    builder = BUILTIN_TEMPLATES.get(template_id)
    if builder is None:
        raise UnknownTemplateError(template_id)
    return builder(data or {})


def build_welcome_email(name: str, setup_url: str) -> Tuple[str, str, str]:
    subject = "Your dance entry account is ready"
    html = render_builtin_template("welcome", {"name": name, "setup_url": setup_url})
    return subject, html, derive_text_from_html(html)


def build_reset_email(reset_url: str, validity_minutes: int = 30) -> Tuple[str, str, str]:
    subject = "Reset your dance entry password"
    text = (
        "Hello,\n\n"
        "We received a request to reset your password. Use the link below to proceed:\n"
        f"{reset_url}\n\n"
        f"This link is valid for {validity_minutes} minutes.\n\n"
        "If you did not request this, you can safely ignore this email.\n\n"
        f"{SIGNATURE_TEXT}"
    )
    url = escape(reset_url)
    html = _wrap("Reset your password", f"""
          <p>Hello,</p>
          <p>We received a request to reset your password. Click the button below to continue.</p>
          <p style="text-align: center; margin: 24px 0;">
            <a href="{url}" style="display:inline-block;padding:12px 18px;background:#11131a;color:#fff;text-decoration:none;border-radius:6px;">Reset Password</a>
          </p>
          <p>This reset link is valid for <strong>{validity_minutes} minutes</strong>.</p>
          <p>If the button doesn't work, copy and paste this URL into your browser:</p>
          <p style="word-break: break-all;">{url}</p>
    """)
    return subject, html, text
