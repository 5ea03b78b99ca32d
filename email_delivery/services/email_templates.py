"""
Email templates for customer and account notifications.

Each template is a pure function of a plain data dict returning the subject,
HTML body and plain-text body. Missing values render as empty strings.
Data keys are snake_case; the camelCase spelling (customerName, lineItems)
is accepted as well.
"""

from collections.abc import Callable
from dataclasses import dataclass
from html import escape
from typing import Any

from email_delivery.services.email_utils import generate_unsubscribe_link

COMPANY_NAME = "Fisher Backflows"
COMPANY_PHONE = "(253) 278-8692"
COMPANY_LOCATION = "Tacoma, WA"


class EmailTemplateId:
    TEST_REMINDER = "test-reminder"
    TEST_COMPLETE = "test-complete"
    INVOICE = "invoice"
    PAYMENT_RECEIVED = "payment-received"
    PAYMENT_FAILED = "payment-failed"
    APPOINTMENT_SCHEDULED = "appointment-scheduled"
    APPOINTMENT_REMINDER = "appointment-reminder"
    APPOINTMENT_CANCELLED = "appointment-cancelled"
    WELCOME = "welcome"
    PASSWORD_RESET = "password-reset"
    ACCOUNT_VERIFICATION = "account-verification"


@dataclass(frozen=True, slots=True)
class RenderedTemplate:
    subject: str
    html: str
    text: str


def _camel(key: str) -> str:
    head, *rest = key.split("_")
    return head + "".join(part.capitalize() for part in rest)


def _value(data: dict[str, Any], key: str) -> Any:
    if key in data:
        return data[key]
    return data.get(_camel(key))


def _raw(data: dict[str, Any], key: str) -> str:
    value = _value(data, key)
    return "" if value is None else str(value)


def _h(data: dict[str, Any], key: str) -> str:
    """HTML-escaped value."""
    return escape(_raw(data, key))


_BASE_STYLE = """
      body { font-family: Arial, sans-serif; line-height: 1.6; color: #333; }
      .container { max-width: 600px; margin: 0 auto; padding: 20px; }
      .header { background: %(color)s; color: white; padding: 20px; text-align: center; }
      .content { padding: 20px; background: #f4f4f4; }
      .button { display: inline-block; padding: 10px 20px; background: %(color)s; color: white; text-decoration: none; border-radius: 5px; }
      .footer { text-align: center; padding: 20px; color: #666; font-size: 12px; }
"""


def _layout(title: str, body: str, color: str = "#0066cc", footer: str = "") -> str:
    style = _BASE_STYLE % {"color": color}
    footer_html = footer or f"<p>{COMPANY_NAME} | {COMPANY_LOCATION} | {COMPANY_PHONE}</p>"
    return (
        "<!DOCTYPE html>\n"
        "<html>\n"
        f"  <head>\n    <style>{style}    </style>\n  </head>\n"
        "  <body>\n"
        '    <div class="container">\n'
        f'      <div class="header">\n        <h1>{COMPANY_NAME}</h1>\n        <p>{title}</p>\n      </div>\n'
        f'      <div class="content">\n{body}\n      </div>\n'
        f'      <div class="footer">\n        {footer_html}\n      </div>\n'
        "    </div>\n"
        "  </body>\n"
        "</html>\n"
    )


def _button(url: str, label: str) -> str:
    return f'<p style="text-align: center; margin: 30px 0;"><a href="{url}" class="button">{label}</a></p>'


def backflow_test_reminder_template(data: dict[str, Any]) -> RenderedTemplate:
    unsubscribe = ""
    unsubscribe_url = _raw(data, "unsubscribe_url")
    if not unsubscribe_url and _raw(data, "recipient"):
        unsubscribe_url = generate_unsubscribe_link(_raw(data, "recipient"))
    if unsubscribe_url:
        unsubscribe = (
            "<p>You're receiving this because you're a valued customer. "
            f'<a href="{escape(unsubscribe_url)}">Unsubscribe</a></p>'
        )
    body = f"""
        <h2>Hello {_h(data, "customer_name")},</h2>
        <p>This is a reminder that your backflow prevention device at <strong>{_h(data, "address")}</strong> is due for its annual test.</p>
        <p><strong>Device:</strong> {_h(data, "device_info")}</p>
        <p><strong>Last Test Date:</strong> {_h(data, "last_test_date")}</p>
        <p><strong>Due Date:</strong> {_h(data, "due_date")}</p>
        <p>To maintain compliance with water safety regulations, please schedule your test as soon as possible.</p>
        {_button(_h(data, "schedule_url"), "Schedule Test Online")}
        <p>Or call us at <strong>{COMPANY_PHONE}</strong></p>"""
    footer = f"<p>{COMPANY_NAME} | {COMPANY_LOCATION} | {COMPANY_PHONE}</p>{unsubscribe}"
    text = f"""{COMPANY_NAME} - Backflow Test Reminder

Hello {_raw(data, "customer_name")},

Your backflow prevention device at {_raw(data, "address")} is due for its annual test.

Device: {_raw(data, "device_info")}
Last Test Date: {_raw(data, "last_test_date")}
Due Date: {_raw(data, "due_date")}

Schedule online: {_raw(data, "schedule_url")}
Or call: {COMPANY_PHONE}

{COMPANY_NAME} | {COMPANY_LOCATION}
"""
    return RenderedTemplate(
        subject=f"Backflow Test Due - {_raw(data, 'customer_name')}",
        html=_layout("Your Backflow Test is Due", body, footer=footer),
        text=text,
    )


def backflow_test_complete_template(data: dict[str, Any]) -> RenderedTemplate:
    result = _raw(data, "test_result") or "Passed"
    body = f"""
        <h2>Hello {_h(data, "customer_name")},</h2>
        <p>Your backflow test at <strong>{_h(data, "address")}</strong> has been completed.</p>
        <p><strong>Test Date:</strong> {_h(data, "test_date")}</p>
        <p><strong>Result:</strong> {escape(result)}</p>
        <p><strong>Technician:</strong> {_h(data, "technician_name")}</p>
        {_button(_h(data, "report_url"), "View Your Report")}
        <p>Your next annual test will be due on {_h(data, "next_due_date")}.</p>
        <p>Thank you for choosing {COMPANY_NAME}!</p>"""
    text = f"""{COMPANY_NAME} - Backflow Test Complete

Hello {_raw(data, "customer_name")},

Your backflow test at {_raw(data, "address")} has been completed.

Test Date: {_raw(data, "test_date")}
Result: {result}
Technician: {_raw(data, "technician_name")}

View your report: {_raw(data, "report_url")}
Next test due: {_raw(data, "next_due_date")}
"""
    return RenderedTemplate(
        subject=f"Backflow Test Complete - {_raw(data, 'customer_name')}",
        html=_layout("Test Complete", body, color="#059669"),
        text=text,
    )


def _line_item_rows(items: list[dict[str, Any]]) -> str:
    return "".join(
        f"""
              <tr>
                <td>{_h(item, "description")}</td>
                <td>{_h(item, "quantity")}</td>
                <td>${_h(item, "price")}</td>
                <td>${_h(item, "total")}</td>
              </tr>"""
        for item in items
    )


def invoice_template(data: dict[str, Any]) -> RenderedTemplate:
    line_items = _value(data, "line_items") or []
    body = f"""
        <p>Invoice #{_h(data, "invoice_number")}<br>Date: {_h(data, "issue_date")}</p>
        <h3>Bill To:</h3>
        <p>{_h(data, "customer_name")}<br>{_h(data, "customer_address")}</p>
        <h3>Services:</h3>
        <table style="width: 100%; border-collapse: collapse;">
          <thead>
            <tr><th>Description</th><th>Quantity</th><th>Price</th><th>Total</th></tr>
          </thead>
          <tbody>{_line_item_rows(line_items)}
          </tbody>
          <tfoot>
            <tr><td colspan="3">Subtotal:</td><td>${_h(data, "subtotal")}</td></tr>
            <tr><td colspan="3">Tax:</td><td>${_h(data, "tax")}</td></tr>
            <tr style="font-weight: bold;"><td colspan="3">Total Due:</td><td>${_h(data, "total")}</td></tr>
          </tfoot>
        </table>
        {_button(_h(data, "payment_url"), "Pay Invoice Online")}
        <p><strong>Due Date:</strong> {_h(data, "due_date")}</p>
        <p>Thank you for your business!</p>"""
    text = f"""Invoice from {COMPANY_NAME}

Invoice #{_raw(data, "invoice_number")}
Date: {_raw(data, "issue_date")}
Due Date: {_raw(data, "due_date")}

Bill To: {_raw(data, "customer_name")}

Total Due: ${_raw(data, "total")}

Pay online: {_raw(data, "payment_url")}

Thank you for your business!
"""
    return RenderedTemplate(
        subject=f"Invoice #{_raw(data, 'invoice_number')} - {COMPANY_NAME}",
        html=_layout(f"Invoice #{_h(data, 'invoice_number')}", body),
        text=text,
    )


def payment_received_template(data: dict[str, Any]) -> RenderedTemplate:
    body = f"""
        <h2>Payment Confirmed</h2>
        <p>Hi {_h(data, "customer_name")},</p>
        <p>We've received your payment of <strong>${_h(data, "amount")}</strong>.</p>
        <p><strong>Invoice:</strong> #{_h(data, "invoice_number")}</p>
        <p><strong>Payment Date:</strong> {_h(data, "payment_date")}</p>
        <p><strong>Payment Method:</strong> {_h(data, "payment_method")}</p>
        <p>Thank you for your business!</p>"""
    text = f"""{COMPANY_NAME} - Payment Received

Hi {_raw(data, "customer_name")},

We've received your payment of ${_raw(data, "amount")}.

Invoice: #{_raw(data, "invoice_number")}
Payment Date: {_raw(data, "payment_date")}
Payment Method: {_raw(data, "payment_method")}

Thank you for your business!
"""
    return RenderedTemplate(
        subject=f"Payment Received - {COMPANY_NAME}",
        html=_layout("Payment Received", body, color="#059669"),
        text=text,
    )


def payment_failed_template(data: dict[str, Any]) -> RenderedTemplate:
    body = f"""
        <p>Dear {_h(data, "customer_name")},</p>
        <div style="background-color: #fef2f2; border: 1px solid #ef4444; padding: 15px; border-radius: 5px;">
          <strong>Your payment of ${_h(data, "amount")} could not be processed.</strong>
        </div>
        <p><strong>Reason:</strong> {_h(data, "failure_reason")}</p>
        <p>To avoid service interruption, please update your payment method as soon as possible.</p>
        {_button(_h(data, "payment_url"), "Update Payment Method")}"""
    text = f"""{COMPANY_NAME} - Payment Failed

Dear {_raw(data, "customer_name")},

Your payment of ${_raw(data, "amount")} could not be processed.
Reason: {_raw(data, "failure_reason")}

Update your payment method: {_raw(data, "payment_url")}
"""
    return RenderedTemplate(
        subject="Payment Failed - Action Required",
        html=_layout("Payment Failed", body, color="#ef4444"),
        text=text,
    )


def appointment_scheduled_template(data: dict[str, Any]) -> RenderedTemplate:
    body = f"""
        <h2>Appointment Confirmed</h2>
        <p>Dear {_h(data, "customer_name")},</p>
        <p>Your backflow testing appointment has been confirmed for:</p>
        <p><strong>Date:</strong> {_h(data, "date")}</p>
        <p><strong>Time:</strong> {_h(data, "time")}</p>
        <p><strong>Service:</strong> {_h(data, "service_type")}</p>
        <p><strong>Location:</strong> {_h(data, "address")}</p>
        <p>Our certified technician will arrive at the scheduled time. Please ensure the testing area is accessible.</p>
        <p>If you need to reschedule, call us at {COMPANY_PHONE}.</p>"""
    text = f"""{COMPANY_NAME} - Appointment Confirmed

Dear {_raw(data, "customer_name")},

Your backflow testing appointment has been confirmed for:
Date: {_raw(data, "date")}
Time: {_raw(data, "time")}
Service: {_raw(data, "service_type")}
Location: {_raw(data, "address")}

Need to reschedule? Call {COMPANY_PHONE}
"""
    return RenderedTemplate(
        subject=f"Appointment Confirmed - {_raw(data, 'date')} at {_raw(data, 'time')}",
        html=_layout("Appointment Confirmed", body, color="#1e40af"),
        text=text,
    )


def appointment_reminder_template(data: dict[str, Any]) -> RenderedTemplate:
    body = f"""
        <h2>Appointment Tomorrow</h2>
        <p>Hi {_h(data, "customer_name")},</p>
        <p>This is a reminder that your backflow test is scheduled for <strong>{_h(data, "date")}</strong> at <strong>{_h(data, "time")}</strong>.</p>
        <p><strong>Please ensure:</strong></p>
        <ul>
          <li>The testing area is clear and accessible</li>
          <li>Someone 18+ is present during testing</li>
          <li>Water shut-off valves are accessible</li>
        </ul>
        <p>Need to reschedule? Call us: <strong>{COMPANY_PHONE}</strong></p>"""
    text = f"""{COMPANY_NAME} - Appointment Reminder

Hi {_raw(data, "customer_name")},

Your backflow test is scheduled for {_raw(data, "date")} at {_raw(data, "time")}.

Please make sure the testing area and shut-off valves are accessible.
Need to reschedule? Call {COMPANY_PHONE}
"""
    return RenderedTemplate(
        subject=f"Reminder: Your {_raw(data, 'service_type') or 'backflow test'} appointment is tomorrow",
        html=_layout("Appointment Reminder", body, color="#d97706"),
        text=text,
    )


def appointment_cancelled_template(data: dict[str, Any]) -> RenderedTemplate:
    body = f"""
        <h2>Appointment Cancelled</h2>
        <p>Hi {_h(data, "customer_name")},</p>
        <p>Your appointment on <strong>{_h(data, "date")}</strong> at <strong>{_h(data, "time")}</strong> has been cancelled.</p>
        <p><strong>Reason:</strong> {_h(data, "reason")}</p>
        {_button(_h(data, "reschedule_url"), "Reschedule Online")}"""
    text = f"""{COMPANY_NAME} - Appointment Cancelled

Hi {_raw(data, "customer_name")},

Your appointment on {_raw(data, "date")} at {_raw(data, "time")} has been cancelled.
Reason: {_raw(data, "reason")}

Reschedule: {_raw(data, "reschedule_url")}
"""
    return RenderedTemplate(
        subject=f"Appointment Cancelled - {_raw(data, 'date')}",
        html=_layout("Appointment Cancelled", body, color="#6b7280"),
        text=text,
    )


def welcome_template(data: dict[str, Any]) -> RenderedTemplate:
    body = f"""
        <p>Dear {_h(data, "customer_name")},</p>
        <p>Thank you for choosing {COMPANY_NAME} for your backflow testing needs. Your account has been successfully created.</p>
        <p>You can now access your customer portal to:</p>
        <ul>
          <li>View your devices and test history</li>
          <li>Schedule appointments</li>
          <li>Access test reports and certificates</li>
          <li>Manage your billing</li>
        </ul>
        {_button(_h(data, "portal_url"), "Access Your Portal")}"""
    text = f"""Welcome to {COMPANY_NAME}!

Dear {_raw(data, "customer_name")},

Your account has been successfully created.
Access your portal: {_raw(data, "portal_url")}
"""
    return RenderedTemplate(
        subject=f"Welcome to {COMPANY_NAME} - {_raw(data, 'customer_name')}",
        html=_layout("Welcome", body, color="#0ea5e9"),
        text=text,
    )


def password_reset_template(data: dict[str, Any]) -> RenderedTemplate:
    body = f"""
        <h2>Password Reset Request</h2>
        <p>We received a request to reset your password for your {COMPANY_NAME} account.</p>
        {_button(_h(data, "reset_url"), "Reset Password")}
        <p>Or use this code:</p>
        <div style="font-size: 24px; font-weight: bold; color: #0066cc; padding: 10px; background: #f0f0f0; text-align: center;">{_h(data, "reset_code")}</div>
        <p>This link will expire in 1 hour.</p>
        <p>If you didn't request this, please ignore this email.</p>"""
    text = f"""Password Reset Request

Reset your password: {_raw(data, "reset_url")}
Or use code: {_raw(data, "reset_code")}

This link expires in 1 hour.
"""
    return RenderedTemplate(
        subject=f"Reset Your Password - {COMPANY_NAME}",
        html=_layout("Password Reset", body),
        text=text,
    )


def account_verification_template(data: dict[str, Any]) -> RenderedTemplate:
    body = f"""
        <h2>Verify Your Email Address</h2>
        <p>Hi {_h(data, "customer_name")},</p>
        <p>Please confirm your email address to activate your {COMPANY_NAME} account.</p>
        {_button(_h(data, "verification_url"), "Verify Email")}
        <p>Or enter this code: <strong>{_h(data, "verification_code")}</strong></p>
        <p>This link will expire in 24 hours.</p>"""
    text = f"""{COMPANY_NAME} - Verify Your Email

Hi {_raw(data, "customer_name")},

Verify your email: {_raw(data, "verification_url")}
Or enter code: {_raw(data, "verification_code")}

This link expires in 24 hours.
"""
    return RenderedTemplate(
        subject=f"Verify Your Email - {COMPANY_NAME}",
        html=_layout("Account Verification", body),
        text=text,
    )


TEMPLATES: dict[str, Callable[[dict[str, Any]], RenderedTemplate]] = {
    EmailTemplateId.TEST_REMINDER: backflow_test_reminder_template,
    EmailTemplateId.TEST_COMPLETE: backflow_test_complete_template,
    EmailTemplateId.INVOICE: invoice_template,
    EmailTemplateId.PAYMENT_RECEIVED: payment_received_template,
    EmailTemplateId.PAYMENT_FAILED: payment_failed_template,
    EmailTemplateId.APPOINTMENT_SCHEDULED: appointment_scheduled_template,
    EmailTemplateId.APPOINTMENT_REMINDER: appointment_reminder_template,
    EmailTemplateId.APPOINTMENT_CANCELLED: appointment_cancelled_template,
    EmailTemplateId.WELCOME: welcome_template,
    EmailTemplateId.PASSWORD_RESET: password_reset_template,
    EmailTemplateId.ACCOUNT_VERIFICATION: account_verification_template,
}


def has_template(template_id: str | None) -> bool:
    return bool(template_id) and template_id in TEMPLATES


def render_template(template_id: str, data: dict[str, Any] | None = None) -> RenderedTemplate | None:
    """Render a known template; unknown ids return None."""
    renderer = TEMPLATES.get(template_id)
    if renderer is None:
        return None
    return renderer(data or {})
