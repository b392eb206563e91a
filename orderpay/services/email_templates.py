"""Plain-text and HTML bodies for outbound notification emails."""

import json
from datetime import datetime
from html import escape
from typing import Any

_STYLE = """
body { font-family: Arial, sans-serif; line-height: 1.6; color: #333; max-width: 600px; margin: 0 auto; padding: 20px; }
.header { background: #f8f9fa; padding: 20px; border-radius: 8px; margin-bottom: 20px; }
.alert-critical { border-left: 4px solid #dc3545; }
.alert-high { border-left: 4px solid #fd7e14; }
.alert-medium { border-left: 4px solid #ffc107; }
.alert-low { border-left: 4px solid #28a745; }
.content { padding: 20px; background: #fff; border-radius: 8px; border: 1px solid #dee2e6; }
.footer { margin-top: 20px; padding: 20px; background: #f8f9fa; border-radius: 8px; font-size: 12px; color: #6c757d; }
.data-table { width: 100%; border-collapse: collapse; margin: 15px 0; }
.data-table th, .data-table td { border: 1px solid #ddd; padding: 8px; text-align: left; }
"""

# (heading, [(label, data key, default)])
_TABLES: dict[str, tuple[str, list[tuple[str, str, str]]]] = {
    "security_alert": (
        "Security Event Details",
        [
            ("Event Type", "event_type", "Unknown"),
            ("Risk Score", "risk_score", "0"),
            ("User ID", "user_id", "N/A"),
            ("Transaction ID", "transaction_id", "N/A"),
        ],
    ),
    "payment_notification": (
        "Payment Transaction Details",
        [
            ("Order Number", "order_number", "N/A"),
            ("Transaction ID", "transaction_id", "N/A"),
            ("Amount", "amount", "0.00"),
            ("Currency", "currency", ""),
            ("Status", "status", "Unknown"),
        ],
    ),
    "system_health": (
        "System Health Status",
        [("Health Score", "score", "0"), ("Status", "status", "Unknown")],
    ),
    "order_update": (
        "Order Status Update",
        [
            ("Order Number", "order_number", "N/A"),
            ("New Status", "status", "Unknown"),
            ("Customer", "customer_name", "N/A"),
            ("Email", "customer_email", "N/A"),
            ("Amount", "total_amount", "0.00"),
        ],
    ),
}


def _now() -> str:
    return datetime.utcnow().isoformat()


def render_text(email_type: str, data: dict[str, Any]) -> str:
    if email_type == "security_alert":
        return (
            f"Security Alert: {data.get('event_type')}\n\n"
            f"Risk Score: {data.get('risk_score')}/10\n"
            f"Time: {data.get('created_at') or _now()}\n"
            f"Details: {json.dumps(data.get('metadata', {}), indent=2, default=str)}\n\n"
            "Please review this alert and take appropriate action if necessary."
        )
    if email_type == "payment_notification":
        return (
            "Payment Notification\n\n"
            f"Order: {data.get('order_number')}\n"
            f"Transaction ID: {data.get('transaction_id')}\n"
            f"Amount: {data.get('amount')} {data.get('currency', '')}\n"
            f"Status: {data.get('status')}\n"
            f"Time: {data.get('created_at') or _now()}"
        )
    if email_type == "system_health":
        return (
            "System Health Alert\n\n"
            f"Health Score: {data.get('score')}/100\n"
            f"Status: {data.get('status')}\n"
            f"{data.get('message') or 'Please check the system monitoring dashboard for more details.'}"
        )
    if email_type == "order_update":
        return (
            "Order Update\n\n"
            f"Order: {data.get('order_number')}\n"
            f"Status: {data.get('status')}\n"
            f"Customer: {data.get('customer_name')}\n"
            f"Time: {data.get('updated_at') or _now()}\n\n"
            "The order status has been updated."
        )
    return f"Notification: {json.dumps(data, indent=2, default=str)}"


def _alert_class(email_type: str, data: dict[str, Any]) -> str:
    if email_type != "security_alert":
        return "alert-medium"
    risk = int(data.get("risk_score") or 0)
    if risk >= 8:
        return "alert-critical"
    if risk >= 6:
        return "alert-high"
    if risk >= 4:
        return "alert-medium"
    return "alert-low"


def render_html(email_type: str, data: dict[str, Any], subject: str) -> str:
    if email_type in _TABLES:
        heading, rows = _TABLES[email_type]
        cells = "".join(
            f"<tr><th>{escape(label)}</th><td>{escape(str(data.get(key) or default))}</td></tr>"
            for label, key, default in rows
        )
        body = f"<h2>{escape(heading)}</h2><table class=\"data-table\">{cells}</table>"
        if data.get("message"):
            body += f"<p><strong>Message:</strong> {escape(str(data['message']))}</p>"
    else:
        body = f"<h2>Notification Data</h2><pre>{escape(json.dumps(data, indent=2, default=str))}</pre>"
    return (
        "<!DOCTYPE html><html><head><meta charset=\"utf-8\">"
        f"<title>{escape(subject)}</title><style>{_STYLE}</style></head><body>"
        f"<div class=\"header {_alert_class(email_type, data)}\"><h1>{escape(subject)}</h1>"
        f"<p>Generated at: {_now()}</p></div>"
        f"<div class=\"content\">{body}</div>"
        "<div class=\"footer\"><p>This is an automated notification from MassRides.</p>"
        "<p>Please do not reply to this email.</p></div>"
        "</body></html>"
    )
