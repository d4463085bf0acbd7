"""
Email Templates - HTML emails for ticket lifecycle notifications

Every payload value is HTML-escaped before it is placed in markup.
"""
from html import escape
from typing import Dict, Any, Optional

from ..domain.enums import NotificationTemplateKey
from ..utils.time import format_display


STATUS_COLORS = {
    "Open": "#3B82F6",
    "In Progress": "#F59E0B",
    "Resolved": "#10B981",
    "Closed": "#6B7280",
}

DESCRIPTION_EXCERPT_LENGTH = 200


def status_color(status: str) -> str:
    return STATUS_COLORS.get(status, "#6B7280")


def short_ticket_ref(ticket_id: str) -> str:
    """Last six characters, as shown to customers (#a1b2c3)"""
    return f"#{ticket_id[-6:]}" if ticket_id else ""


def excerpt(text: str, length: int = DESCRIPTION_EXCERPT_LENGTH) -> str:
    if len(text) <= length:
        return text
    return f"{text[:length]}..."


def _field(payload: Dict[str, Any], key: str, default: str = "") -> str:
    """Escaped payload value"""
    value = payload.get(key)
    return escape(str(value)) if value not in (None, "") else escape(default)


# =============================================================================
# Base Template Wrapper
# =============================================================================

def get_base_template(
    content: str,
    action_button_text: Optional[str] = None,
    action_button_url: Optional[str] = None,
    accent_color: str = "#3B82F6"
) -> str:
    """Shared email frame: heading color, action button and footer"""

    button_html = ""
    if action_button_text and action_button_url:
        button_html = f'''
        <p style="margin-top: 30px;">
            <a href="{escape(action_button_url, quote=True)}"
               style="background-color: {accent_color}; color: #ffffff; padding: 10px 20px;
                      text-decoration: none; border-radius: 5px; font-family: Arial, sans-serif;">
                {action_button_text}
            </a>
        </p>
        '''

    return f'''
<!DOCTYPE html>
<html>
<head>
    <meta http-equiv="Content-Type" content="text/html; charset=UTF-8" />
    <meta name="viewport" content="width=device-width, initial-scale=1.0" />
    <title>QuickDesk</title>
</head>
<body style="margin: 0; padding: 0; background-color: #F8FAFC;">
    <div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto; padding: 24px; background-color: #ffffff;">
        {content}
        {button_html}
        <p style="color: #6B7280; font-size: 12px; margin-top: 30px;">
            This is an automated email from QuickDesk Support System.
        </p>
    </div>
</body>
</html>
'''


# =============================================================================
# Info Card Component
# =============================================================================

def get_info_card(
    ticket_id: str,
    heading: str = "Ticket Details",
    fields: Optional[Dict[str, str]] = None
) -> str:
    """Grey details box; field values must already be escaped"""

    rows = f'<p><strong>Ticket ID:</strong> {escape(short_ticket_ref(ticket_id))}</p>'
    for label, value in (fields or {}).items():
        rows += f'\n            <p><strong>{label}:</strong> {value}</p>'

    return f'''
        <div style="background-color: #F3F4F6; padding: 20px; border-radius: 8px; margin: 20px 0;">
            <h3 style="margin-top: 0;">{heading}</h3>
            {rows}
        </div>
    '''


def get_quote_block(title: str, text: str, border_color: str = "#3B82F6") -> str:
    """Left-bordered block for comment text or a description excerpt"""
    return f'''
        <div style="background-color: #FFFFFF; border-left: 4px solid {border_color}; padding: 15px; margin: 20px 0;">
            <p><strong>{title}</strong></p>
            <p style="margin: 10px 0;">{text}</p>
        </div>
    '''


# =============================================================================
# Individual Templates
# =============================================================================

def get_ticket_created_template(payload: Dict[str, Any], app_url: str = "") -> Dict[str, str]:
    """Template: Ticket Created - Confirmation to the creator"""

    ticket_id = payload.get("ticket_id", "")
    subject = _field(payload, "ticket_subject")

    info_card = get_info_card(ticket_id, fields={
        "Subject": subject,
        "Status": _field(payload, "status"),
        "Priority": _field(payload, "priority"),
        "Category": _field(payload, "category_name", "N/A"),
        "Created": escape(format_display(payload.get("created_at"))),
    })

    content = f'''
        <h2 style="color: #3B82F6;">New Support Ticket Created</h2>
        <p>Hello {_field(payload, "recipient_name")},</p>
        <p>Your support ticket has been created successfully.</p>
        {info_card}
        <p>We'll get back to you as soon as possible.</p>
    '''

    body = get_base_template(
        content=content,
        action_button_text="View Ticket",
        action_button_url=f"{app_url}/tickets/{ticket_id}"
    )

    return {
        "subject": f"New Ticket Created: {payload.get('ticket_subject', '')}",
        "body": body
    }


def get_ticket_updated_template(payload: Dict[str, Any], app_url: str = "") -> Dict[str, str]:
    """Template: Ticket Updated - To the creator, naming who changed it"""

    ticket_id = payload.get("ticket_id", "")
    status = payload.get("status", "")

    fields = {
        "Subject": _field(payload, "ticket_subject"),
        "Status": f'<span style="color: {status_color(status)};">{escape(status)}</span>',
        "Priority": _field(payload, "priority"),
    }
    if payload.get("assignee_name"):
        fields["Assigned to"] = _field(payload, "assignee_name")
    fields["Updated"] = escape(format_display(payload.get("updated_at")))

    content = f'''
        <h2 style="color: #3B82F6;">Ticket Updated</h2>
        <p>Hello {_field(payload, "recipient_name")},</p>
        <p>Your support ticket has been updated by {_field(payload, "actor_name", "a support agent")}.</p>
        {get_info_card(ticket_id, fields=fields)}
    '''

    body = get_base_template(
        content=content,
        action_button_text="View Ticket",
        action_button_url=f"{app_url}/tickets/{ticket_id}",
        accent_color=status_color(status)
    )

    return {
        "subject": f"Ticket Updated: {payload.get('ticket_subject', '')}",
        "body": body
    }


def get_comment_added_template(payload: Dict[str, Any], app_url: str = "") -> Dict[str, str]:
    """Template: Comment Added - To the other party on the ticket"""

    ticket_id = payload.get("ticket_id", "")
    author = _field(payload, "actor_name", "Someone")

    content = f'''
        <h2 style="color: #3B82F6;">New Comment Added</h2>
        <p>Hello {_field(payload, "recipient_name")},</p>
        <p>{author} has added a new comment to your ticket.</p>
        {get_info_card(ticket_id, heading=f"Ticket: {_field(payload, 'ticket_subject')}")}
        {get_quote_block(f"{author} wrote:", _field(payload, "comment_text"))}
    '''

    body = get_base_template(
        content=content,
        action_button_text="View Ticket &amp; Reply",
        action_button_url=f"{app_url}/tickets/{ticket_id}"
    )

    return {
        "subject": f"New Comment on Ticket: {payload.get('ticket_subject', '')}",
        "body": body
    }


def get_ticket_assigned_template(payload: Dict[str, Any], app_url: str = "") -> Dict[str, str]:
    """Template: Ticket Assigned - To the new assignee"""

    ticket_id = payload.get("ticket_id", "")

    info_card = get_info_card(ticket_id, fields={
        "Subject": _field(payload, "ticket_subject"),
        "Priority": _field(payload, "priority"),
        "Created by": _field(payload, "created_by_name", "N/A"),
        "Category": _field(payload, "category_name", "N/A"),
    })
    description = escape(excerpt(str(payload.get("description", ""))))

    content = f'''
        <h2 style="color: #3B82F6;">New Ticket Assigned</h2>
        <p>Hello {_field(payload, "recipient_name")},</p>
        <p>A new ticket has been assigned to you.</p>
        {info_card}
        {get_quote_block("Description:", description, border_color="#6B7280")}
    '''

    body = get_base_template(
        content=content,
        action_button_text="View Ticket",
        action_button_url=f"{app_url}/tickets/{ticket_id}"
    )

    return {
        "subject": f"Ticket Assigned: {payload.get('ticket_subject', '')}",
        "body": body
    }


TEMPLATE_REGISTRY = {
    NotificationTemplateKey.TICKET_CREATED: get_ticket_created_template,
    NotificationTemplateKey.TICKET_UPDATED: get_ticket_updated_template,
    NotificationTemplateKey.COMMENT_ADDED: get_comment_added_template,
    NotificationTemplateKey.TICKET_ASSIGNED: get_ticket_assigned_template,
}


def get_email_template(
    template_key: str,
    payload: Dict[str, Any],
    app_url: str = ""
) -> Dict[str, str]:
    """
    Get rendered email template by key

    Args:
        template_key: Template identifier (from NotificationTemplateKey)
        payload: Data to populate the template
        app_url: Base URL for action buttons

    Returns:
        Dict with 'subject' and 'body' keys

    Raises:
        ValueError: Unknown template key
    """
    key = NotificationTemplateKey(template_key)
    return TEMPLATE_REGISTRY[key](payload, app_url)
