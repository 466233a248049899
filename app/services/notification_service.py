"""
Notification service for e-mail delivery.

Provides functions for:
- Sending e-mails through Resend
- Rendering campaign alert e-mails
- Sending the daily alert summary
"""

from html import escape
from typing import Optional

import httpx
import structlog

from app.config import settings
from app.models import ALERT_TYPE_LABELS, Alert, AlertPriority, AlertTypes, User

logger = structlog.get_logger()

RESEND_API_URL = "https://api.resend.com/emails"

PRIORITY_LABELS = {
    AlertPriority.CRITICAL: "🔴 CRÍTICO",
    AlertPriority.HIGH: "🟠 ALTO",
    AlertPriority.MEDIUM: "🟡 MÉDIO",
    AlertPriority.LOW: "🟢 BAIXO",
}

PRIORITY_COLORS = {
    AlertPriority.CRITICAL: "#dc2626",
    AlertPriority.HIGH: "#f59e0b",
    AlertPriority.MEDIUM: "#3b82f6",
    AlertPriority.LOW: "#6b7280",
}


def is_email_configured() -> bool:
    return bool(settings.resend_api_key)


# =============================================================================
# Email Delivery
# =============================================================================


async def send_email_notification(
    to_email: str,
    subject: str,
    html_content: str,
    text_content: Optional[str] = None,
) -> bool:
    """
    Send an email notification using Resend.

    Args:
        to_email: Recipient email
        subject: Email subject
        html_content: HTML email body
        text_content: Plain text email body (optional)

    Returns:
        True if sent successfully
    """
    if not settings.resend_api_key:
        logger.warning("email_notification_skipped", reason="no_resend_api_key", to=to_email)
        return False

    try:
        async with httpx.AsyncClient() as client:
            response = await client.post(
                RESEND_API_URL,
                headers={
                    "Authorization": f"Bearer {settings.resend_api_key}",
                    "Content-Type": "application/json",
                },
                json={
                    "from": settings.email_from,
                    "to": to_email,
                    "subject": subject,
                    "html": html_content,
                    "text": text_content,
                },
                timeout=10.0,
            )
            response.raise_for_status()

        logger.info("email_notification_sent", to=to_email, subject=subject)
        return True

    except httpx.HTTPError as e:
        logger.error("email_notification_failed", error=str(e), to=to_email)
        return False


# =============================================================================
# Templates
# =============================================================================


def format_currency(value: Optional[float]) -> str:
    """Brazilian real formatting, e.g. R$ 1.234,56."""
    formatted = f"{value or 0:,.2f}"
    return "R$ " + formatted.replace(",", "_").replace(".", ",").replace("_", ".")


def format_alert_value(value: Optional[float], alert_type: str) -> str:
    """Format an alert value the way its metric is usually read."""
    if value is None:
        return "N/A"
    if alert_type == AlertTypes.ROAS_DROP:
        return f"{value:.2f}x"
    if alert_type == AlertTypes.CPA_INCREASE:
        return format_currency(value)
    if alert_type in (AlertTypes.BUDGET_LOSS, AlertTypes.RANKING_LOSS, AlertTypes.CTR_DECLINE):
        return f"{value:.1f}%"
    if alert_type == AlertTypes.BURN_RATE:
        return f"{value * 100:.0f}%"
    return f"{value:.2f}"


def _base_template(title: str, content: str, footer: str) -> str:
    return f"""<!DOCTYPE html>
<html lang="pt-BR">
<head><meta charset="utf-8"><title>{escape(title)}</title></head>
<body style="font-family: Arial, sans-serif; background: #f3f4f6; padding: 24px;">
  <div style="max-width: 600px; margin: 0 auto; background: #ffffff; border-radius: 8px; padding: 24px;">
    <h1 style="color: #2563eb; font-size: 20px;">AdsOptimizer</h1>
    {content}
    <p style="color: #6b7280; font-size: 12px; margin-top: 32px;">{escape(footer)}</p>
  </div>
</body>
</html>"""


def _metric_cell(label: str, value: str) -> str:
    return (
        '<td style="text-align: center; padding: 8px;">'
        f'<div style="font-size: 20px; font-weight: bold;">{value}</div>'
        f'<div style="color: #6b7280; font-size: 12px;">{label}</div></td>'
    )


def render_alert_email(alert: Alert, campaign_name: str) -> str:
    """HTML body of a single campaign alert."""
    color = PRIORITY_COLORS.get(alert.priority, "#6b7280")

    cells = []
    if alert.current_value is not None:
        cells.append(_metric_cell("Valor Atual", format_alert_value(alert.current_value, alert.alert_type)))
        if alert.previous_value is not None:
            cells.append(_metric_cell("Valor Anterior", format_alert_value(alert.previous_value, alert.alert_type)))
        if alert.threshold_value is not None:
            cells.append(_metric_cell("Limite", format_alert_value(alert.threshold_value, alert.alert_type)))
    metrics = f'<table style="width: 100%;"><tr>{"".join(cells)}</tr></table>' if cells else ""

    content = f"""
    <h2>Alerta de Campanha</h2>
    <div style="border-left: 4px solid {color}; padding: 12px; background: #f9fafb;">
      <strong>{PRIORITY_LABELS.get(alert.priority, alert.priority)}</strong>
      <h3 style="margin: 8px 0;">{escape(alert.title)}</h3>
      <p>{escape(alert.message)}</p>
    </div>
    <p><strong>Campanha:</strong> {escape(campaign_name)}</p>
    <p><strong>Tipo:</strong> {ALERT_TYPE_LABELS.get(alert.alert_type, alert.alert_type)}</p>
    {metrics}
    <p style="text-align: center;">
      <a href="{settings.frontend_url}/manager/campaigns/{alert.campaign_id}"
         style="background: #2563eb; color: #ffffff; padding: 10px 20px; border-radius: 6px; text-decoration: none;">
        Ver Campanha
      </a>
    </p>"""

    return _base_template(
        title=f"Alerta: {alert.title}",
        content=content,
        footer="Você recebeu este alerta porque está configurado para monitorar esta campanha.",
    )


async def send_alert_email(alert: Alert, to_email: str, campaign_name: str) -> bool:
    """Send a campaign alert to the manager."""
    emoji = PRIORITY_LABELS.get(alert.priority, "").split(" ")[0]
    return await send_email_notification(
        to_email=to_email,
        subject=f"{emoji} {alert.title}".strip(),
        html_content=render_alert_email(alert, campaign_name),
        text_content=f"{alert.title}\n\n{alert.message}",
    )


async def send_daily_summary(user: User, alerts: list[Alert]) -> bool:
    """Summary of the alerts raised for a manager in the last day."""
    if not alerts:
        return False

    counts = {priority: 0 for priority in AlertPriority.ALL}
    for alert in alerts:
        counts[alert.priority] = counts.get(alert.priority, 0) + 1

    cells = "".join(
        _metric_cell(label, f'<span style="color: {PRIORITY_COLORS[priority]};">{counts[priority]}</span>')
        for priority, label in (
            (AlertPriority.CRITICAL, "Críticos"),
            (AlertPriority.HIGH, "Altos"),
            (AlertPriority.MEDIUM, "Médios"),
            (AlertPriority.LOW, "Baixos"),
        )
    )
    urgent = "".join(
        f'<div style="border-left: 4px solid {PRIORITY_COLORS[a.priority]}; padding: 8px; margin: 8px 0;">'
        f"<strong>{escape(a.title)}</strong><p>{escape(a.message)}</p></div>"
        for a in alerts
        if a.priority in (AlertPriority.CRITICAL, AlertPriority.HIGH)
    )

    content = f"""
    <h2>Resumo Diário de Alertas</h2>
    <p>Olá {escape(user.name)},</p>
    <p>Aqui está o resumo dos alertas das suas campanhas nas últimas 24 horas:</p>
    <table style="width: 100%;"><tr>{cells}</tr></table>
    <h3>Alertas Críticos e Altos</h3>
    {urgent or "<p>Nenhum alerta crítico ou alto.</p>"}
    <p style="text-align: center;"><a href="{settings.frontend_url}/manager/alerts">Ver Todos os Alertas</a></p>"""

    return await send_email_notification(
        to_email=user.email,
        subject=f"📊 Resumo Diário: {len(alerts)} alertas nas suas campanhas",
        html_content=_base_template(
            title="Resumo Diário de Alertas",
            content=content,
            footer="Você pode configurar suas preferências de notificação no painel.",
        ),
    )
