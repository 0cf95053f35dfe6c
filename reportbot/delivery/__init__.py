"""Report delivery channels."""

from reportbot.delivery.base import Attachment, DeliveryChannel
from reportbot.delivery.graph_mail import GraphMailChannel
from reportbot.delivery.report_email import ReportEmail, compose_report_email

__all__ = ["Attachment", "DeliveryChannel", "GraphMailChannel", "ReportEmail", "compose_report_email"]
