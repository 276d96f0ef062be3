"""
Payment receipts.

Receipts are rendered on demand from the settled transaction and never
stored. The PDF is built with reportlab in invariant mode, so the same
transaction always yields the same bytes.
"""
from __future__ import annotations

import io
from dataclasses import dataclass
from datetime import datetime
from typing import Any
from zoneinfo import ZoneInfo

import structlog
from reportlab.lib import colors
from reportlab.lib.enums import TA_CENTER
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle
from sqlalchemy.orm import Session

from app.core.config import Settings
from app.core.exceptions import NotAvailable, ValidationError
from app.core.timeutils import ensure_utc, isoformat
from app.models.payment import PaymentStatus, PaymentTransaction
from app.services.identity import get_user_or_404
from app.services.payments.service import PaymentService, role_label

logger = structlog.get_logger(__name__)

SUCCESS_GREEN = colors.HexColor("#16a34a")
TEXT_DARK = colors.HexColor("#1a1a2e")
TEXT_GRAY = colors.HexColor("#555555")
ROW_GRAY = colors.HexColor("#f0f0f0")
HEADER_GRAY = colors.HexColor("#e8e8e8")
BORDER_GRAY = colors.HexColor("#cccccc")


@dataclass(frozen=True)
class Receipt:
    receipt_number: str
    filename: str
    content: bytes

    def content_disposition(self, disposition: str) -> str:
        return f'{disposition}; filename="{self.filename}"'


class ReceiptService:
    def __init__(self, db: Session, payments: PaymentService, settings: Settings):
        self.db = db
        self.payments = payments
        self.settings = settings

    def _paid_registration(self, uid: str) -> PaymentTransaction | None:
        if self.payments.payable_paper(uid) is None:
            return None
        return self.payments.successful_registration(uid)

    def receipt_number(self, txn: PaymentTransaction) -> str:
        if txn.receipt_number:
            return txn.receipt_number
        prefix = self.settings.attendee_receipt_prefix if txn.is_attendee else self.settings.receipt_prefix
        return f"{prefix}-{txn.txnid}"

    def receipt_status(self, uid: str) -> dict[str, Any]:
        if not uid or not uid.strip():
            raise ValidationError("User ID is required.")
        get_user_or_404(self.db, uid)
        txn = self._paid_registration(uid)
        if txn is None:
            return {"success": True, "receiptAvailable": False}
        return {
            "success": True,
            "receiptAvailable": True,
            "receiptNumber": self.receipt_number(txn),
            "paymentDate": isoformat(txn.completed_at),
            "paymentAmount": float(txn.amount),
        }

    def render_for_user(self, uid: str) -> Receipt:
        if not uid or not uid.strip():
            raise ValidationError("User ID is required.")
        user = get_user_or_404(self.db, uid)
        txn = self._paid_registration(uid)
        if txn is None:
            raise NotAvailable()

        number = self.receipt_number(txn)
        rows = [
            ("Transaction ID", txn.txnid),
            ("Date & Time", self.format_date(txn.completed_at)),
            ("Full Name", user.name or "N/A"),
            ("Email Address", user.email or "N/A"),
            ("Category", role_label(txn.role or user.role) if (txn.role or user.role) else "N/A"),
            ("Participation Type", "Offline"),
            ("Amount Paid", f"INR {txn.amount_str}"),
        ]
        logger.info("receipt_rendered", user_id=uid, txnid=txn.txnid, receipt_number=number)
        return Receipt(number, f"Receipt_{number}.pdf", self._build_pdf(number, rows))

    def render_for_attendee(self, txnid: str) -> Receipt:
        if not txnid or not txnid.strip():
            raise ValidationError("Transaction ID is required.")
        txn = self.db.get(PaymentTransaction, txnid)
        if txn is None or not txn.is_attendee or txn.status != PaymentStatus.SUCCESS.value:
            raise NotAvailable("No paid attendee registration found for this transaction.")

        number = self.receipt_number(txn)
        rows = [
            ("Receipt Number", number),
            ("Transaction ID", txn.txnid),
            ("Date & Time", self.format_date(txn.completed_at)),
            ("Full Name", txn.first_name or "N/A"),
            ("Email Address", txn.email or "N/A"),
            ("Organization", txn.organization or "N/A"),
            ("Registration Type", "Attendee"),
            ("Amount Paid", f"INR {txn.amount_str}"),
        ]
        logger.info("attendee_receipt_rendered", txnid=txn.txnid, receipt_number=number)
        return Receipt(number, f"Attendee_Receipt_{number}.pdf", self._build_pdf(number, rows))

    def format_date(self, value: datetime | None) -> str:
        value = ensure_utc(value)
        if value is None:
            return "N/A"
        local = value.astimezone(ZoneInfo(self.settings.receipt_timezone))
        return local.strftime("%d %b %Y, %I:%M %p")

    def _build_pdf(self, receipt_number: str, rows: list[tuple[str, str]]) -> bytes:
        buffer = io.BytesIO()
        doc = SimpleDocTemplate(
            buffer,
            pagesize=A4,
            leftMargin=60,
            rightMargin=60,
            topMargin=60,
            bottomMargin=60,
            title=f"Receipt - {receipt_number}",
            author=self.settings.event_name,
            subject="Payment Receipt",
            invariant=1,
        )

        styles = getSampleStyleSheet()
        heading = ParagraphStyle(
            "ReceiptHeading",
            parent=styles["Heading1"],
            fontSize=24,
            leading=30,
            alignment=TA_CENTER,
            textColor=TEXT_DARK,
        )
        badge = ParagraphStyle(
            "ReceiptBadge",
            parent=styles["Normal"],
            fontSize=30,
            leading=36,
            alignment=TA_CENTER,
            textColor=SUCCESS_GREEN,
        )
        subtitle = ParagraphStyle(
            "ReceiptSubtitle",
            parent=styles["Normal"],
            fontSize=12,
            alignment=TA_CENTER,
            textColor=TEXT_GRAY,
        )
        footer = ParagraphStyle(
            "ReceiptFooter",
            parent=styles["Normal"],
            fontSize=9,
            alignment=TA_CENTER,
            textColor=TEXT_GRAY,
        )

        table = Table(
            [("Field", "Details"), *rows],
            colWidths=[160, 255],
            rowHeights=30,
        )
        style = [
            ("BACKGROUND", (0, 0), (-1, 0), HEADER_GRAY),
            ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
            ("FONTNAME", (0, 1), (0, -1), "Helvetica-Bold"),
            ("FONTSIZE", (0, 0), (-1, -1), 10),
            ("TEXTCOLOR", (0, 0), (-1, -1), TEXT_DARK),
            ("TEXTCOLOR", (1, -1), (1, -1), SUCCESS_GREEN),
            ("FONTNAME", (1, -1), (1, -1), "Helvetica-Bold"),
            ("VALIGN", (0, 0), (-1, -1), "MIDDLE"),
            ("LEFTPADDING", (0, 0), (-1, -1), 12),
            ("GRID", (0, 0), (-1, -1), 0.3, BORDER_GRAY),
        ]
        for index in range(1, len(rows) + 1):
            if index % 2 == 0:
                style.append(("BACKGROUND", (0, index), (-1, index), ROW_GRAY))
        table.setStyle(TableStyle(style))

        content = [
            Paragraph('<font name="ZapfDingbats">4</font>', badge),
            Spacer(1, 10),
            Paragraph("Payment Successful", heading),
            Paragraph(f"Thank you for registering for {self.settings.event_name}!", subtitle),
            Spacer(1, 30),
            table,
            Spacer(1, 40),
            Paragraph(
                "This is a system-generated receipt and does not require a physical signature.",
                footer,
            ),
            Spacer(1, 6),
            Paragraph(f"For queries, contact: {self.settings.support_email}", footer),
        ]
        doc.build(content)
        return buffer.getvalue()
