"""
storage/export.py

Audit export helpers: produce a JSON string or PDF bytes from the append-only
event log, and a JSON handoff for a single medical record.

These are consumers of the event side channel; the ledger itself never reads
events back.

Dependencies
------------
- reportlab  (PDF generation)
- storage.db  (data access)
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from io import BytesIO
from typing import TYPE_CHECKING, Any

from storage.db import LedgerStore
from storage.models import LedgerEvent

if TYPE_CHECKING:
    from ledger.contract import HealthcareLedger

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Shared data fetch
# ---------------------------------------------------------------------------


def _build_event_bundle(store: LedgerStore) -> dict[str, Any]:
    """Assemble every event plus export metadata."""
    events = [LedgerEvent(**row) for row in store.list_events()]
    return {
        "export_generated_at": datetime.now(tz=timezone.utc).isoformat(),
        "event_count": len(events),
        "events": [e.model_dump(mode="json") for e in events],
    }


# ---------------------------------------------------------------------------
# JSON export
# ---------------------------------------------------------------------------


def export_events_json(store: LedgerStore) -> str:
    """
    Produce a pretty-printed JSON string of the whole event log.

    Args:
        store: The ledger's entity store.

    Returns:
        JSON string with ``export_generated_at``, ``event_count`` and ``events``.
    """
    bundle = _build_event_bundle(store)
    logger.info("Exported %d events as JSON", bundle["event_count"])
    return json.dumps(bundle, indent=2, ensure_ascii=False, default=str)


def export_record_json(ledger: HealthcareLedger, record_id: int) -> str | None:
    """
    Produce a JSON handoff for one record together with the current
    permission row between its patient and author.

    Returns:
        JSON string, or ``None`` if the record does not exist.
    """
    record = ledger.get_record(record_id)
    if record is None:
        return None

    permission = ledger.check_access(record.patient, record.provider)
    bundle = {
        "export_generated_at": datetime.now(tz=timezone.utc).isoformat(),
        "block_height": ledger.get_block_height(),
        "record": record.model_dump(mode="json"),
        "permission": permission.model_dump(mode="json") if permission else None,
        "access_valid": ledger.is_access_valid(record.patient, record.provider),
    }
    return json.dumps(bundle, indent=2, ensure_ascii=False, default=str)


# ---------------------------------------------------------------------------
# PDF export
# ---------------------------------------------------------------------------


def export_events_pdf(store: LedgerStore) -> bytes:
    """
    Produce a PDF bytes object listing the event log using reportlab.

    Args:
        store: The ledger's entity store.

    Returns:
        PDF as ``bytes``.
    """
    try:
        from reportlab.lib import colors
        from reportlab.lib.pagesizes import LETTER
        from reportlab.lib.styles import getSampleStyleSheet, ParagraphStyle
        from reportlab.lib.units import inch
        from reportlab.platypus import (
            Paragraph,
            SimpleDocTemplate,
            Spacer,
            Table,
            TableStyle,
        )
    except ImportError as exc:
        logger.error("reportlab is not installed: %s", exc)
        raise ImportError(
            "PDF export requires reportlab. Install it with: pip install reportlab"
        ) from exc

    bundle = _build_event_bundle(store)

    buf = BytesIO()
    doc = SimpleDocTemplate(
        buf,
        pagesize=LETTER,
        leftMargin=inch,
        rightMargin=inch,
        topMargin=inch,
        bottomMargin=inch,
    )

    styles = getSampleStyleSheet()
    title_style = ParagraphStyle(
        "CustomTitle",
        parent=styles["Title"],
        fontSize=18,
        textColor=colors.HexColor("#1a3a5c"),
        spaceAfter=6,
    )
    normal = styles["Normal"]
    small = ParagraphStyle("Small", parent=normal, fontSize=8, textColor=colors.grey)
    cell = ParagraphStyle("Cell", parent=normal, fontSize=8)

    story = []
    story.append(Paragraph("MedLedger Audit Log", title_style))
    story.append(Paragraph(f"Generated: {bundle['export_generated_at']}", small))
    story.append(Paragraph(f"Events: {bundle['event_count']}", small))
    story.append(Spacer(1, 0.15 * inch))

    if bundle["events"]:
        rows = [["#", "Height", "Event", "Actor", "Fields"]]
        for e in bundle["events"]:
            fields = ", ".join(f"{k}={v}" for k, v in sorted(e["fields"].items()))
            rows.append([
                str(e["id"]),
                str(e["height"]),
                e["name"],
                Paragraph(e["actor"], cell),
                Paragraph(fields or "-", cell),
            ])
        table = Table(
            rows,
            colWidths=[0.4 * inch, 0.6 * inch, 1.5 * inch, 1.6 * inch, 2.4 * inch],
            repeatRows=1,
        )
        table.setStyle(
            TableStyle([
                ("BACKGROUND", (0, 0), (-1, 0), colors.HexColor("#1a3a5c")),
                ("TEXTCOLOR", (0, 0), (-1, 0), colors.white),
                ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
                ("FONTSIZE", (0, 0), (-1, -1), 8),
                ("ROWBACKGROUNDS", (0, 1), (-1, -1), [colors.white, colors.HexColor("#f0f4f8")]),
                ("GRID", (0, 0), (-1, -1), 0.5, colors.HexColor("#cccccc")),
                ("VALIGN", (0, 0), (-1, -1), "TOP"),
                ("LEFTPADDING", (0, 0), (-1, -1), 4),
                ("TOPPADDING", (0, 0), (-1, -1), 3),
                ("BOTTOMPADDING", (0, 0), (-1, -1), 3),
            ])
        )
        story.append(table)
    else:
        story.append(Paragraph("No events recorded.", normal))

    doc.build(story)
    logger.info("Exported %d events as PDF", bundle["event_count"])
    return buf.getvalue()
