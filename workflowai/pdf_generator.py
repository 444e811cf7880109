"""
PDF Generator for Workflow Summary Reports

This module generates PDF reports describing an AI-generated n8n workflow:
what it is called, which services it touches, how its nodes are wired and
how it works, so a user can share the design before deploying it.

Key Features:
    - Professional formatting with headers, sections, and styling
    - Node table (name, service, credentials needed)
    - Connection listing in "source -> target" form
    - Automatic page breaks for long content
    - Date/time stamping
"""

from datetime import datetime, timezone
from io import BytesIO
from typing import Dict, Any, List, Optional

from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import getSampleStyleSheet, ParagraphStyle
from reportlab.lib.units import cm
from reportlab.lib.enums import TA_CENTER
from reportlab.lib import colors
from reportlab.platypus import (
    SimpleDocTemplate,
    Paragraph,
    Spacer,
    Table,
    TableStyle,
)

from .models import WorkflowSummary
from .workflow.credentials import credential_entry
from .workflow.summary import service_name
from .workflow.validation import connection_targets


def _escape(text: Any) -> str:
    return (str(text)
            .replace('&', '&amp;')
            .replace('<', '&lt;')
            .replace('>', '&gt;'))


class PDFReportGenerator:
    """
    Generator for workflow summary PDF reports.

    Creates well-formatted PDF documents describing a generated
    workflow in a clean, business-appropriate style.
    """

    def __init__(self):
        """Initialize PDF generator with default styles."""
        self.styles = getSampleStyleSheet()
        self._setup_custom_styles()

    def _setup_custom_styles(self):
        """Create custom paragraph styles for the report."""
        self.styles.add(ParagraphStyle(
            name='CustomTitle',
            parent=self.styles['Title'],
            fontSize=22,
            textColor=colors.HexColor('#1e1b4b'),
            spaceAfter=24,
            alignment=TA_CENTER,
            fontName='Helvetica-Bold'
        ))

        self.styles.add(ParagraphStyle(
            name='SectionHeading',
            parent=self.styles['Heading1'],
            fontSize=15,
            textColor=colors.HexColor('#312e81'),
            spaceAfter=10,
            spaceBefore=18,
            fontName='Helvetica-Bold'
        ))

        self.styles.add(ParagraphStyle(
            name='CustomBodyText',
            parent=self.styles['Normal'],
            fontSize=11,
            textColor=colors.HexColor('#1f2937'),
            spaceAfter=6,
            leading=14,
            fontName='Helvetica'
        ))

        self.styles.add(ParagraphStyle(
            name='Footer',
            parent=self.styles['Normal'],
            fontSize=9,
            textColor=colors.HexColor('#6b7280'),
            alignment=TA_CENTER,
            fontName='Helvetica-Oblique'
        ))

    def generate_summary_report(
        self,
        workflow: Dict[str, Any],
        summary: WorkflowSummary,
        explanation: Optional[str] = None,
        generated_at: Optional[datetime] = None
    ) -> BytesIO:
        """
        Generate a PDF report for a generated workflow.

        Args:
            workflow: The n8n workflow definition
            summary: Counts and service names computed by summarize_workflow
            explanation: Model explanation of how the workflow works
            generated_at: Report timestamp (defaults to now, UTC)

        Returns:
            BytesIO: PDF file as bytes buffer, ready to be sent to client
        """
        buffer = BytesIO()

        doc = SimpleDocTemplate(
            buffer,
            pagesize=A4,
            rightMargin=2*cm,
            leftMargin=2*cm,
            topMargin=2*cm,
            bottomMargin=2*cm,
            title=f"Workflow Summary - {summary.name}",
            author="WorkflowAI"
        )

        story = []

        story.append(Paragraph("Workflow Summary", self.styles['CustomTitle']))
        date_str = (generated_at or datetime.now(timezone.utc)).strftime("%d/%m/%Y %H:%M:%S")
        story.append(Paragraph(f"<i>Generated on {date_str}</i>", self.styles['Footer']))
        story.append(Spacer(1, 0.8*cm))

        # Section 1: Overview
        story.append(Paragraph("Overview", self.styles['SectionHeading']))
        overview = Table([
            ["Workflow Name:", summary.name],
            ["Nodes:", str(summary.node_count)],
            ["Connections:", str(summary.connection_count)],
            ["Services:", ", ".join(dict.fromkeys(summary.services)) or "None"],
        ], colWidths=[4*cm, 13*cm])
        overview.setStyle(TableStyle([
            ('FONT', (0, 0), (0, -1), 'Helvetica-Bold', 11),
            ('FONT', (1, 0), (1, -1), 'Helvetica', 11),
            ('TEXTCOLOR', (0, 0), (-1, -1), colors.HexColor('#1f2937')),
            ('VALIGN', (0, 0), (-1, -1), 'TOP'),
            ('LEFTPADDING', (0, 0), (-1, -1), 0),
            ('BOTTOMPADDING', (0, 0), (-1, -1), 6),
        ]))
        story.append(overview)

        # Section 2: Nodes
        story.append(Paragraph("Workflow Components", self.styles['SectionHeading']))
        nodes = workflow.get("nodes")
        story.extend(self._node_table(nodes if isinstance(nodes, list) else []))

        # Section 3: Connections
        connection_lines = self._connection_lines(workflow.get("connections"))
        if connection_lines:
            story.append(Paragraph("Connections", self.styles['SectionHeading']))
            for line in connection_lines:
                story.append(Paragraph(_escape(line), self.styles['CustomBodyText']))

        # Section 4: Explanation
        if explanation:
            story.append(Paragraph("How it works", self.styles['SectionHeading']))
            for line in explanation.split('\n'):
                if line.strip():
                    story.append(Paragraph(_escape(line), self.styles['CustomBodyText']))
                else:
                    story.append(Spacer(1, 0.2*cm))

        story.append(Spacer(1, 1.5*cm))
        story.append(Paragraph(
            "<i>This report was automatically generated by WorkflowAI</i>",
            self.styles['Footer']
        ))

        doc.build(story)
        buffer.seek(0)
        return buffer

    def _node_table(self, nodes: List[Dict[str, Any]]) -> list:
        if not nodes:
            return [Paragraph("This workflow has no nodes.", self.styles['CustomBodyText'])]

        rows = [["#", "Node", "Service", "Credentials"]]
        for index, node in enumerate(n for n in nodes if isinstance(n, dict)):
            credential = credential_entry(node.get("type"))
            if credential:
                needs = f"{credential['credential_type']} ({'required' if credential['required'] else 'optional'})"
            else:
                needs = "-"
            rows.append([
                str(index + 1),
                Paragraph(_escape(node.get("name", "")), self.styles['CustomBodyText']),
                service_name(node.get("type")),
                needs,
            ])

        table = Table(rows, colWidths=[1*cm, 6*cm, 4*cm, 6*cm], repeatRows=1)
        table.setStyle(TableStyle([
            ('FONT', (0, 0), (-1, 0), 'Helvetica-Bold', 10),
            ('FONT', (0, 1), (-1, -1), 'Helvetica', 10),
            ('BACKGROUND', (0, 0), (-1, 0), colors.HexColor('#e0e7ff')),
            ('GRID', (0, 0), (-1, -1), 0.5, colors.HexColor('#c7d2fe')),
            ('VALIGN', (0, 0), (-1, -1), 'TOP'),
            ('LEFTPADDING', (0, 0), (-1, -1), 6),
            ('RIGHTPADDING', (0, 0), (-1, -1), 6),
            ('TOPPADDING', (0, 0), (-1, -1), 4),
            ('BOTTOMPADDING', (0, 0), (-1, -1), 4),
        ]))
        return [table]

    @staticmethod
    def _connection_lines(connections: Any) -> List[str]:
        if not isinstance(connections, dict):
            return []
        lines = []
        for source, outputs in connections.items():
            # malformed branches are left to validate_workflow
            for target in connection_targets(outputs, [], source):
                if target is not None and target != "":
                    lines.append(f"{source} -> {target}")
        return lines


# Singleton instance
pdf_generator = PDFReportGenerator()
