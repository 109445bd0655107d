import io
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

FORECAST_SCENARIOS = [
    ('baseline', 'Baseline'),
    ('low_investment', 'Low Investment'),
    ('medium_investment', 'Medium Investment'),
    ('high_investment', 'High Investment'),
]


def _text(value: Any) -> str:
    return escape(str(value)) if value is not None else ''


class PDFReportGenerator:
    """Generate PDF reports for oil palm soil and leaf analyses"""

    def __init__(self):
        self.styles = self._setup_custom_styles()
        self.page_width = A4[0]
        self.margin = 54
        self.content_width = self.page_width - (2 * self.margin)

    def _setup_custom_styles(self):
        styles = getSampleStyleSheet()

        styles.add(ParagraphStyle(
            name='CustomTitle',
            parent=styles['Title'],
            fontSize=22,
            spaceAfter=24,
            textColor=colors.HexColor('#2E7D32'),
            alignment=1  # Center
        ))

        styles.add(ParagraphStyle(
            name='CustomHeading',
            parent=styles['Heading1'],
            fontSize=15,
            spaceBefore=12,
            spaceAfter=10,
            textColor=colors.HexColor('#388E3C'),
        ))

        styles.add(ParagraphStyle(
            name='CustomBody',
            parent=styles['Normal'],
            fontSize=10.5,
            spaceAfter=6,
            alignment=4  # Justify
        ))

        styles.add(ParagraphStyle(
            name='Warning',
            parent=styles['Normal'],
            fontSize=11,
            textColor=colors.red,
            backColor=colors.HexColor('#FFEBEE'),
            borderPadding=4,
        ))

        return styles

    def _create_table_with_proper_layout(self, table_data, col_widths=None, font_size=9):
        """Table fitted to the page width with wrapped cell text"""
        if not table_data:
            return None

        body_style = ParagraphStyle('TblBody', fontSize=font_size, leading=font_size + 2)
        header_style = ParagraphStyle('TblHeader', fontSize=font_size + 1, leading=font_size + 3,
                                      textColor=colors.whitesmoke, fontName='Helvetica-Bold')

        wrapped = []
        for r_idx, row in enumerate(table_data):
            style = header_style if r_idx == 0 else body_style
            wrapped.append([Paragraph(_text(cell), style) for cell in row])

        if col_widths is None:
            num_cols = len(wrapped[0])
            col_widths = [self.content_width / num_cols] * num_cols

        table = Table(wrapped, colWidths=col_widths, repeatRows=1)
        table.setStyle(TableStyle([
            ('BACKGROUND', (0, 0), (-1, 0), colors.HexColor('#2E7D32')),
            ('VALIGN', (0, 0), (-1, -1), 'MIDDLE'),
            ('GRID', (0, 0), (-1, -1), 0.5, colors.HexColor('#dee2e6')),
            ('LEFTPADDING', (0, 0), (-1, -1), 6),
            ('RIGHTPADDING', (0, 0), (-1, -1), 6),
            ('ROWBACKGROUNDS', (0, 1), (-1, -1), [colors.white, colors.HexColor('#f8f9fa')]),
        ]))
        return table

    def _heading(self, title: str) -> Paragraph:
        return Paragraph(_text(title), self.styles['CustomHeading'])

    def _body(self, text: Any) -> Paragraph:
        return Paragraph(_text(text), self.styles['CustomBody'])

    def generate_report(self, result: Dict[str, Any], metadata: Optional[Dict[str, Any]] = None) -> bytes:
        """Render an analysis result to PDF bytes

        Raises:
            ValueError: if the document could not be built
        """
        metadata = {**(result.get('metadata') or {}), **(metadata or {})}
        buffer = io.BytesIO()
        doc = SimpleDocTemplate(
            buffer,
            pagesize=A4,
            rightMargin=self.margin,
            leftMargin=self.margin,
            topMargin=self.margin,
            bottomMargin=36,
        )

        story = []
        story.extend(self._create_title_section(metadata))
        story.extend(self._create_summary_section(result))
        story.extend(self._create_issues_section(result.get('issues') or []))
        story.extend(self._create_plan_section(result.get('improvement_plan') or []))
        story.extend(self._create_nutrient_balance_section(result.get('nutrient_balance')))
        story.extend(self._create_benchmarking_section(result.get('regional_benchmarking')))
        story.extend(self._create_forecast_section(result.get('yield_forecast')))
        story.extend(self._create_sustainability_section(result.get('sustainability_metrics')))
        story.extend(self._create_references_section(result.get('scientific_references') or []))

        try:
            doc.build(story)
        finally:
            pdf_bytes = buffer.getvalue()
            buffer.close()

        if not pdf_bytes:
            raise ValueError("PDF generation failed - empty buffer")
        logger.info(f"PDF generated successfully: {len(pdf_bytes)} bytes")
        return pdf_bytes

    def _create_title_section(self, metadata: Dict[str, Any]) -> List:
        sample_type = str(metadata.get('sample_type') or 'soil').title()
        story = [Paragraph(f"Oil Palm {_text(sample_type)} Analysis Report", self.styles['CustomTitle'])]

        rows = [
            ['Field', 'Value'],
            ['Sample Type', sample_type],
            ['Analyzed At', metadata.get('analyzed_at') or datetime.now().isoformat(timespec='seconds')],
        ]
        if metadata.get('report_id'):
            rows.append(['Report ID', metadata['report_id']])
        if metadata.get('land_size'):
            rows.append(['Land Size (ha)', metadata['land_size']])
        rows.append(['Report Generated', datetime.now().strftime('%Y-%m-%d %H:%M:%S')])

        story.append(self._create_table_with_proper_layout(
            rows, [self.content_width * 0.35, self.content_width * 0.65]))
        story.append(Spacer(1, 16))
        return story

    def _create_summary_section(self, result: Dict[str, Any]) -> List:
        story = [self._heading("Interpretation")]
        story.append(self._body(result.get('interpretation') or 'No interpretation available.'))
        risk = result.get('risk_level')
        if risk in ('High', 'Critical'):
            story.append(Paragraph(f"Risk level: {_text(risk)}", self.styles['Warning']))
        else:
            story.append(self._body(f"Risk level: {risk or 'Unknown'}"))
        story.append(self._body(f"Confidence score: {result.get('confidence_score', 0)}%"))
        return story

    def _create_issues_section(self, issues: List[str]) -> List:
        if not issues:
            return []
        story = [self._heading("Identified Issues")]
        for issue in issues:
            story.append(self._body(f"- {issue}"))
        return story

    def _create_plan_section(self, plan: List[Dict[str, Any]]) -> List:
        if not plan:
            return []
        rows = [['Priority', 'Recommendation', 'Reasoning', 'Estimated Impact', 'Timeframe']]
        for item in plan:
            rows.append([
                item.get('priority', ''),
                item.get('recommendation', ''),
                item.get('reasoning', ''),
                item.get('estimated_impact', ''),
                item.get('timeframe') or '-',
            ])
        widths = [0.12, 0.28, 0.28, 0.2, 0.12]
        return [
            self._heading("Improvement Plan"),
            self._create_table_with_proper_layout(rows, [self.content_width * w for w in widths]),
        ]

    def _create_nutrient_balance_section(self, balance: Optional[Dict[str, Any]]) -> List:
        if not balance:
            return []
        story = [self._heading("Nutrient Balance")]
        ratios = balance.get('ratios') or {}
        if ratios:
            rows = [['Ratio', 'Value']] + [[name, f"{value:.2f}"] for name, value in ratios.items()]
            story.append(self._create_table_with_proper_layout(rows))
        for label, key in (('Imbalances', 'imbalances'), ('Critical deficiencies', 'critical_deficiencies'),
                           ('Antagonisms', 'antagonisms')):
            for entry in balance.get(key) or []:
                story.append(self._body(f"{label}: {entry}"))
        return story

    def _create_benchmarking_section(self, benchmarking: Optional[Dict[str, Any]]) -> List:
        if not benchmarking:
            return []
        return [
            self._heading("Regional Benchmarking"),
            self._body(benchmarking.get('current_yield_vs_benchmark')),
            self._body(benchmarking.get('potential_improvement')),
            self._body(f"Ranking percentile: {benchmarking.get('ranking_percentile')}"),
        ]

    def _create_forecast_section(self, forecast: Optional[Dict[str, Any]]) -> List:
        if not forecast:
            return []
        years = len(forecast.get('baseline') or [])
        rows = [['Scenario'] + [f"Year {i + 1}" for i in range(years)]]
        for key, label in FORECAST_SCENARIOS:
            rows.append([label] + [f"{v:.1f}" for v in forecast.get(key) or []])
        story = [
            self._heading("Five-Year Yield Forecast (tons/ha)"),
            self._create_table_with_proper_layout(rows),
        ]
        comparison = forecast.get('benchmark_comparison') or {}
        if comparison:
            story.append(self._body(
                f"Malaysia average {comparison.get('malaysia_average')} t/ha, regional average "
                f"{comparison.get('regional_average')} t/ha. {comparison.get('potential_improvement', '')}"
            ))
        return story

    def _create_sustainability_section(self, metrics: Optional[Dict[str, Any]]) -> List:
        if not metrics:
            return []
        return [
            self._heading("Sustainability"),
            self._body(f"Carbon sequestration: {metrics.get('carbon_sequestration_potential')}"),
            self._body(f"RSPO compliance: {metrics.get('rspo_compliance')}"),
            self._body(f"Environmental impact: {metrics.get('environmental_impact')}"),
        ]

    def _create_references_section(self, references: List[Dict[str, Any]]) -> List:
        if not references:
            return []
        story = [self._heading("Scientific References")]
        for i, ref in enumerate(references, 1):
            authors = ', '.join(ref.get('authors') or [])
            citation = f"{i}. {authors} ({ref.get('year')}). {ref.get('title')}. {ref.get('journal', '')}"
            if ref.get('doi'):
                citation += f". DOI: {ref['doi']}"
            story.append(self._body(citation))
        return story


def generate_analysis_pdf(report: Dict[str, Any]) -> bytes:
    """PDF for either a stored report or a bare analysis result"""
    result = report.get('analysis_result', report)
    metadata = {'sample_type': report.get('sample_type')} if report.get('sample_type') else {}
    if report.get('id'):
        metadata['report_id'] = report['id']
    return PDFReportGenerator().generate_report(result, metadata)
