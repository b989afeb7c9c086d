"""
Remediation plan document export (PDF via reportlab).

The plan is flattened into titled sections of paragraphs and bullets and
rendered with platypus, which paginates automatically. Every page gets a
footer with the generation date and page number.
"""
import io
import logging
import re
import unicodedata
from dataclasses import dataclass, field
from datetime import datetime
from typing import List
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import cm, mm
from reportlab.platypus import ListFlowable, ListItem, Paragraph, SimpleDocTemplate, Spacer

from core.remediation import RemediationPlan, WeakSkill, format_pct, sort_easiest_first

logger = logging.getLogger(__name__)

BRAND_DARK = colors.HexColor("#1E293B")
BRAND_ACCENT = colors.HexColor("#2563EB")


class ExportError(RuntimeError):
    """The document could not be produced."""


@dataclass
class ReportSection:
    title: str
    paragraphs: List[str] = field(default_factory=list)
    bullets: List[str] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Plan -> sections
# ---------------------------------------------------------------------------

def plan_to_sections(plan: RemediationPlan, weak_skills: List[WeakSkill]) -> List[ReportSection]:
    sections = [
        ReportSection(
            "Habilidades a desenvolver",
            bullets=[
                f"{s.component} - {s.skill_id}: {s.skill_description} ({format_pct(s.percentage)}%)"
                for s in sort_easiest_first(weak_skills)
            ],
        ),
        ReportSection("Análise geral", paragraphs=[plan.analiseGeral]),
        ReportSection("Pontos de melhoria", bullets=list(plan.pontosMelhoria)),
        ReportSection("Estratégias", bullets=list(plan.estrategias)),
    ]

    for act in plan.atividadesPorHabilidade:
        sections.append(ReportSection(
            f"Atividades - {act.skill_id} ({act.component})",
            paragraphs=[act.description] if act.description else [],
            bullets=list(act.suggestions),
        ))

    for week in sorted(plan.cronograma, key=lambda w: w.week):
        sections.append(ReportSection(
            f"Semana {week.week}",
            paragraphs=[f"Foco: {week.focus}", f"Objetivo: {week.objective}"],
            bullets=list(week.tasks),
        ))

    model = plan.modeloIntervencao
    sections.extend([
        ReportSection("Modelo de intervenção", paragraphs=[model.objective]),
        ReportSection("Metas de curto prazo", bullets=list(model.short_term_goals)),
        ReportSection("Rotina", bullets=list(model.routine)),
        ReportSection("Acompanhamento", bullets=list(model.tracking)),
        ReportSection("Responsabilidades", bullets=list(model.responsibilities)),
    ])
    return sections


def remediation_filename(student_name: str) -> str:
    """``plano_intervencao_<slug>.pdf`` with an ASCII, underscore-joined slug."""
    ascii_name = (
        unicodedata.normalize('NFKD', student_name or '')
        .encode('ascii', 'ignore')
        .decode('ascii')
    )
    slug = re.sub(r'[^a-z0-9]+', '_', ascii_name.lower()).strip('_') or 'estudante'
    return f"plano_intervencao_{slug}.pdf"


# ---------------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------------

def _styles():
    ss = getSampleStyleSheet()
    return {
        "title": ParagraphStyle(
            "PlanTitle", parent=ss["Title"],
            fontSize=18, leading=22, textColor=BRAND_DARK,
            spaceAfter=6 * mm,
        ),
        "heading": ParagraphStyle(
            "PlanHeading", parent=ss["Heading2"],
            fontSize=13, leading=16, textColor=BRAND_ACCENT,
            spaceBefore=5 * mm, spaceAfter=2 * mm,
        ),
        "body": ParagraphStyle(
            "PlanBody", parent=ss["Normal"],
            fontSize=10, leading=14, spaceAfter=2 * mm,
        ),
    }


def _footer(canvas, doc):
    """Generation date and page number."""
    canvas.saveState()
    canvas.setFont("Helvetica", 8)
    canvas.setFillColor(colors.grey)
    canvas.drawString(2 * cm, 1.2 * cm, f"Gerado em {datetime.now().strftime('%d/%m/%Y %H:%M')}")
    canvas.drawRightString(A4[0] - 2 * cm, 1.2 * cm, f"Página {doc.page}")
    canvas.restoreState()


def _story(title: str, sections: List[ReportSection]) -> list:
    st = _styles()
    story = [Paragraph(escape(title), st["title"])]
    for section in sections:
        story.append(Paragraph(escape(section.title), st["heading"]))
        for text in section.paragraphs:
            story.append(Paragraph(escape(text), st["body"]))
        if section.bullets:
            story.append(ListFlowable(
                [ListItem(Paragraph(escape(b), st["body"])) for b in section.bullets],
                bulletType='bullet',
                leftIndent=12,
            ))
        story.append(Spacer(1, 2 * mm))
    return story


def render_pdf(title: str, sections: List[ReportSection]) -> bytes:
    """Render *sections* to PDF bytes; raises ExportError on failure."""
    buf = io.BytesIO()
    doc = SimpleDocTemplate(
        buf,
        pagesize=A4,
        leftMargin=2 * cm,
        rightMargin=2 * cm,
        topMargin=2 * cm,
        bottomMargin=2.5 * cm,
        title=title,
    )
    try:
        doc.build(_story(title, sections), onFirstPage=_footer, onLaterPages=_footer)
    except Exception as e:
        raise ExportError(f"could not render document: {e}") from e
    return buf.getvalue()


def export_plan(student_name: str, plan: RemediationPlan, weak_skills: List[WeakSkill]) -> bytes:
    title = f"Plano de Intervenção - {student_name}"
    return render_pdf(title, plan_to_sections(plan, weak_skills))
