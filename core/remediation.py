"""
Remediation Plan Synthesizer.

Turns a student's weak skills (skills answered below 100%) into a
structured intervention plan. The plan is requested from an external
text generator as strict JSON; when the generator is unavailable, fails,
or returns something that does not validate, a deterministic plan with
exactly the same schema is built instead.

Plan schema (keys are the ones the generator is asked for):
  analiseGeral             general analysis paragraph
  pontosMelhoria           improvement points
  estrategias              teaching strategies
  atividadesPorHabilidade  per-skill activity suggestions
  cronograma               4-week schedule, easiest skills first
  modeloIntervencao        formal intervention template
"""
import json
import logging
import re
from dataclasses import asdict, dataclass
from typing import Callable, List, Literal, Optional

import pandas as pd
from pydantic import BaseModel, Field, ValidationError

from core.aggregation import evaluated_rows

logger = logging.getLogger(__name__)

WEEKS = 4

REQUIRED_KEYS = (
    'analiseGeral',
    'pontosMelhoria',
    'estrategias',
    'atividadesPorHabilidade',
    'cronograma',
    'modeloIntervencao',
)

ACTIVITY_TEMPLATE = (
    "Fazer a lista de atividades do componente {component} – {skill_id}, "
    "que trata sobre {description}."
)

# Trailing JSON object, possibly preceded by prose
_JSON_TAIL = re.compile(r'\{[\s\S]*\}\s*$')
_CODE_FENCE = re.compile(r'```(?:json)?', re.IGNORECASE)


# ---------------------------------------------------------------------------
# Plan schema
# ---------------------------------------------------------------------------

class SkillActivities(BaseModel):
    skill_id: str
    component: str
    description: str
    suggestions: List[str]


class WeekPlan(BaseModel):
    week: int = Field(ge=1, le=WEEKS)
    focus: str
    objective: str
    tasks: List[str]


class InterventionTemplate(BaseModel):
    objective: str
    short_term_goals: List[str]
    routine: List[str]
    tracking: List[str]
    responsibilities: List[str]


class RemediationPlan(BaseModel):
    analiseGeral: str
    pontosMelhoria: List[str]
    estrategias: List[str]
    atividadesPorHabilidade: List[SkillActivities]
    cronograma: List[WeekPlan]
    modeloIntervencao: InterventionTemplate


# ---------------------------------------------------------------------------
# Weak skills
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class WeakSkill:
    component: str
    skill_id: str
    skill_code: str
    skill_description: str
    percentage: float

    def to_dict(self) -> dict:
        return asdict(self)


def format_pct(value: float) -> str:
    """62.5 -> '62.5', 40.0 -> '40'."""
    text = f"{round(float(value), 1):.1f}"
    return text[:-2] if text.endswith('.0') else text


def collect_weak_skills(student_rows: pd.DataFrame) -> List[WeakSkill]:
    """Skills of one student with total > 0 and ratio < 100.

    Rows of the same component/skill are summed first. Returned by
    percentage descending (easiest to remediate first).
    """
    df = evaluated_rows(student_rows)
    df = df[df['skill_id'] != '']
    if df.empty:
        return []

    grp = (
        df.groupby(['component', 'skill_id'], sort=True)
        .agg(
            skill_code=('skill_code', 'first'),
            skill_description=('skill_description', 'first'),
            correct=('correct_count', 'sum'),
            total=('total_count', 'sum'),
        )
        .reset_index()
    )
    grp = grp[grp['total'] > 0]

    skills = []
    for _, r in grp.iterrows():
        pct = 100.0 * r['correct'] / r['total']
        if pct < 100:
            skills.append(WeakSkill(
                component=r['component'],
                skill_id=r['skill_id'],
                skill_code=r['skill_code'],
                skill_description=r['skill_description'],
                percentage=round(pct, 2),
            ))
    return sort_easiest_first(skills)


def sort_easiest_first(skills: List[WeakSkill]) -> List[WeakSkill]:
    return sorted(skills, key=lambda s: -s.percentage)


# ---------------------------------------------------------------------------
# Prompt / parse
# ---------------------------------------------------------------------------

def build_prompt(student_name: str, weak_skills: List[WeakSkill]) -> str:
    """Request for a strict-JSON remediation plan."""
    skills_json = json.dumps(
        [
            {
                'componente': s.component,
                'habilidade_id': s.skill_id,
                'habilidade_codigo': s.skill_code,
                'descricao': s.skill_description,
                'percentual': round(s.percentage, 1),
            }
            for s in weak_skills
        ],
        ensure_ascii=False,
        indent=2,
    )
    example = ACTIVITY_TEMPLATE.format(
        component='{componente}', skill_id='{habilidade_id}', description='{descricao}'
    )
    return f"""Você é um(a) coordenador(a) pedagógico(a). Elabore um plano de recuperação
para o(a) estudante {student_name}, com base nas habilidades abaixo (percentual de acerto):

{skills_json}

Responda APENAS com um objeto JSON válido, sem texto adicional, com exatamente estas chaves:
{{
  "analiseGeral": string,
  "pontosMelhoria": [string],
  "estrategias": [string],
  "atividadesPorHabilidade": [{{"skill_id": string, "component": string, "description": string, "suggestions": [string]}}],
  "cronograma": [{{"week": number, "focus": string, "objective": string, "tasks": [string]}}],
  "modeloIntervencao": {{"objective": string, "short_term_goals": [string], "routine": [string], "tracking": [string], "responsibilities": [string]}}
}}

Regras:
- "cronograma" deve ter exatamente {WEEKS} semanas (week de 1 a {WEEKS}), ordenadas da habilidade com
  MAIOR percentual (mais fácil de recuperar) para a de MENOR percentual (mais difícil),
  distribuindo todas as habilidades entre as {WEEKS} semanas.
- Em "atividadesPorHabilidade", a primeira sugestão de cada habilidade deve ser exatamente:
  "{example}"
- Escreva em português do Brasil.
"""


def parse_plan(text: Optional[str]) -> Optional[RemediationPlan]:
    """Extract and validate the trailing JSON object of *text*.

    Returns None when there is no JSON object, it does not parse, a
    required key is missing, or the structure does not validate.
    """
    if not text or not text.strip():
        return None
    cleaned = _CODE_FENCE.sub('', text).strip()
    match = _JSON_TAIL.search(cleaned)
    if not match:
        return None
    try:
        data = json.loads(match.group(0))
    except json.JSONDecodeError:
        return None
    if not isinstance(data, dict):
        return None
    missing = [k for k in REQUIRED_KEYS if k not in data]
    if missing:
        logger.info("generated plan is missing keys: %s", ', '.join(missing))
        return None
    try:
        return RemediationPlan.model_validate(data)
    except ValidationError as e:
        logger.info("generated plan failed validation: %s", e.error_count())
        return None


# ---------------------------------------------------------------------------
# Deterministic fallback
# ---------------------------------------------------------------------------

def _focus_line(skill: WeakSkill) -> str:
    return f"{skill.skill_id} ({skill.component}) - {format_pct(skill.percentage)}%"


def _skill_tasks(skill: WeakSkill) -> List[str]:
    return [
        f"Retomar o conceito de {skill.skill_id} com exemplos resolvidos em aula",
        f"Resolver exercícios graduados de {skill.skill_id} ({skill.component})",
        f"Corrigir e comentar os erros mais frequentes em {skill.skill_id}",
    ]


def _activity(skill: WeakSkill) -> SkillActivities:
    return SkillActivities(
        skill_id=skill.skill_id,
        component=skill.component,
        description=skill.skill_description,
        suggestions=[
            ACTIVITY_TEMPLATE.format(
                component=skill.component,
                skill_id=skill.skill_id,
                description=skill.skill_description,
            ),
            f"Praticar questões de {skill.skill_id} em duplas, com correção coletiva.",
            f"Aplicar um mini-simulado de {skill.skill_id} ao final da semana para verificar o avanço.",
        ],
    )


def build_schedule(weak_skills: List[WeakSkill]) -> List[WeekPlan]:
    """Distribute skills over the weeks, easiest first, by index modulo 4."""
    ordered = sort_easiest_first(weak_skills)
    buckets: List[List[WeakSkill]] = [[] for _ in range(WEEKS)]
    for idx, skill in enumerate(ordered):
        buckets[idx % WEEKS].append(skill)

    weeks = []
    for number, assigned in enumerate(buckets, start=1):
        if assigned:
            weeks.append(WeekPlan(
                week=number,
                focus='; '.join(_focus_line(s) for s in assigned),
                objective=(
                    "Elevar o percentual de acerto em "
                    + ', '.join(s.skill_id for s in assigned)
                ),
                tasks=[task for s in assigned for task in _skill_tasks(s)],
            ))
        else:
            weeks.append(WeekPlan(
                week=number,
                focus="Revisão e consolidação das habilidades trabalhadas",
                objective="Consolidar os avanços das semanas anteriores",
                tasks=[
                    "Retomar as atividades com mais erros nas semanas anteriores",
                    "Aplicar uma avaliação curta de acompanhamento",
                ],
            ))
    return weeks


def _intervention_template(student_name: str) -> InterventionTemplate:
    return InterventionTemplate(
        objective=(
            f"Recuperar as habilidades com desempenho abaixo do esperado de {student_name}, "
            "garantindo a consolidação das aprendizagens essenciais do período."
        ),
        short_term_goals=[
            "Aumentar o percentual de acerto das habilidades priorizadas ao fim das 4 semanas",
            "Reduzir erros recorrentes identificados na avaliação",
            "Desenvolver autonomia na resolução das atividades propostas",
        ],
        routine=[
            "Dois encontros semanais de 30 minutos de recomposição",
            "Atividade de fixação para casa uma vez por semana",
            "Revisão coletiva dos erros no início de cada encontro",
        ],
        tracking=[
            "Registro semanal do percentual de acerto por habilidade",
            "Mini-simulado ao final de cada semana",
            "Comparação com o resultado da próxima avaliação",
        ],
        responsibilities=[
            "Professor(a): planejar e conduzir as atividades de recomposição",
            "Coordenação pedagógica: acompanhar os registros e ajustar o plano",
            "Família: acompanhar as atividades de casa e a frequência",
            "Estudante: realizar as atividades e registrar dúvidas",
        ],
    )


def fallback_plan(student_name: str, weak_skills: List[WeakSkill]) -> RemediationPlan:
    """Build the plan deterministically from the weak-skill list."""
    if not weak_skills:
        raise ValueError("fallback_plan needs at least one weak skill")

    ordered = sort_easiest_first(weak_skills)
    weakest = sorted(weak_skills, key=lambda s: s.percentage)[:3]
    mean_pct = sum(s.percentage for s in weak_skills) / len(weak_skills)
    components = sorted({s.component for s in weak_skills})

    analysis = (
        f"{student_name} apresentou {len(weak_skills)} habilidade(s) com acerto abaixo de 100% "
        f"({', '.join(components)}), com média de {format_pct(mean_pct)}% nessas habilidades. "
        f"A habilidade mais crítica é {weakest[0].skill_id} ({format_pct(weakest[0].percentage)}%). "
        "O plano prioriza primeiro as habilidades mais próximas do domínio e avança "
        "gradualmente para as de maior dificuldade."
    )

    return RemediationPlan(
        analiseGeral=analysis,
        pontosMelhoria=[
            f"{s.skill_id} ({s.component}) com {format_pct(s.percentage)}%" for s in weakest
        ],
        estrategias=[
            "Retomada dos conceitos com exemplos concretos antes da prática",
            "Prática guiada seguida de prática independente",
            "Correção comentada dos erros, com foco no raciocínio",
            "Uso de materiais de apoio e atividades diversificadas",
        ],
        atividadesPorHabilidade=[_activity(s) for s in ordered],
        cronograma=build_schedule(ordered),
        modeloIntervencao=_intervention_template(student_name),
    )


# ---------------------------------------------------------------------------
# Synthesis
# ---------------------------------------------------------------------------

PlanSource = Literal['generated', 'fallback']


@dataclass(frozen=True)
class SynthesisResult:
    plan: RemediationPlan
    source: PlanSource


def synthesize_plan(
    student_name: str,
    weak_skills: List[WeakSkill],
    generate: Optional[Callable[[str], str]] = None,
) -> SynthesisResult:
    """Ask *generate* for a plan, falling back to the deterministic one.

    Generator errors and unusable output both end in the fallback; this
    function only raises if *weak_skills* is empty.
    """
    if not weak_skills:
        raise ValueError("synthesize_plan needs at least one weak skill")

    if generate is None:
        return SynthesisResult(fallback_plan(student_name, weak_skills), 'fallback')

    prompt = build_prompt(student_name, weak_skills)
    try:
        text = generate(prompt)
    except Exception as e:
        logger.info("text generation failed, using fallback plan: %s", e)
        return SynthesisResult(fallback_plan(student_name, weak_skills), 'fallback')

    plan = parse_plan(text)
    if plan is None:
        logger.info("generated plan unusable, using fallback plan")
        return SynthesisResult(fallback_plan(student_name, weak_skills), 'fallback')
    return SynthesisResult(plan, 'generated')
