"""
Per-student remediation report flow.

weak skills -> plan (generated or fallback) -> PDF document. Only one
generation per student may run at a time; the marker is released however
the flow ends.
"""
import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional, Set, Tuple

import pandas as pd

from core.normalizer import normalize_filter_value, prepare_rows
from core.remediation import collect_weak_skills, synthesize_plan
from core.report_export import ExportError, export_plan, remediation_filename

logger = logging.getLogger(__name__)

STATUS_OK = 'ok'
STATUS_NO_WEAK_SKILLS = 'no_weak_skills'
STATUS_BUSY = 'busy'
STATUS_FAILED = 'failed'

StudentKey = Tuple[str, str, str]


class InProgressRegistry:
    """Students whose report is currently being generated."""

    def __init__(self):
        self._lock = threading.Lock()
        self._active: Set[StudentKey] = set()

    def acquire(self, key: StudentKey) -> bool:
        with self._lock:
            if key in self._active:
                return False
            self._active.add(key)
            return True

    def release(self, key: StudentKey) -> None:
        with self._lock:
            self._active.discard(key)

    def is_active(self, key: StudentKey) -> bool:
        with self._lock:
            return key in self._active

    def __len__(self) -> int:
        with self._lock:
            return len(self._active)


@dataclass
class ReportOutcome:
    status: str
    filename: Optional[str] = None
    content: Optional[bytes] = None
    plan_source: Optional[str] = None
    message: str = ''

    @property
    def ok(self) -> bool:
        return self.status == STATUS_OK


def student_rows(rows: pd.DataFrame, key: StudentKey) -> pd.DataFrame:
    """Rows belonging to the student identified by (name, class, unit).

    An empty class or unit in the key matches any class or unit.
    """
    df = prepare_rows(rows)
    name, class_name, unit = key
    mask = df['student_name'] == name
    if class_name:
        mask &= df['class_name'] == class_name
    if unit:
        # Unit spelling may differ from the stored one when the fetch used a looser match
        mask &= df['unit'].map(normalize_filter_value) == normalize_filter_value(unit)
    return df[mask].reset_index(drop=True)


def generate_student_report(
    student: StudentKey,
    rows: pd.DataFrame,
    generate: Optional[Callable[[str], str]] = None,
    registry: Optional[InProgressRegistry] = None,
) -> ReportOutcome:
    """Build the remediation PDF for one student.

    Returns an outcome instead of raising: ``busy`` when a generation for
    the same student is running, ``no_weak_skills`` when every skill is at
    100%, ``failed`` when any step after that raises.
    """
    if registry is None:
        registry = InProgressRegistry()
    name = student[0]

    if not registry.acquire(student):
        return ReportOutcome(STATUS_BUSY, message=f"Já existe um plano em geração para {name}.")

    t0 = time.perf_counter()
    try:
        weak = collect_weak_skills(student_rows(rows, student))
        if not weak:
            return ReportOutcome(
                STATUS_NO_WEAK_SKILLS,
                message=f"{name} não possui habilidades abaixo de 100%.",
            )

        synthesis = synthesize_plan(name, weak, generate)
        content = export_plan(name, synthesis.plan, weak)
    except ExportError:
        logger.exception("remediation export failed for %s", name)
        return ReportOutcome(STATUS_FAILED, message="Não foi possível gerar o documento do plano.")
    except Exception:
        logger.exception("remediation report failed for %s", name)
        return ReportOutcome(STATUS_FAILED, message="Não foi possível gerar o plano de intervenção.")
    finally:
        registry.release(student)

    logger.info("remediation/report %s (%s) %.3fs", name, synthesis.source, time.perf_counter() - t0)
    return ReportOutcome(
        STATUS_OK,
        filename=remediation_filename(name),
        content=content,
        plan_source=synthesis.source,
        message=f"Plano de intervenção gerado para {name}.",
    )
