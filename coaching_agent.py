# coaching_agent.py

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from langchain_core.output_parsers import StrOutputParser
from langchain_core.prompts import PromptTemplate
from langchain_core.runnables import Runnable, RunnableSequence
from langchain_ollama import OllamaLLM

from aggregator import TrainingNeedsSummary
from rubric import Rubric
from sessions import MAX_POSSIBLE_SCORE, SessionRecord

LOGGER = logging.getLogger(__name__)

DEFAULT_MODEL = "llama3"

COACHING_FALLBACK = "AI generation limited. Use score ledger for manual coaching."
COACHING_EMPTY = "Analysis generated. Review manual ledger."
REPORT_FALLBACK = "Failed to analyze trends. Please check Hub connectivity."
REPORT_EMPTY = "Analysis complete. Review ledger metrics."
REPORT_NO_DATA = "No data available for analysis."


# ----------------- Prompts -----------------


COACHING_TEMPLATE = """
Analyze this retail demo excellence audit.
Specialist: {staff_name}
Ref: {audit_reference}

SCORING CONTEXT:
Target base: {max_score} points. Total Earned: {total_score} / {max_score} (Base)

DETAIL SCORES:
{scores_text}

SUPERVISOR QUALITATIVE NOTES:
Series-level: {comments_text}
Overall Summary: {overall_comment}

Generate a coaching feedback report following these sections:
1. CELEBRATION: Praise specific strengths and bonus achievements.
2. REFINEMENT: Identify 2 demo techniques to sharpen.
3. ACTION PLAN: 3 clear talking points for their next floor shift.

TONE: Professional, analytical, and supportive retail coaching style.
"""


TRAINING_NEEDS_TEMPLATE = """
Training Needs Analysis (TNA) - Regional Hub Report
Total Audits Analyzed: {total_audits}

AGGREGATE PILLAR DATA:
{pillar_text}

TOP {gap_count} SKILL GAPS (Lowest Proficiency):
{gaps_text}

TASK:
Generate a high-level strategic Training Needs Analysis.
Structure the response using these Markdown headers:
### EXECUTIVE SUMMARY
### PILLAR PERFORMANCE ANALYSIS (S1-S5)
### CRITICAL GAPS & TRENDS
### 30-DAY STRATEGIC ACTION PLAN

FOCUS: Identify the pillar needing immediate intervention and provide 3 concrete steps for trainers to take in the field.
Use only the numbers above; do not invent additional statistics.
"""


def _format_points(value: float) -> str:
    return f"{value:g}"


def scores_text(session: SessionRecord, rubric: Rubric) -> str:
    lines = []
    for item in rubric:
        earned = session.scores.get(item.id, 0)
        bonus = " (Bonus)" if item.is_bonus else ""
        lines.append(f"{item.task}: {_format_points(earned)}/{_format_points(item.max_points)}{bonus}")
    return "\n".join(lines)


def comments_text(session: SessionRecord) -> str:
    return "\n".join(
        f"{series} observations: {comment}"
        for series, comment in session.category_comments.items()
        if comment
    )


def pillar_text(summary: TrainingNeedsSummary) -> str:
    return "\n".join(f"{series}: {pct}% Proficiency" for series, pct in summary.series_averages.items())


def gaps_text(summary: TrainingNeedsSummary) -> str:
    return "\n".join(f"- {gap.task}: {round(gap.percent)}% avg score" for gap in summary.gaps)


# ----------------- CoachingAgent -----------------


class CoachingAgent:
    def __init__(
        self,
        *,
        model: str = DEFAULT_MODEL,
        temperature: float = 0.2,
        base_url: str | None = None,
        timeout: float | None = 60.0,
        llm: Optional[Runnable] = None,
    ) -> None:
        if llm is None:
            llm_kwargs: Dict[str, Any] = {"model": model, "temperature": temperature}
            if base_url is not None:
                llm_kwargs["base_url"] = base_url
            if timeout is not None:
                llm_kwargs["client_kwargs"] = {"timeout": timeout}
            llm = OllamaLLM(**llm_kwargs)
        self._llm = llm
        self.model = model

        self._coaching_chain = self._build_chain(
            COACHING_TEMPLATE,
            [
                "staff_name",
                "audit_reference",
                "max_score",
                "total_score",
                "scores_text",
                "comments_text",
                "overall_comment",
            ],
        )
        self._report_chain = self._build_chain(
            TRAINING_NEEDS_TEMPLATE,
            ["total_audits", "pillar_text", "gap_count", "gaps_text"],
        )

    def _build_chain(self, template: str, input_variables: list[str]) -> RunnableSequence:
        prompt = PromptTemplate(template=template, input_variables=input_variables)
        return prompt | self._llm | StrOutputParser()

    def _invoke(self, chain: RunnableSequence, payload: Dict[str, Any], *, empty: str, fallback: str) -> str:
        try:
            text = chain.invoke(payload)
        except Exception as exc:  # network, model and timeout errors all end here
            LOGGER.warning("Text generation failed (%s): %s", type(exc).__name__, exc)
            return fallback
        text = (text or "").strip()
        return text or empty

    # ---------- Single-session coaching feedback ----------

    def coaching_feedback(self, session: SessionRecord, rubric: Rubric) -> str:
        """Three-part coaching note for one audit."""
        payload = {
            "staff_name": session.staff_name,
            "audit_reference": session.audit_reference,
            "max_score": MAX_POSSIBLE_SCORE,
            "total_score": _format_points(session.total_score),
            "scores_text": scores_text(session, rubric),
            "comments_text": comments_text(session),
            "overall_comment": session.overall_comment,
        }
        return self._invoke(self._coaching_chain, payload, empty=COACHING_EMPTY, fallback=COACHING_FALLBACK)

    # ---------- Aggregate training-needs report ----------

    def training_needs_report(self, summary: TrainingNeedsSummary) -> str:
        """Four-section markdown report built only from pre-aggregated numbers."""
        if summary.total_audits == 0:
            return REPORT_NO_DATA
        payload = {
            "total_audits": summary.total_audits,
            "pillar_text": pillar_text(summary),
            "gap_count": len(summary.gaps),
            "gaps_text": gaps_text(summary),
        }
        return self._invoke(self._report_chain, payload, empty=REPORT_EMPTY, fallback=REPORT_FALLBACK)
