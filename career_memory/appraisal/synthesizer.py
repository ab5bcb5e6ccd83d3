"""
Appraisal Synthesizer — derives a read-only appraisal from the full entry set.

Pure with respect to entries: nothing is written back, and repeated calls
accumulate no state. Every key achievement must cite stored entries;
claims resting only on unverified entries (a skipped question, or a
reflection follow-up still unanswered) are demoted to the gap analysis.
"""

from collections import Counter
from datetime import datetime
from typing import List, Optional

from career_memory.errors import UserInputRejected
from career_memory.models.appraisal import AppraisalSummary
from career_memory.models.collaborator import AchievementClaim
from career_memory.models.entry import CareerEntry, EntryCategory, as_utc, utc_now
from career_memory.reasoning.collaborator import ReasoningCollaborator


def appraisal_context(entry: CareerEntry) -> dict:
    context = entry.to_context()
    context["verified"] = not entry.is_unverified
    return context


def entry_period(entries: List[CareerEntry]) -> str:
    stamps = [e.timestamp for e in entries]
    return f"{min(stamps).date().isoformat()} – {max(stamps).date().isoformat()}"


class AppraisalSynthesizer:
    """Builds an AppraisalSummary via the reasoning collaborator."""

    def __init__(self, collaborator: ReasoningCollaborator):
        self.collaborator = collaborator

    def synthesize(
        self, entries: List[CareerEntry], now: Optional[datetime] = None
    ) -> AppraisalSummary:
        if not entries:
            raise UserInputRejected("Log some work before generating an appraisal.")

        payload = self.collaborator.synthesize_appraisal(
            [appraisal_context(e) for e in entries]
        )

        known = {e.entry_id: e for e in entries}
        unverified = [e.entry_id for e in entries if e.is_unverified]

        achievements: List[AchievementClaim] = []
        demoted: List[str] = []
        for claim in payload.key_achievements:
            cited = [i for i in claim.entry_ids if i in known]
            if not cited:
                continue                    # untraceable
            if all(known[i].is_unverified for i in cited):
                demoted.append(claim.narrative)
                continue
            achievements.append(AchievementClaim(narrative=claim.narrative, entry_ids=cited))

        gap_analysis = payload.gap_analysis.strip()
        notes = []
        if demoted:
            notes.append(
                "Unconfirmed claims (follow-up questions were skipped or left unanswered): "
                + "; ".join(demoted) + "."
            )
        missing_ids = [i for i in unverified if i not in gap_analysis]
        if missing_ids:
            notes.append(
                f"{len(missing_ids)} entries lack confirmed detail because their "
                f"follow-up question was skipped or is unanswered: {', '.join(missing_ids)}."
            )
        if notes:
            gap_analysis = " ".join([gap_analysis] + notes).strip()

        counts = Counter(e.category for e in entries)
        return AppraisalSummary(
            executive_summary=payload.executive_summary.strip(),
            period=(payload.period or "").strip() or entry_period(entries),
            key_achievements=achievements,
            top_strengths=list(payload.top_strengths),
            skills_and_growth=payload.skills_and_growth.strip(),
            areas_for_development=list(payload.areas_for_development),
            gap_analysis=gap_analysis,
            unverified_entry_ids=unverified,
            category_counts={c.value: counts.get(c, 0) for c in EntryCategory},
            generated_at=as_utc(now) if now else utc_now(),
        )
