"""
MarketPro Lead Scoring Engine
Rule-based lead temperature scoring from attributes and activity signals
"""

from datetime import datetime
from typing import List, Optional, Sequence

from pydantic import BaseModel

from ..core.timeutils import utcnow
from ..models.activities import NoteType
from ..models.leads import InterestLevel, LeadSource, LeadStatus, PipelineStage, ScoreTier
from ..models.snapshots import CallLogSnapshot, FollowUpSnapshot, LeadSnapshot, NoteSnapshot

BASELINE_SCORE = 50
MIN_SCORE = 0
MAX_SCORE = 100
HOT_THRESHOLD = 70
WARM_THRESHOLD = 40
REASON_FACTOR_LIMIT = 4

INTERACTION_NOTE_TYPES = (NoteType.WHATSAPP, NoteType.CALL)

SOURCE_POINTS = {
    LeadSource.REFERRAL: (15, "Referral"),
    LeadSource.GOOGLE: (10, "Google"),
    LeadSource.WEBSITE: (8, "Website"),
}

STAGE_POINTS = {
    PipelineStage.NEGOTIATION: (25, "Negotiation"),
    PipelineStage.PROPOSAL_SENT: (20, "Proposal sent"),
    PipelineStage.QUALIFIED: (15, "Qualified"),
    PipelineStage.CONTACTED: (5, "Contacted"),
}

STATUS_POINTS = {
    LeadStatus.INTERESTED: (15, "Interested"),
    LeadStatus.CONVERTED: (30, "Converted"),
    LeadStatus.NOT_INTERESTED: (-30, "Not interested"),
}

INTEREST_POINTS = {
    InterestLevel.HIGH: (20, "High interest"),
    InterestLevel.MEDIUM: (10, "Medium interest"),
    InterestLevel.LOW: (-10, "Low interest"),
}


class ScoreFactor(BaseModel):
    """One additive adjustment and its operator-facing label"""
    label: str
    points: int


class ScoreResult(BaseModel):
    """Outcome of scoring one lead"""
    score: int
    tier: ScoreTier
    reason: str
    factors: List[ScoreFactor]


def tier_for(score: int) -> ScoreTier:
    """Map a clamped score to its temperature tier"""
    if score >= HOT_THRESHOLD:
        return ScoreTier.HOT
    if score >= WARM_THRESHOLD:
        return ScoreTier.WARM
    return ScoreTier.COLD


def days_since_activity(lead: LeadSnapshot, now: datetime) -> int:
    """Whole days since the later of last activity and creation"""
    last_activity = lead.created_at
    if lead.last_activity_at and lead.last_activity_at > last_activity:
        last_activity = lead.last_activity_at
    return (now - last_activity).days


def score_lead(
    lead: LeadSnapshot,
    follow_ups: Sequence[FollowUpSnapshot] = (),
    notes: Sequence[NoteSnapshot] = (),
    call_logs: Sequence[CallLogSnapshot] = (),
    now: Optional[datetime] = None,
) -> ScoreResult:
    """Score a lead.

    Starts from a neutral baseline and applies independent additive
    adjustments in a fixed order. The reason string lists the first
    four contributing factors in that order, so the order is part of
    the observable output.

    Activity collections may contain rows for other leads; only rows
    belonging to ``lead`` are counted.
    """
    now = now or utcnow()
    factors: List[ScoreFactor] = []

    def add(points: int, label: str):
        factors.append(ScoreFactor(label=label, points=points))

    # 1. Interaction volume
    calls = sum(1 for c in call_logs if c.lead_id == lead.id)
    interaction_notes = sum(
        1 for n in notes if n.lead_id == lead.id and n.type in INTERACTION_NOTE_TYPES
    )
    interactions = calls + interaction_notes
    if interactions >= 5:
        add(20, f"{interactions} interactions")
    elif interactions >= 2:
        add(10, f"{interactions} interactions")
    elif interactions > 0:
        add(5, "Has interaction")

    # 2. Budget tier
    if lead.budget:
        if lead.budget >= 50000:
            add(25, "High budget")
        elif lead.budget >= 20000:
            add(15, "Good budget")
        elif lead.budget >= 5000:
            add(10, "Has budget")

    # 3. Declared interest
    if lead.interest_level in INTEREST_POINTS:
        add(*INTEREST_POINTS[lead.interest_level])

    # 4. Recency
    idle_days = days_since_activity(lead, now)
    if idle_days <= 1:
        add(20, "Active today")
    elif idle_days <= 3:
        add(15, "Active recently")
    elif idle_days <= 7:
        add(10, "Active this week")
    elif idle_days > 30:
        add(-15, "Inactive >30d")

    # 5. Data completeness
    if lead.email:
        add(5, "Has email")
    if lead.city:
        add(3, "Location provided")

    # 6. Source quality
    if lead.source in SOURCE_POINTS:
        add(*SOURCE_POINTS[lead.source])

    # 7. Pipeline progress
    if lead.pipeline_stage in STAGE_POINTS:
        add(*STAGE_POINTS[lead.pipeline_stage])

    # 8. Status signal
    if lead.status in STATUS_POINTS:
        add(*STATUS_POINTS[lead.status])

    # 9. Completed follow-ups
    completed = sum(1 for f in follow_ups if f.lead_id == lead.id and f.is_completed)
    if completed >= 3:
        add(15, f"{completed} completed follow-ups")
    elif completed > 0:
        add(8, "Has follow-ups")

    raw = BASELINE_SCORE + sum(f.points for f in factors)
    score = max(MIN_SCORE, min(MAX_SCORE, raw))

    return ScoreResult(
        score=score,
        tier=tier_for(score),
        reason=", ".join(f.label for f in factors[:REASON_FACTOR_LIMIT]),
        factors=factors,
    )
