"""
Test pipeline stage validation and follow-up urgency
"""

from datetime import timedelta

import pytest

from leadcore.app.core.errors import ValidationError
from leadcore.app.models.leads import PipelineStage
from leadcore.app.services.stage_machine import (
    FUNNEL_ORDER,
    build_pipeline_board,
    follow_up_urgency,
    next_follow_up,
    parse_stage,
    stage_change,
)

from .conftest import NOW, make_follow_up, make_lead


def test_parse_stage_accepts_literals_and_members():
    assert parse_stage("proposal_sent") == PipelineStage.PROPOSAL_SENT
    assert parse_stage(PipelineStage.WON) == PipelineStage.WON


def test_parse_stage_rejects_unknown_literal():
    with pytest.raises(ValidationError) as exc_info:
        parse_stage("closing")

    assert exc_info.value.context["field"] == "pipeline_stage"


def test_any_stage_can_follow_any_other():
    assert stage_change("new_lead", NOW)["pipeline_stage"] == PipelineStage.NEW_LEAD
    assert stage_change("lost", NOW)["pipeline_stage"] == PipelineStage.LOST


def test_stage_change_only_touches_stage_and_timestamp():
    delta = stage_change("qualified", NOW)

    assert delta == {"pipeline_stage": PipelineStage.QUALIFIED, "updated_at": NOW}


def test_next_follow_up_is_earliest_incomplete():
    follow_ups = [
        make_follow_up(id="later", scheduled_at=NOW + timedelta(days=3)),
        make_follow_up(id="done", scheduled_at=NOW - timedelta(days=5), is_completed=True, completed_at=NOW),
        make_follow_up(id="soonest", scheduled_at=NOW + timedelta(hours=2)),
        make_follow_up(id="other-lead", lead_id="lead-2", scheduled_at=NOW - timedelta(days=1)),
    ]

    assert next_follow_up("lead-1", follow_ups).id == "soonest"


def test_overdue_when_next_follow_up_is_in_the_past():
    follow_ups = [make_follow_up(scheduled_at=NOW - timedelta(minutes=1))]

    urgency = follow_up_urgency("lead-1", follow_ups, NOW)

    assert urgency.is_overdue is True
    assert urgency.next_follow_up.id == "fu-1"


def test_no_follow_up_is_never_overdue():
    urgency = follow_up_urgency("lead-1", [], NOW)

    assert urgency.next_follow_up is None
    assert urgency.is_overdue is False


def test_pipeline_board_groups_in_funnel_order():
    leads = [
        make_lead(id="a", mobile="1", pipeline_stage=PipelineStage.NEGOTIATION),
        make_lead(id="b", mobile="2", pipeline_stage=PipelineStage.NEW_LEAD),
        make_lead(id="c", mobile="3", pipeline_stage=PipelineStage.NEGOTIATION),
    ]
    follow_ups = [make_follow_up(lead_id="c", scheduled_at=NOW - timedelta(days=1))]

    board = build_pipeline_board(leads, follow_ups, NOW)

    assert [column.stage for column in board] == FUNNEL_ORDER
    columns = {column.stage: column for column in board}
    assert columns[PipelineStage.NEW_LEAD].count == 1
    negotiation = columns[PipelineStage.NEGOTIATION]
    assert [card.lead.id for card in negotiation.leads] == ["a", "c"]
    assert [card.is_overdue for card in negotiation.leads] == [False, True]
