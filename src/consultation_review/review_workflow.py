"""Consultation review workflow.

A 2-step pipeline over one consultation snapshot:
1. Reviews the consultation: prices every order, suggests bundles, detects
   justification triggers and runs HMO compliance checks
2. Applies the finalize gate (attempt, or confirm when requested) to that
   same review
"""

import logging
from typing import Annotated, Literal

from pydantic import BaseModel
from workflows import Context, Workflow, step
from workflows.events import Event, StartEvent, StopEvent
from workflows.resource import Resource

from .config import ReviewConfig, get_review_config
from .finalization import attempt_finalize, confirm_finalize, review_consultation
from .reference import InMemoryReferenceData, get_reference_data
from .schemas import ConsultationContext, ConsultationFormData, ConsultationReview

logger = logging.getLogger(__name__)


# --- Events ---


class ReviewStartEvent(StartEvent):
    """Start event carrying the consultation snapshot to review."""

    form: ConsultationFormData
    context: ConsultationContext
    confirm: bool = False


class StatusEvent(Event):
    """Progress status update for the client."""

    message: str
    level: Literal["info", "warning", "error"] = "info"


class ReviewCompleteEvent(Event):
    """Emitted after prices, triggers, bundles and compliance are evaluated."""

    pass


# --- Workflow State ---


class WorkflowState(BaseModel):
    """State persisted across workflow steps."""

    form: ConsultationFormData | None = None
    context: ConsultationContext | None = None
    confirm: bool = False
    review: ConsultationReview | None = None


class ConsultationReviewWorkflow(Workflow):
    """Review a consultation and gate its finalization."""

    @step()
    async def review_orders(
        self,
        event: ReviewStartEvent,
        ctx: Context[WorkflowState],
        reference: Annotated[InMemoryReferenceData, Resource(get_reference_data)],
        config: Annotated[ReviewConfig, Resource(get_review_config)],
    ) -> ReviewCompleteEvent:
        """Price the orders and run every review check on the snapshot."""
        form = event.form
        order_count = len(form.lab_orders) + len(form.prescription_items)
        ctx.write_event_to_stream(StatusEvent(message=f"Pricing {order_count} orders..."))

        review = review_consultation(form, event.context, reference, config)

        async with ctx.store.edit_state() as state:
            state.form = form
            state.context = event.context
            state.confirm = event.confirm
            state.review = review

        flagged = review.financial_summary.flagged_items
        if flagged:
            ctx.write_event_to_stream(
                StatusEvent(
                    message=f"{len(flagged)} item(s) need billing follow-up",
                    level="warning",
                )
            )

        trigger_report, compliance = review.trigger_report, review.compliance
        if trigger_report.unresolved or compliance.failing_alerts:
            ctx.write_event_to_stream(
                StatusEvent(
                    message=(
                        f"Found {trigger_report.unresolved_count} unresolved justification(s) "
                        f"and {len(compliance.failing_alerts)} failing HMO rule(s)"
                    ),
                    level="warning",
                )
            )
        else:
            ctx.write_event_to_stream(StatusEvent(message="All review checks passed"))

        return ReviewCompleteEvent()

    @step()
    async def finalize_gate(
        self,
        event: ReviewCompleteEvent,
        ctx: Context[WorkflowState],
        reference: Annotated[InMemoryReferenceData, Resource(get_reference_data)],
        config: Annotated[ReviewConfig, Resource(get_review_config)],
    ) -> StopEvent:
        """Attempt or confirm finalization and return the outcome."""
        state = await ctx.store.get_state()

        gate = confirm_finalize if state.confirm else attempt_finalize
        outcome = gate(state.form, state.context, reference, config, review=state.review)

        if outcome.blocked:
            ctx.write_event_to_stream(
                StatusEvent(
                    message=f"Justification required: {outcome.trigger.trigger_description}",
                    level="warning",
                )
            )
        else:
            ctx.write_event_to_stream(
                StatusEvent(message=f"Consultation is {outcome.form.status.value}")
            )

        return StopEvent(
            result={
                "review": state.review.model_dump(mode="json"),
                "outcome": outcome.model_dump(mode="json"),
            }
        )


workflow = ConsultationReviewWorkflow(timeout=None)
