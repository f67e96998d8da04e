"""
Refund policy engine.

A pure decision function: given when the event starts, the current time,
and an optional operator override, decide how a cancellation is refunded.
No database or network access happens here.

Rules, in order:
    1. Operator override: True -> full_refund, False -> no_refund
    2. 72 or more hours before the event -> full_refund
    3. Same calendar day as the event -> no_refund
    4. Anything else -> reschedule_credit (held as a one-time credit)

Calendar days are compared in the business time zone
(settings.BUSINESS_TIME_ZONE). Naive datetimes are taken to be in that
zone already.

Usage:
    from payments.refund_policy import decide

    decision = decide(order.event_start_at, timezone.now())
    if decision.refundable:
        RefundService.execute(order.id, decision, reason)
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import datetime, tzinfo
from zoneinfo import ZoneInfo

from django.conf import settings
from django.db import models

FULL_REFUND_HOURS = 72
CREDIT_VALIDITY_MONTHS = 12


class RefundPolicy(models.TextChoices):
    FULL_REFUND = "full_refund", "Full Refund"
    RESCHEDULE_CREDIT = "reschedule_credit", "Reschedule Credit"
    NO_REFUND = "no_refund", "No Refund"


POLICY_MESSAGES = {
    RefundPolicy.FULL_REFUND: (
        "Your cancellation qualifies for a full refund. The refund will be "
        "processed automatically and should appear in your account within "
        "5-10 business days."
    ),
    RefundPolicy.NO_REFUND: (
        "Since you're cancelling on the day of the event, unfortunately no "
        "refund or credit can be issued per our cancellation policy."
    ),
    RefundPolicy.RESCHEDULE_CREDIT: (
        "Since you're cancelling less than 72 hours before your event, your "
        "payment will be held as a credit that can be applied one time toward "
        f"a rescheduled date within {CREDIT_VALIDITY_MONTHS} months."
    ),
}

OVERRIDE_MESSAGES = {
    True: (
        "Your cancellation has been approved for a full refund. The refund "
        "will be processed automatically and should appear in your account "
        "within 5-10 business days."
    ),
    False: (
        "Your cancellation has been reviewed and no refund or credit will be "
        "issued for this order."
    ),
}


@dataclass(frozen=True)
class RefundDecision:
    """
    Outcome of a refund policy evaluation.

    Never persisted as its own row; a copy is stored in the order's
    cancellation metadata for audit.
    """

    policy: str
    refundable: bool
    message: str
    hours_until_event: float
    overridden: bool = False

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> RefundDecision:
        return cls(
            policy=data["policy"],
            refundable=bool(data["refundable"]),
            message=data["message"],
            hours_until_event=float(data.get("hours_until_event", 0.0)),
            overridden=bool(data.get("overridden", False)),
        )


def get_business_timezone() -> tzinfo:
    return ZoneInfo(getattr(settings, "BUSINESS_TIME_ZONE", "America/Detroit"))


def _localize(value: datetime, tz: tzinfo) -> datetime:
    if value.tzinfo is None or value.tzinfo.utcoffset(value) is None:
        return value.replace(tzinfo=tz)
    return value.astimezone(tz)


def hours_until(event_start: datetime, now: datetime, tz: tzinfo | None = None) -> float:
    """Signed hours from ``now`` to ``event_start``; negative once it has started."""
    tz = tz or get_business_timezone()
    delta = _localize(event_start, tz) - _localize(now, tz)
    return delta.total_seconds() / 3600


def decide(
    event_start: datetime,
    now: datetime,
    manual_override: bool | None = None,
    business_tz: tzinfo | None = None,
) -> RefundDecision:
    """
    Decide the refund policy for a cancellation at ``now``.

    Args:
        event_start: When the rental event starts
        now: The moment of cancellation
        manual_override: Operator decision; None applies the time rules
        business_tz: Zone for calendar-day comparison (defaults to
            settings.BUSINESS_TIME_ZONE)

    Returns:
        RefundDecision for any combination of inputs, including events
        already in the past
    """
    tz = business_tz or get_business_timezone()
    event_local = _localize(event_start, tz)
    now_local = _localize(now, tz)
    hours = (event_local - now_local).total_seconds() / 3600

    if manual_override is not None:
        policy = RefundPolicy.FULL_REFUND if manual_override else RefundPolicy.NO_REFUND
        return RefundDecision(
            policy=policy.value,
            refundable=bool(manual_override),
            message=OVERRIDE_MESSAGES[bool(manual_override)],
            hours_until_event=hours,
            overridden=True,
        )

    if hours >= FULL_REFUND_HOURS:
        policy = RefundPolicy.FULL_REFUND
    elif event_local.date() == now_local.date():
        policy = RefundPolicy.NO_REFUND
    else:
        # Includes events already past on an earlier day
        policy = RefundPolicy.RESCHEDULE_CREDIT

    return RefundDecision(
        policy=policy.value,
        refundable=policy == RefundPolicy.FULL_REFUND,
        message=POLICY_MESSAGES[policy],
        hours_until_event=hours,
    )
