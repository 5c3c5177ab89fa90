"""
Booking status state machine.

pending -> confirmed -> in_progress -> completed, with cancelled reachable from
pending or confirmed. completed and cancelled are terminal. Each transition
belongs to exactly one party of the booking.
"""
from typing import Dict, FrozenSet, Optional, Tuple

from fastapi import HTTPException

PENDING = "pending"
CONFIRMED = "confirmed"
IN_PROGRESS = "in_progress"
COMPLETED = "completed"
CANCELLED = "cancelled"

STATUSES = (PENDING, CONFIRMED, IN_PROGRESS, COMPLETED, CANCELLED)
# statuses that occupy the provider's calendar
BLOCKING = (CONFIRMED, IN_PROGRESS)
EDITABLE = (PENDING, CONFIRMED)

PROVIDER = "provider"
CUSTOMER = "customer"

TRANSITIONS: Dict[str, FrozenSet[Tuple[str, str]]] = {
    PROVIDER: frozenset({
        (PENDING, CONFIRMED),
        (CONFIRMED, IN_PROGRESS),
        (IN_PROGRESS, COMPLETED),
    }),
    CUSTOMER: frozenset({
        (PENDING, CANCELLED),
        (CONFIRMED, CANCELLED),
    }),
}


def actor_for_target(target: str) -> Optional[str]:
    """Return the only party allowed to move a booking into ``target``, if any."""
    for actor, edges in TRANSITIONS.items():
        if any(dst == target for _, dst in edges):
            return actor
    return None


def check_transition(current: str, target: str, actor: str) -> None:
    if target not in STATUSES:
        raise HTTPException(status_code=400, detail="Invalid status")
    allowed_actor = actor_for_target(target)
    if allowed_actor is None:
        raise HTTPException(status_code=409, detail=f"Cannot change booking status from {current} to {target}")
    if actor != allowed_actor:
        if allowed_actor == CUSTOMER:
            raise HTTPException(status_code=403, detail="Only the customer can cancel a booking")
        raise HTTPException(
            status_code=403,
            detail="Only provider can update status to confirmed, in progress, or completed",
        )
    if (current, target) not in TRANSITIONS[actor]:
        raise HTTPException(status_code=409, detail=f"Cannot change booking status from {current} to {target}")


def compute_total_price(price: float, price_type: str, duration: float) -> float:
    if price_type == "hourly":
        return price * duration
    return price
