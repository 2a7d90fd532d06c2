"""
TransitionPublisher -- after-commit notification of claim transitions.

Responsibility:
    Holds the registered subscribers (notification, audit, anything else
    outside the kernel) and delivers each ClaimTransitionEvent to them
    once the transition has committed.

Delivery is fire-and-forget: a subscriber that raises is logged at
WARNING and the remaining subscribers still run.  Nothing a subscriber
does can undo or fail the committed transition.
"""

from typing import Callable

from welfare_kernel.domain.claim_lifecycle import ClaimTransitionEvent
from welfare_kernel.logging_config import get_logger

logger = get_logger("services.transition_publisher")

TransitionSubscriber = Callable[[ClaimTransitionEvent], None]


def log_transition(event: ClaimTransitionEvent) -> None:
    """Default subscriber: one structured log line per transition."""
    logger.info(
        "claim_transition",
        extra={
            "claim_id": str(event.claim_id),
            "member_id": str(event.member_id),
            "action": event.action.value,
            "old_state": event.old_state.value if event.old_state else None,
            "new_state": event.new_state.value,
            "actor_id": str(event.actor_id),
            "occurred_at": event.occurred_at.isoformat(),
            "approved_amount": (
                str(event.approved_amount) if event.approved_amount is not None else None
            ),
        },
    )


class TransitionPublisher:
    """Registry of transition subscribers."""

    def __init__(self, subscribers: list[TransitionSubscriber] | None = None):
        self._subscribers: list[TransitionSubscriber] = list(subscribers or [])

    @classmethod
    def with_logging(cls) -> "TransitionPublisher":
        return cls([log_transition])

    @property
    def subscribers(self) -> tuple[TransitionSubscriber, ...]:
        return tuple(self._subscribers)

    def subscribe(self, subscriber: TransitionSubscriber) -> TransitionSubscriber:
        """Register ``subscriber``.  Returns it so this can be used as a decorator."""
        if subscriber not in self._subscribers:
            self._subscribers.append(subscriber)
        return subscriber

    def unsubscribe(self, subscriber: TransitionSubscriber) -> None:
        if subscriber in self._subscribers:
            self._subscribers.remove(subscriber)

    def publish(self, event: ClaimTransitionEvent) -> None:
        for subscriber in list(self._subscribers):
            try:
                subscriber(event)
            except Exception:
                logger.warning(
                    "transition_subscriber_failed",
                    extra={
                        "claim_id": str(event.claim_id),
                        "action": event.action.value,
                        "subscriber": getattr(subscriber, "__name__", repr(subscriber)),
                    },
                    exc_info=True,
                )
