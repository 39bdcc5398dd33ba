"""
Checkout links for delivered works.

The work's stored payment link (copied from the plan) wins; otherwise a fresh
provider checkout is created for the snapshotted amount.
"""
from typing import Optional

from recreate.core.config import settings, Settings
from recreate.core.database import Database
from recreate.core.errors import DependencyError
from recreate.core.logging import log_event
from recreate.features.payments.provider import PaymentProvider, PaymentProviderError
from recreate.features.works.service import check_transition
from recreate.models.work import CONFIRM_PAYMENT


def get_checkout_url(
    db: Database,
    payments: Optional[PaymentProvider],
    work_id: str,
    actor_id: str,
    settings_obj: Optional[Settings] = None,
) -> str:
    """
    Requester-only, and only while the work awaits payment (status delivered).

    Raises:
        NotFoundError: not the requester of an existing work
        InvalidStateError: work not delivered
        DependencyError: provider missing or failing
    """
    cfg = settings_obj or settings
    work = check_transition(db, work_id, actor_id, CONFIRM_PAYMENT)
    if work.payment_link:
        return work.payment_link

    if payments is None:
        raise DependencyError("Payment provider is not configured")

    return_url = f"{cfg.BASE_URL.rstrip('/')}/requests/sent"
    try:
        url = payments.create_checkout_url(
            amount=work.amount,
            currency=cfg.PAYMENT_CURRENCY,
            description=work.plan_title or f"Request #{work.sequential_id}",
            success_url=f"{return_url}?checkout=success&work={work.work_id}",
            cancel_url=return_url,
            metadata={"work_id": work.work_id, "requester_id": actor_id},
        )
    except PaymentProviderError as e:
        raise DependencyError(f"Could not create checkout: {e}")

    log_event("info", "work.checkout_created", user_id=actor_id, work_id=work_id, event_type="payment",
              extra={"amount": work.amount})
    return url
