from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Optional

from sqlalchemy.orm import Session

from cbtprep import config
from cbtprep.models.payment import Payment, PAYMENT_SUCCESS
from cbtprep.models.user import User

logger = logging.getLogger(__name__)

SOURCE_PREMIUM = "premium"
SOURCE_ALLOWLIST = "predefined"
SOURCE_PAYMENT = "payment"


@dataclass
class AccessDecision:
    allowed: bool
    reason: Optional[str] = None
    upgraded: bool = False
    source: Optional[str] = None


def match_code(db: Session, user: User, code: str, allowlist: Optional[Iterable[str]] = None) -> Optional[str]:
    """Returns where a code comes from (allow-list or payment), or None if it is not valid for the user."""
    code = (code or "").strip()
    if not code:
        return None
    if allowlist is None:
        allowlist = config.UNLOCK_CODES
    if code in set(allowlist):
        return SOURCE_ALLOWLIST

    paid = (
        db.query(Payment.id)
        .filter(
            Payment.user_id == user.id,
            Payment.status == PAYMENT_SUCCESS,
            Payment.unlock_code == code,
        )
        .first()
    )
    return SOURCE_PAYMENT if paid else None


def authorize(
    db: Session,
    user: User,
    code: Optional[str] = None,
    allowlist: Optional[Iterable[str]] = None,
) -> AccessDecision:
    """
    Decides whether the user may sit a CBT exam.

    Rules:
      1) premium users are always allowed;
      2) otherwise the presented code must be in the configured allow-list
         or equal the unlock code of one of the user's successful payments.

    Side effect: a valid code upgrades the user to premium (committed here),
    reported as upgraded=True. An invalid or missing code changes nothing.
    """
    if user.is_premium:
        return AccessDecision(allowed=True, source=SOURCE_PREMIUM)

    code = (code or "").strip()
    if not code:
        return AccessDecision(allowed=False, reason="Premium access required. Enter an unlock code or complete payment.")

    source = match_code(db, user, code, allowlist)
    if source is None:
        logger.info("Rejected unlock code for user %s", user.id)
        return AccessDecision(allowed=False, reason="Invalid unlock code. Please check your code and try again.")

    user.is_premium = True
    user.is_activated = True
    db.commit()
    logger.info("User %s upgraded to premium via %s unlock code", user.id, source)
    return AccessDecision(allowed=True, upgraded=True, source=source)
