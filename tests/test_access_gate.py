from uuid import uuid4

from cbtprep.models import Payment
from cbtprep.models.payment import PAYMENT_PENDING, PAYMENT_SUCCESS
from cbtprep.utils.access_gate import (
    authorize,
    match_code,
    SOURCE_ALLOWLIST,
    SOURCE_PAYMENT,
    SOURCE_PREMIUM,
)


def _payment(db, user, code, status):
    db.add(Payment(
        id=str(uuid4()),
        user_id=user.id,
        reference=f"CBT_{uuid4().hex}",
        amount=300000,
        email=user.email,
        status=status,
        unlock_code=code,
    ))
    db.commit()


def test_premium_user_is_allowed_without_code(db, premium_user):
    decision = authorize(db, premium_user)
    assert decision.allowed
    assert decision.source == SOURCE_PREMIUM
    assert not decision.upgraded


def test_missing_code_is_denied(db, user):
    decision = authorize(db, user, "  ")
    assert not decision.allowed
    db.refresh(user)
    assert user.is_premium is False


def test_allowlisted_code_upgrades_user(db, user):
    decision = authorize(db, user, "08148800")
    assert decision.allowed and decision.upgraded
    assert decision.source == SOURCE_ALLOWLIST
    db.refresh(user)
    assert user.is_premium is True
    assert user.is_activated is True


def test_invalid_code_changes_nothing(db, user):
    decision = authorize(db, user, "12345678")
    assert not decision.allowed
    assert "Invalid unlock code" in decision.reason
    db.refresh(user)
    assert user.is_premium is False


def test_own_successful_payment_code_is_accepted(db, user):
    _payment(db, user, "55554444", PAYMENT_SUCCESS)
    decision = authorize(db, user, "55554444")
    assert decision.allowed
    assert decision.source == SOURCE_PAYMENT


def test_pending_payment_code_is_rejected(db, user):
    _payment(db, user, "55554444", PAYMENT_PENDING)
    assert not authorize(db, user, "55554444").allowed


def test_someone_elses_payment_code_is_rejected(db, user, make_user):
    other = make_user()
    _payment(db, other, "77776666", PAYMENT_SUCCESS)
    assert match_code(db, user, "77776666") is None
    assert not authorize(db, user, "77776666").allowed


def test_custom_allowlist(db, user):
    assert match_code(db, user, "abc", allowlist=["abc"]) == SOURCE_ALLOWLIST
    assert match_code(db, user, "08148800", allowlist=["abc"]) is None
