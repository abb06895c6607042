from __future__ import annotations
import logging
from datetime import datetime
from uuid import uuid4

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from cbtprep import config
from cbtprep.database import get_db
from cbtprep.models.payment import Payment, PAYMENT_PENDING, PAYMENT_SUCCESS, PAYMENT_FAILED
from cbtprep.models.user import User
from cbtprep.schemas.payment import (
    InitializePaymentRequest,
    InitializePaymentResponse,
    VerifyPaymentRequest,
    VerifyPaymentResponse,
    ValidateCodeRequest,
    ValidateCodeResponse,
)
from cbtprep.utils.access_gate import authorize, match_code
from cbtprep.utils.auth import get_current_user
from cbtprep.utils.paystack import (
    PaystackClient,
    PaymentGatewayError,
    generate_reference,
    generate_unlock_code,
    get_payment_gateway,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/payments", tags=["Payments"])


@router.post("/initialize", response_model=InitializePaymentResponse)
def initialize_payment(
    payload: InitializePaymentRequest,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    gateway: PaystackClient = Depends(get_payment_gateway),
):
    """
    Opens a Paystack transaction for CBT access and records a pending payment.
    The unlock code is generated now but only becomes usable once the payment succeeds.
    """
    reference = generate_reference()
    amount = payload.amount or config.CBT_PRICE_KOBO

    try:
        data = gateway.initialize(
            email=user.email,
            amount=amount,
            reference=reference,
            callback_url=payload.callback_url,
            metadata={"user_id": user.id, "session_type": "cbt"},
        )
    except PaymentGatewayError as e:
        logger.error("Payment initialization failed for user %s: %s", user.id, e)
        raise HTTPException(status_code=502, detail="Failed to initialize payment")

    payment = Payment(
        id=str(uuid4()),
        user_id=user.id,
        reference=reference,
        gateway_reference=data.get("reference") or reference,
        amount=amount,
        email=user.email,
        status=PAYMENT_PENDING,
        unlock_code=generate_unlock_code(),
        payment_method="paystack",
    )
    db.add(payment)
    db.commit()

    logger.info("Payment %s initialized for user %s (%d kobo)", reference, user.id, amount)
    return InitializePaymentResponse(success=True, payment_url=data["authorization_url"], reference=reference)


@router.post("/verify", response_model=VerifyPaymentResponse)
def verify_payment(
    payload: VerifyPaymentRequest,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    gateway: PaystackClient = Depends(get_payment_gateway),
):
    payment = (
        db.query(Payment)
        .filter(Payment.reference == payload.reference, Payment.user_id == user.id)
        .first()
    )
    if not payment:
        raise HTTPException(status_code=404, detail="Payment not found")

    if payment.status == PAYMENT_SUCCESS:
        return VerifyPaymentResponse(success=True, status=payment.status,
                                     unlock_code=payment.unlock_code, message="Payment already verified")

    try:
        data = gateway.verify(payment.gateway_reference or payment.reference)
    except PaymentGatewayError as e:
        logger.error("Payment verification failed for %s: %s", payment.reference, e)
        raise HTTPException(status_code=502, detail="Failed to verify payment")

    if data.get("status") != PAYMENT_SUCCESS:
        payment.status = PAYMENT_FAILED
        db.commit()
        logger.info("Payment %s not successful: %s", payment.reference, data.get("status"))
        raise HTTPException(status_code=400, detail="Payment verification failed")

    payment.status = PAYMENT_SUCCESS
    payment.completed_at = datetime.utcnow()
    user.is_premium = True
    user.is_activated = True
    db.commit()

    logger.info("Payment %s verified, user %s is now premium", payment.reference, user.id)
    return VerifyPaymentResponse(success=True, status=payment.status,
                                 unlock_code=payment.unlock_code, message="Payment verified successfully")


@router.post("/validate-code", response_model=ValidateCodeResponse)
def validate_code(payload: ValidateCodeRequest, db: Session = Depends(get_db),
                  user: User = Depends(get_current_user)):
    """
    Checks a manual unlock code. A valid code upgrades a non-premium user;
    an invalid one is rejected even for premium users.
    """
    source = match_code(db, user, payload.code)
    if source is None:
        logger.info("Invalid unlock code presented by user %s", user.id)
        raise HTTPException(status_code=400, detail="Invalid unlock code. Please check your code and try again.")

    decision = authorize(db, user, payload.code)
    return ValidateCodeResponse(
        success=True,
        upgraded=decision.upgraded,
        source=source,
        message="Unlock code is valid - Premium access activated!",
    )
