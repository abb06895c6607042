from pydantic import BaseModel, Field
from typing import Optional

class InitializePaymentRequest(BaseModel):
    amount: Optional[int] = Field(default=None, gt=0, description="Amount in kobo")
    callback_url: Optional[str] = None

class InitializePaymentResponse(BaseModel):
    success: bool
    payment_url: str
    reference: str

class VerifyPaymentRequest(BaseModel):
    reference: str = Field(min_length=1)

class VerifyPaymentResponse(BaseModel):
    success: bool
    status: str
    unlock_code: Optional[str] = None
    message: str

class ValidateCodeRequest(BaseModel):
    code: str = Field(min_length=1)

class ValidateCodeResponse(BaseModel):
    success: bool
    upgraded: bool
    source: Optional[str] = None
    message: str
