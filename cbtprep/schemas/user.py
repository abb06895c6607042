from pydantic import BaseModel, EmailStr, Field

class UserCreate(BaseModel):
    email: EmailStr
    password: str = Field(min_length=6)
    nickname: str = Field(min_length=1, max_length=64)

class UserResponse(BaseModel):
    id: str
    email: EmailStr
    nickname: str
    is_premium: bool
    total_score: int
    tests_completed: int
    class Config:
        from_attributes = True
