from datetime import datetime

from pydantic import BaseModel, Field

# Name, email and balance rules live in AccountRepository.create so HTTP and
# direct callers get the same ValidationError.
class AccountCreate(BaseModel):
    name: str = Field(..., description="Display name of the account holder")
    email: str
    initial_balance: int = Field(default=0, description="Opening balance in minor units")

class AccountResponse(BaseModel):
    id: int
    name: str
    email: str
    balance: int = Field(..., ge=0, description="Balance in minor units (e.g. cents)")
    created_at: datetime

class TransferRequest(BaseModel):
    from_id: int
    to_id: int
    # Positivity and the self-transfer rule are enforced by the transfer engine.
    amount: int = Field(..., description="Amount in minor units")

class TransferResponse(BaseModel):
    from_id: int
    to_id: int
    amount: int
    from_balance: int
    to_balance: int
