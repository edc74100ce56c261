from typing import Optional

from pydantic import BaseModel, Field


class PaymentStatusUpdateIn(BaseModel):
    status: str = Field(min_length=1)
    description: Optional[str] = Field(default=None, max_length=500)
