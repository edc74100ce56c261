from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from api.deps import get_current_user, get_db
from core.responses import api_response
from models.orm_user import UserEntity
from services.payment_service import list_payment_history, payment_to_dict


router = APIRouter(prefix="/payments", tags=["Payments"])


@router.get("/history")
def payment_history(
    limit: int = Query(default=50, ge=1, le=200),
    type: Optional[str] = Query(default=None),
    db: Session = Depends(get_db),
    user: UserEntity = Depends(get_current_user),
):
    payments = list_payment_history(db, user.id, limit=limit, type=type)
    return api_response({"payments": [payment_to_dict(p) for p in payments]}, "Payment history retrieved")
