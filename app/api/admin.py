from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from api.deps import get_db, require_admin
from core.responses import api_response
from models.orm_user import UserEntity
from schemas.payments import PaymentStatusUpdateIn
from services.payment_service import payment_to_dict, update_payment_status


router = APIRouter(prefix="/admin", tags=["Admin"])


@router.patch("/payments/{payment_id}/status")
def admin_update_payment_status(
    payment_id: int,
    data: PaymentStatusUpdateIn,
    db: Session = Depends(get_db),
    _: UserEntity = Depends(require_admin),
):
    payment = update_payment_status(db, payment_id, data.status, data.description)
    return api_response(payment_to_dict(payment), "Payment status updated")
