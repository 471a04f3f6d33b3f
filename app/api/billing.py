from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from app.db import get_db
from app.services import api_billing_webhooks as api_billing_webhooks_service
from app.services import mobilepay, revolut

router = APIRouter()


# --- Payment provider webhooks ---


@router.post(
    "/payment-events/mobilepay",
    tags=["payment-events"],
)
async def mobilepay_webhook(request: Request, db: Session = Depends(get_db)):
    body = await request.body()
    signature = request.headers.get(mobilepay.SIGNATURE_HEADER)
    return api_billing_webhooks_service.process_mobilepay_webhook(
        db=db,
        body=body,
        signature=signature,
    )


@router.post(
    "/payment-events/revolut",
    tags=["payment-events"],
)
async def revolut_webhook(request: Request, db: Session = Depends(get_db)):
    body = await request.body()
    return api_billing_webhooks_service.process_revolut_webhook(
        db=db,
        body=body,
        signature=request.headers.get(revolut.SIGNATURE_HEADER),
        timestamp=request.headers.get(revolut.TIMESTAMP_HEADER),
    )
