import logging
import math
from contextlib import asynccontextmanager
from typing import Optional

import httpx
from fastapi import Depends, FastAPI, HTTPException
from pydantic import BaseModel

from .gateway import PaymentGatewayError
from .models import FeeBreakdown, PaymentRequest, PaymentResult, PaymentStatusRecord
from .service import PaymentService
from .settings import LOG_LEVEL, load_payment_config

logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)

_service: Optional[PaymentService] = None


def get_service() -> PaymentService:
    global _service
    if _service is None:
        _service = PaymentService(load_payment_config())
    return _service


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    if _service is not None:
        await _service.aclose()


app = FastAPI(title="Paycore", version="0.1.0", lifespan=lifespan)


class QuoteRequest(BaseModel):
    amount: float
    transaction_type: Optional[str] = None


@app.get("/health")
def health():
    return {"ok": True}


@app.post("/payments/quote", response_model=FeeBreakdown)
def quote(req: QuoteRequest, service: PaymentService = Depends(get_service)):
    if not (math.isfinite(req.amount) and req.amount > 0):
        raise HTTPException(status_code=400, detail="Please enter a valid payment amount greater than zero")
    return service.quote(req.amount, req.transaction_type)


@app.post("/payments", response_model=PaymentResult)
async def create_payment(req: PaymentRequest, service: PaymentService = Depends(get_service)):
    result = await service.submit(req)

    if not result.validation.is_valid:
        raise HTTPException(status_code=400, detail=result.validation.error)

    if result.outcome.failure_kind == "transport":
        # Network never reached the gateway; nothing was charged
        raise HTTPException(status_code=503, detail="Payment provider unavailable; try again")

    return result


@app.get("/payments/{reference}", response_model=PaymentStatusRecord)
async def get_payment(reference: str, service: PaymentService = Depends(get_service)):
    try:
        record = await service.status_source.fetch_status(reference)
    except httpx.RequestError:
        raise HTTPException(status_code=503, detail="Payment provider unavailable; try again")
    except PaymentGatewayError as exc:
        raise HTTPException(status_code=502, detail=str(exc))

    if record is None:
        raise HTTPException(status_code=404, detail="Payment not found")
    return record
