import logging
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, Query, Request, status

from thriftverse.database import get_session_factory
from thriftverse.presentation.schemas import (
    CodOrderRequest,
    EsewaPaymentResponse,
    ErrorResponse,
    FonepayPaymentResponse,
    InitiatePaymentRequest,
    OrderListResponse,
    OrderResponse,
    PaymentFailureRequest,
    PaymentVerificationResponse,
    UpdateOrderStatusRequest,
)
from thriftverse.application.initiate_payment import InitiatePaymentUseCase, PaymentIntentDTO
from thriftverse.application.verify_payment import VerifyPaymentUseCase, HandlePaymentFailureUseCase
from thriftverse.application.materialize_order import (
    CodOrderDTO, CreateCodOrderUseCase, CreateOrderFromPaymentUseCase
)
from thriftverse.application.get_order import GetOrderUseCase, GetOrderByTransactionUseCase, ListOrdersUseCase
from thriftverse.application.update_order_status import UpdateOrderStatusUseCase
from thriftverse.domain.exceptions import (
    ConfigurationError,
    DuplicateTransactionError,
    InvalidSignatureError,
    InvalidStatusTransitionError,
    InventoryUpdateError,
    MetadataNotFoundError,
    OrderCreationError,
    OrderNotFoundError,
    PaymentFailedError,
    PaymentNotVerifiedError,
    ProductNotFoundError,
    ProductUnavailableError,
    QuoteMismatchError,
)
from thriftverse.domain.models import OrderStatus
from thriftverse.infrastructure.gateways.esewa import EsewaGateway
from thriftverse.infrastructure.gateways.fonepay import FonepayGateway
from thriftverse.infrastructure.unit_of_work import UnitOfWork
from thriftverse.config import settings

logger = logging.getLogger(__name__)

router = APIRouter()

VERIFICATION_FAILED = "Payment verification failed"
CONTACT_SUPPORT = "Order could not be completed, contact support"


# Factories for use cases and gateways
def get_unit_of_work(session_factory=Depends(get_session_factory)):
    return UnitOfWork(session_factory)


def get_esewa_gateway():
    try:
        return EsewaGateway.from_settings(settings)
    except ConfigurationError as e:
        logger.critical(f"eSewa is not configured: {e}")
        raise HTTPException(status_code=500, detail="Payment gateway is not configured")


def get_fonepay_gateway():
    try:
        return FonepayGateway.from_settings(settings)
    except ConfigurationError as e:
        logger.critical(f"FonePay is not configured: {e}")
        raise HTTPException(status_code=500, detail="Payment gateway is not configured")


def _unprocessable_order(e: Exception, transaction_uuid: str) -> HTTPException:
    """Map materialization failures to what the buyer is allowed to see"""
    if isinstance(e, (MetadataNotFoundError, PaymentNotVerifiedError, OrderNotFoundError, DuplicateTransactionError)):
        logger.error(f"Order for transaction {transaction_uuid} could not be completed: {e}")
        return HTTPException(status_code=409, detail=f"{CONTACT_SUPPORT} (transaction {transaction_uuid})")
    if isinstance(e, (OrderCreationError, InventoryUpdateError)):
        logger.error(f"Order creation failed for transaction {transaction_uuid}, retry is safe: {e}")
        return HTTPException(status_code=503, detail="Order could not be created, please retry")
    logger.exception(f"Unexpected error for transaction {transaction_uuid}")
    return HTTPException(status_code=500, detail=CONTACT_SUPPORT)


async def _initiate(request: InitiatePaymentRequest, use_case: InitiatePaymentUseCase):
    try:
        return await use_case(PaymentIntentDTO(**request.model_dump()))
    except ProductNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except (ProductUnavailableError, QuoteMismatchError) as e:
        raise HTTPException(status_code=400, detail=str(e))
    except DuplicateTransactionError as e:
        logger.error(f"Transaction id collision while staging payment: {e}")
        raise HTTPException(status_code=503, detail="Failed to initialize payment, please retry")


async def _verify(raw_callback: dict, use_case: VerifyPaymentUseCase) -> PaymentVerificationResponse:
    try:
        verification = await use_case(raw_callback)
        return PaymentVerificationResponse.from_domain(verification)
    except (InvalidSignatureError, PaymentFailedError) as e:
        logger.warning(f"Payment rejected: {e}")
        raise HTTPException(status_code=400, detail=VERIFICATION_FAILED)
    except MetadataNotFoundError as e:
        raise _unprocessable_order(e, e.transaction_id)
    except (PaymentNotVerifiedError, OrderNotFoundError, OrderCreationError, InventoryUpdateError) as e:
        raise _unprocessable_order(e, getattr(e, "transaction_id", "unknown"))


@router.post(
    "/payments/esewa",
    response_model=EsewaPaymentResponse,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}, 500: {"model": ErrorResponse}}
)
async def initiate_esewa_payment(
    request: InitiatePaymentRequest,
    uow=Depends(get_unit_of_work),
    gateway: EsewaGateway = Depends(get_esewa_gateway)
):
    """Stage payment metadata and return the auto-submitting eSewa form"""
    redirect = await _initiate(request, InitiatePaymentUseCase(uow, gateway))
    return EsewaPaymentResponse(transaction_uuid=redirect.transaction_id, form_html=redirect.form_html)


@router.get(
    "/payments/esewa/success",
    response_model=PaymentVerificationResponse,
    responses={400: {"model": ErrorResponse}, 409: {"model": ErrorResponse}}
)
async def esewa_success(
    data: str,
    signature: Optional[str] = None,
    uow=Depends(get_unit_of_work),
    gateway: EsewaGateway = Depends(get_esewa_gateway)
):
    """eSewa success redirect: ?data=<base64 json>"""
    raw = {"data": data}
    if signature:
        raw["signature"] = signature
    return await _verify(raw, VerifyPaymentUseCase(uow, gateway))


@router.post(
    "/payments/fonepay",
    response_model=FonepayPaymentResponse,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}, 500: {"model": ErrorResponse}}
)
async def initiate_fonepay_payment(
    request: InitiatePaymentRequest,
    uow=Depends(get_unit_of_work),
    gateway: FonepayGateway = Depends(get_fonepay_gateway)
):
    """Stage payment metadata and return the signed FonePay URL"""
    redirect = await _initiate(request, InitiatePaymentUseCase(uow, gateway))
    return FonepayPaymentResponse(transaction_uuid=redirect.transaction_id, redirect_url=redirect.redirect_url)


@router.get(
    "/payments/fonepay/success",
    response_model=PaymentVerificationResponse,
    responses={400: {"model": ErrorResponse}, 409: {"model": ErrorResponse}}
)
async def fonepay_success(
    request: Request,
    uow=Depends(get_unit_of_work),
    gateway: FonepayGateway = Depends(get_fonepay_gateway)
):
    """FonePay return URL: PRN, PID, PS, RC, UID, BC, INI, P_AMT, R_AMT, DV"""
    return await _verify(dict(request.query_params), VerifyPaymentUseCase(uow, gateway))


@router.post("/payments/failure")
async def payment_failure(
    request: PaymentFailureRequest,
    uow=Depends(get_unit_of_work)
):
    """Failed or cancelled payment redirect"""
    known = await HandlePaymentFailureUseCase(uow)(request.transaction_uuid, request.reason or "")
    return {"status": "ok", "known_transaction": known}


@router.post(
    "/orders/from-payment/{transaction_uuid}",
    response_model=OrderResponse,
    responses={409: {"model": ErrorResponse}, 503: {"model": ErrorResponse}}
)
async def create_order_from_payment(
    transaction_uuid: str,
    uow=Depends(get_unit_of_work)
):
    """Materialize (or return) the order for a verified payment"""
    try:
        order = await CreateOrderFromPaymentUseCase(uow)(transaction_uuid)
        return OrderResponse.from_domain(order)
    except (MetadataNotFoundError, PaymentNotVerifiedError, OrderNotFoundError,
            OrderCreationError, InventoryUpdateError) as e:
        raise _unprocessable_order(e, transaction_uuid)


@router.post(
    "/orders/cod",
    response_model=OrderResponse,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}, 503: {"model": ErrorResponse}},
    status_code=status.HTTP_201_CREATED
)
async def create_cod_order(
    request: CodOrderRequest,
    uow=Depends(get_unit_of_work)
):
    """Create a cash-on-delivery order"""
    try:
        order = await CreateCodOrderUseCase(uow)(CodOrderDTO(**request.model_dump()))
        return OrderResponse.from_domain(order)
    except ProductNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ProductUnavailableError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except (DuplicateTransactionError, OrderCreationError, InventoryUpdateError) as e:
        raise _unprocessable_order(e, request.idempotency_key or "cod")


@router.get("/orders", response_model=OrderListResponse)
async def list_orders(
    seller_id: Optional[str] = None,
    order_status: Optional[OrderStatus] = Query(default=None, alias="status"),
    limit: int = Query(default=10, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    uow=Depends(get_unit_of_work)
):
    orders, count = await ListOrdersUseCase(uow)(seller_id=seller_id, status=order_status, limit=limit, offset=offset)
    return OrderListResponse(data=[OrderResponse.from_domain(o) for o in orders], count=count)


@router.get(
    "/orders/by-transaction/{transaction_uuid}",
    response_model=OrderResponse,
    responses={404: {"model": ErrorResponse}}
)
async def get_order_by_transaction(
    transaction_uuid: str,
    uow=Depends(get_unit_of_work)
):
    try:
        order = await GetOrderByTransactionUseCase(uow)(transaction_uuid)
        return OrderResponse.from_domain(order)
    except OrderNotFoundError:
        raise HTTPException(status_code=404, detail="Order not found")


@router.get(
    "/orders/{order_id}",
    response_model=OrderResponse,
    responses={404: {"model": ErrorResponse}}
)
async def get_order(
    order_id: str,
    uow=Depends(get_unit_of_work)
):
    try:
        order = await GetOrderUseCase(uow)(order_id)
        return OrderResponse.from_domain(order)
    except OrderNotFoundError:
        raise HTTPException(status_code=404, detail="Order not found")


@router.patch(
    "/orders/{order_id}/status",
    response_model=OrderResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}}
)
async def update_order_status(
    order_id: str,
    request: UpdateOrderStatusRequest,
    uow=Depends(get_unit_of_work)
):
    try:
        order = await UpdateOrderStatusUseCase(uow)(order_id, request.status)
        return OrderResponse.from_domain(order)
    except OrderNotFoundError:
        raise HTTPException(status_code=404, detail="Order not found")
    except InvalidStatusTransitionError as e:
        raise HTTPException(status_code=409, detail=str(e))
