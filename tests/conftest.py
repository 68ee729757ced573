import base64
import json
from datetime import datetime, timezone
from decimal import Decimal

import pytest
from sqlalchemy import insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from thriftverse.domain.models import (
    MetadataState, PaymentMetadata, PaymentMethod, ProductStatus, ShippingAddress, ShippingOption
)
from thriftverse.infrastructure.db_schema import metadata, products_tbl, profiles_tbl
from thriftverse.infrastructure.gateways.esewa import EsewaGateway
from thriftverse.infrastructure.gateways.fonepay import FonepayGateway
from thriftverse.infrastructure.gateways.signatures import hmac_sha256_base64, hmac_sha512_hex
from thriftverse.infrastructure.unit_of_work import UnitOfWork

ESEWA_MERCHANT = "EPAYTEST"
ESEWA_SECRET = "8gBm/:&EnhH.1/q"
FONEPAY_MERCHANT = "NBQM"
FONEPAY_SECRET = "a7e3512f5032480a83137793cb2021dc"
APP_URL = "https://www.thriftverse.shop"

SELLER_ID = "seller-1"
PRODUCT_ID = "prod-1"


def _as_esewa_renders(value):
    # eSewa signs 1170.0 as "1170"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


@pytest.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'thriftverse.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
def uow(session_factory):
    return UnitOfWork(session_factory)


@pytest.fixture
def address():
    return ShippingAddress(street="Jhamsikhel Road", city="Lalitpur", district="Lalitpur", phone="9800000000")


@pytest.fixture
def add_product(session_factory):
    async def _add(product_id=PRODUCT_ID, price="1000", availability_count=2, status=ProductStatus.AVAILABLE):
        async with session_factory() as session:
            await session.execute(insert(products_tbl).values(
                id=product_id,
                store_id=SELLER_ID,
                title="Vintage Denim Jacket",
                price=Decimal(price),
                availability_count=availability_count,
                status=status,
            ))
            await session.commit()
    return _add


@pytest.fixture
def add_seller(session_factory):
    async def _add(email="seller@example.com", tokens=("ExponentPushToken[abc]",), muted=False):
        async with session_factory() as session:
            await session.execute(insert(profiles_tbl).values(
                id=SELLER_ID,
                name="Sita's Closet",
                email=email,
                store_username="sitas-closet",
                expo_push_tokens=list(tokens),
                config={"notifications_muted": muted},
            ))
            await session.commit()
    return _add


@pytest.fixture
def stage_payment(uow, address):
    """Write a payment_metadata row directly, in any state"""
    async def _stage(
        transaction_id="3f2b8c1e-9d4a-4f6b-8e2a-1c5d7e9f0a1b",
        amount="1170",
        shipping_option=ShippingOption.HOME,
        shipping_fee="170",
        quantity=1,
        state=MetadataState.VERIFIED,
        transaction_code="000AWEO",
        payment_method=PaymentMethod.ESEWA,
    ):
        now = datetime.now(timezone.utc)
        async with uow() as u:
            await u.payment_metadata.create(PaymentMetadata(
                transaction_id=transaction_id,
                product_id=PRODUCT_ID,
                seller_id=SELLER_ID,
                buyer_email="buyer@example.com",
                buyer_name="Ram Sharma",
                shipping_address=address,
                amount=Decimal(amount),
                quantity=quantity,
                shipping_option=shipping_option,
                shipping_fee=Decimal(shipping_fee),
                payment_method=payment_method,
                state=state,
                transaction_code=transaction_code if state != MetadataState.STAGED else None,
                created_at=now,
                updated_at=now,
            ))
            await u.commit()
        return transaction_id
    return _stage


@pytest.fixture
def esewa_gateway():
    return EsewaGateway(
        merchant_code=ESEWA_MERCHANT,
        secret_key=ESEWA_SECRET,
        gateway_url="https://rc-epay.esewa.com.np/api/epay/main/v2/form",
        success_url=f"{APP_URL}/api/payments/esewa/success",
        failure_url=f"{APP_URL}/payment/failed",
    )


@pytest.fixture
def fonepay_gateway():
    return FonepayGateway(
        merchant_code=FONEPAY_MERCHANT,
        secret_key=FONEPAY_SECRET,
        gateway_url="https://dev-clientapi.fonepay.com/api/merchantRequest",
        return_url=f"{APP_URL}/api/payments/fonepay/success",
        clock=lambda: datetime(2025, 11, 1, 10, 30),
    )


@pytest.fixture
def esewa_callback():
    """Build the ?data= payload eSewa sends back, signed with the merchant secret"""
    def _build(transaction_uuid, total_amount, transaction_code="000AWEO", status="COMPLETE",
               secret=ESEWA_SECRET, product_code=ESEWA_MERCHANT, tamper=None):
        payload = {
            "transaction_code": transaction_code,
            "status": status,
            "total_amount": total_amount,
            "transaction_uuid": transaction_uuid,
            "product_code": product_code,
            "signed_field_names": "transaction_code,status,total_amount,transaction_uuid,product_code,signed_field_names",
        }
        message = ",".join(
            f"{name}={_as_esewa_renders(payload[name])}" for name in payload["signed_field_names"].split(",")
        )
        payload["signature"] = hmac_sha256_base64(message, secret)
        if tamper:
            payload.update(tamper)
        return {"data": base64.b64encode(json.dumps(payload).encode()).decode()}
    return _build


@pytest.fixture
def fonepay_callback():
    """Query parameters FonePay appends to the return URL"""
    def _build(prn, amount, uid="FP-77120", success=True, secret=FONEPAY_SECRET, tamper=None):
        message = f"{FONEPAY_MERCHANT},{prn},{amount},{uid}"
        params = {
            "PRN": prn,
            "PID": FONEPAY_MERCHANT,
            "PS": "true" if success else "false",
            "RC": "successful" if success else "failed",
            "UID": uid,
            "BC": "NICENPKA",
            "INI": "9800000000",
            "P_AMT": amount,
            "R_AMT": amount,
            "DV": hmac_sha512_hex(message, secret).upper(),
        }
        if tamper:
            params.update(tamper)
        return params
    return _build
