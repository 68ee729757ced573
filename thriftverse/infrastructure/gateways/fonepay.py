import logging
import uuid
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Callable
from urllib.parse import urlencode

from thriftverse.application.interfaces import PaymentGateway
from thriftverse.domain.exceptions import ConfigurationError, MalformedCallbackError
from thriftverse.domain.models import GatewayRedirect, NeutralPaymentResult, PaymentMethod
from thriftverse.domain.pricing import format_amount, parse_amount
from thriftverse.infrastructure.gateways.signatures import hmac_sha512_hex, signatures_match

logger = logging.getLogger(__name__)

CURRENCY = "NPR"
PAYMENT_MODE = "P"
# FonePay limits remarks to 50 characters
REMARKS_LIMIT = 50


class FonepayGateway(PaymentGateway):
    """FonePay: GET redirect, HMAC-SHA512 hex signature (DV)"""

    method = PaymentMethod.FONEPAY

    def __init__(
        self,
        merchant_code: str,
        secret_key: str,
        gateway_url: str,
        return_url: str,
        clock: Callable[[], datetime] = datetime.now,
    ):
        if not all([merchant_code, secret_key, gateway_url, return_url]):
            raise ConfigurationError("Missing FonePay configuration in environment variables")
        self._merchant_code = merchant_code
        self._secret_key = secret_key
        self._gateway_url = gateway_url
        self._return_url = return_url
        self._clock = clock

    @classmethod
    def from_settings(cls, settings) -> "FonepayGateway":
        if not settings.APP_URL:
            raise ConfigurationError("APP_URL is not configured")
        return cls(
            merchant_code=settings.FONEPAY_MERCHANT_CODE,
            secret_key=settings.FONEPAY_SECRET_KEY,
            gateway_url=settings.FONEPAY_GATEWAY_URL,
            return_url=settings.SUCCESS_URL_FONEPAY,
        )

    def new_transaction_id(self) -> str:
        # PRN must be 3-25 characters
        return uuid.uuid4().hex[:20].upper()

    def build_redirect(
        self,
        transaction_id: str,
        amount: Decimal,
        tax_amount: Decimal,
        delivery_charge: Decimal,
        total_amount: Decimal,
        product_name: str,
    ) -> GatewayRedirect:
        fields = {
            "PID": self._merchant_code,
            "MD": PAYMENT_MODE,
            "PRN": transaction_id,
            "AMT": format_amount(total_amount),
            "CRN": CURRENCY,
            "DT": self._clock().strftime("%m/%d/%Y"),
            "R1": (product_name or "ThriftVerse order")[:REMARKS_LIMIT],
            "R2": "N/A",
            "RU": self._return_url,
        }
        # PID,MD,PRN,AMT,CRN,DT,R1,R2,RU
        message = ",".join(fields[k] for k in ("PID", "MD", "PRN", "AMT", "CRN", "DT", "R1", "R2", "RU"))
        fields["DV"] = hmac_sha512_hex(message, self._secret_key)
        redirect_url = f"{self._gateway_url}?{urlencode(fields)}"
        return GatewayRedirect(transaction_id=transaction_id, redirect_url=redirect_url, fields=fields)

    def parse_callback(self, raw: dict) -> NeutralPaymentResult:
        """Read the individual query parameters FonePay appends to the return URL"""
        fields = {str(k): str(v) for k, v in raw.items() if v is not None}
        amount_text = fields.get("P_AMT") or fields.get("AMT")
        missing = [k for k in ("PRN", "UID", "DV") if not fields.get(k)]
        if not amount_text:
            missing.append("P_AMT")
        if missing:
            raise MalformedCallbackError(f"FonePay callback is missing {', '.join(missing)}")
        try:
            amount = parse_amount(amount_text)
        except InvalidOperation:
            raise MalformedCallbackError(f"FonePay callback amount is invalid: {amount_text}")

        fields["AMT"] = amount_text
        is_success = fields.get("PS", "").lower() == "true"
        return NeutralPaymentResult(
            gateway=self.method,
            transaction_id=fields["PRN"],
            transaction_code=fields["UID"],
            amount=amount,
            status="COMPLETE" if is_success else fields.get("RC", "FAILED"),
            is_success=is_success,
            raw_signature=fields["DV"],
            signed_fields=fields,
        )

    def verify(self, result: NeutralPaymentResult) -> bool:
        """DV over PID,PRN,AMT,UID, compared as upper-case hex"""
        fields = result.signed_fields
        pid = fields.get("PID", self._merchant_code)
        if pid != self._merchant_code:
            logger.warning(f"FonePay callback {result.transaction_id} is for merchant {pid}")
            return False
        message = f"{pid},{fields.get('PRN', '')},{fields.get('AMT', '')},{fields.get('UID', '')}"
        expected = hmac_sha512_hex(message, self._secret_key).upper()
        return signatures_match(expected, result.raw_signature.upper())
