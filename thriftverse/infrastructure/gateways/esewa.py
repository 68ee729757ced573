import base64
import binascii
import html
import json
import logging
import uuid
from decimal import Decimal, InvalidOperation

from thriftverse.application.interfaces import PaymentGateway
from thriftverse.domain.exceptions import ConfigurationError, MalformedCallbackError
from thriftverse.domain.models import GatewayRedirect, NeutralPaymentResult, PaymentMethod
from thriftverse.domain.pricing import format_amount, parse_amount
from thriftverse.infrastructure.gateways.signatures import hmac_sha256_base64, signatures_match

logger = logging.getLogger(__name__)

SIGNED_FIELD_NAMES = "total_amount,transaction_uuid,product_code"
# fields every callback signature must cover
REQUIRED_CALLBACK_FIELDS = frozenset(
    ["transaction_code", "status", "total_amount", "transaction_uuid", "product_code"]
)
SUCCESS_STATUS = "COMPLETE"

FORM_TEMPLATE = """<!DOCTYPE html>
<html>
  <head>
    <title>Redirecting to eSewa...</title>
  </head>
  <body>
    <p>Redirecting to eSewa Payment Gateway. Please wait while we redirect you to complete your payment.</p>
    <form id="esewaForm" action="{action}" method="POST">
{inputs}
    </form>
    <script>
      document.getElementById('esewaForm').submit();
    </script>
  </body>
</html>
"""


def _field_text(value) -> str:
    # eSewa signs the values as they render in its JSON, so 100.0 is "100"
    if isinstance(value, bool):
        return str(value).lower()
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


class EsewaGateway(PaymentGateway):
    """eSewa ePay v2: POST form, HMAC-SHA256 signature in base64"""

    method = PaymentMethod.ESEWA

    def __init__(self, merchant_code: str, secret_key: str, gateway_url: str, success_url: str, failure_url: str):
        if not all([merchant_code, secret_key, gateway_url, success_url, failure_url]):
            raise ConfigurationError("Missing eSewa configuration in environment variables")
        self._merchant_code = merchant_code
        self._secret_key = secret_key
        self._gateway_url = gateway_url
        self._success_url = success_url
        self._failure_url = failure_url

    @classmethod
    def from_settings(cls, settings) -> "EsewaGateway":
        if not settings.APP_URL:
            raise ConfigurationError("APP_URL is not configured")
        return cls(
            merchant_code=settings.ESEWA_MERCHANT_CODE,
            secret_key=settings.ESEWA_SECRET_KEY,
            gateway_url=settings.ESEWA_GATEWAY_URL,
            success_url=settings.SUCCESS_URL_ESEWA,
            failure_url=settings.FAILURE_URL,
        )

    def new_transaction_id(self) -> str:
        return str(uuid.uuid4())

    def sign(self, total_amount: str, transaction_uuid: str) -> str:
        message = (
            f"total_amount={total_amount},"
            f"transaction_uuid={transaction_uuid},"
            f"product_code={self._merchant_code}"
        )
        return hmac_sha256_base64(message, self._secret_key)

    def build_redirect(
        self,
        transaction_id: str,
        amount: Decimal,
        tax_amount: Decimal,
        delivery_charge: Decimal,
        total_amount: Decimal,
        product_name: str,
    ) -> GatewayRedirect:
        total = format_amount(total_amount)
        fields = {
            "amount": format_amount(amount),
            "tax_amount": format_amount(tax_amount),
            "total_amount": total,
            "transaction_uuid": transaction_id,
            "product_code": self._merchant_code,
            "product_service_charge": "0",
            "product_delivery_charge": format_amount(delivery_charge),
            "success_url": self._success_url,
            "failure_url": self._failure_url,
            "signed_field_names": SIGNED_FIELD_NAMES,
            "signature": self.sign(total, transaction_id),
        }
        inputs = "\n".join(
            f'      <input type="hidden" name="{html.escape(name)}" value="{html.escape(value)}" />'
            for name, value in fields.items()
        )
        form_html = FORM_TEMPLATE.format(action=html.escape(self._gateway_url), inputs=inputs)
        return GatewayRedirect(transaction_id=transaction_id, form_html=form_html, fields=fields)

    def parse_callback(self, raw: dict) -> NeutralPaymentResult:
        """Decode the base64 JSON eSewa appends to the success URL as ?data="""
        data = raw.get("data")
        if not data:
            raise MalformedCallbackError("eSewa callback has no data parameter")
        try:
            decoded = json.loads(base64.b64decode(data, validate=True).decode("utf-8"))
        except (binascii.Error, ValueError, UnicodeDecodeError) as e:
            raise MalformedCallbackError(f"eSewa callback data could not be decoded: {e}")
        if not isinstance(decoded, dict):
            raise MalformedCallbackError("eSewa callback data is not an object")

        missing = [k for k in ("transaction_uuid", "transaction_code", "total_amount", "status") if k not in decoded]
        if missing:
            raise MalformedCallbackError(f"eSewa callback is missing {', '.join(missing)}")

        signed_fields = {key: _field_text(value) for key, value in decoded.items()}
        try:
            amount = parse_amount(signed_fields["total_amount"])
        except InvalidOperation:
            raise MalformedCallbackError(f"eSewa callback amount is invalid: {signed_fields['total_amount']}")

        status = signed_fields["status"]
        return NeutralPaymentResult(
            gateway=self.method,
            transaction_id=signed_fields["transaction_uuid"],
            transaction_code=signed_fields["transaction_code"],
            amount=amount,
            status=status,
            is_success=status == SUCCESS_STATUS,
            raw_signature=raw.get("signature") or signed_fields.get("signature", ""),
            signed_fields=signed_fields,
        )

    def verify(self, result: NeutralPaymentResult) -> bool:
        """Rebuild the message from the fields eSewa says it signed"""
        signed_field_names = result.signed_fields.get("signed_field_names")
        if not signed_field_names:
            logger.warning(f"eSewa callback {result.transaction_id} has no signed_field_names")
            return False

        names = [name.strip() for name in signed_field_names.split(",")]
        unsigned = REQUIRED_CALLBACK_FIELDS - set(names)
        if unsigned:
            logger.warning(
                f"eSewa callback {result.transaction_id} does not sign {', '.join(sorted(unsigned))}"
            )
            return False
        if result.signed_fields.get("product_code") != self._merchant_code:
            logger.warning(
                f"eSewa callback {result.transaction_id} is for product code {result.signed_fields.get('product_code')}"
            )
            return False

        parts = []
        for name in names:
            if name not in result.signed_fields:
                logger.warning(f"eSewa callback {result.transaction_id} is missing signed field {name}")
                return False
            parts.append(f"{name}={result.signed_fields[name]}")

        expected = hmac_sha256_base64(",".join(parts), self._secret_key)
        return signatures_match(expected, result.raw_signature)
