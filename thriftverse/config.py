import os
from dotenv import load_dotenv

load_dotenv()


class Settings:
    # Database
    POSTGRES_CONNECTION_STRING: str = os.getenv("POSTGRES_CONNECTION_STRING", "")

    # Storefront
    APP_URL: str = os.getenv("APP_URL", "")

    # eSewa
    ESEWA_MERCHANT_CODE: str = os.getenv("ESEWA_MERCHANT_CODE", "")
    ESEWA_SECRET_KEY: str = os.getenv("ESEWA_SECRET_KEY", "")
    ESEWA_GATEWAY_URL: str = os.getenv(
        "ESEWA_GATEWAY_URL", "https://rc-epay.esewa.com.np/api/epay/main/v2/form"
    )

    # FonePay
    FONEPAY_MERCHANT_CODE: str = os.getenv("FONEPAY_MERCHANT_CODE", "")
    FONEPAY_SECRET_KEY: str = os.getenv("FONEPAY_SECRET_KEY", "")
    FONEPAY_GATEWAY_URL: str = os.getenv(
        "FONEPAY_GATEWAY_URL", "https://dev-clientapi.fonepay.com/api/merchantRequest"
    )

    # Notifications
    RESEND_API_KEY: str = os.getenv("RESEND_API_KEY", "")
    RESEND_BASE_URL: str = os.getenv("RESEND_BASE_URL", "https://api.resend.com")
    FROM_EMAIL: str = os.getenv("FROM_EMAIL", "ThriftVerse <orders@thriftverse.shop>")
    EXPO_PUSH_URL: str = os.getenv("EXPO_PUSH_URL", "https://exp.host/--/api/v2/push/send")

    # Kafka
    KAFKA_BOOTSTRAP_SERVERS: str = os.getenv("KAFKA_BOOTSTRAP_SERVERS", "localhost:9092")
    ORDER_EVENTS_TOPIC: str = os.getenv("ORDER_EVENTS_TOPIC", "thriftverse-order.events")

    # Outbox worker
    OUTBOX_BATCH_SIZE: int = int(os.getenv("OUTBOX_BATCH_SIZE", "10"))
    OUTBOX_MAX_ATTEMPTS: int = int(os.getenv("OUTBOX_MAX_ATTEMPTS", "5"))
    OUTBOX_POLL_INTERVAL: float = float(os.getenv("OUTBOX_POLL_INTERVAL", "3"))

    @property
    def DATABASE_URL(self) -> str:
        """Async URL for the application"""
        return self.POSTGRES_CONNECTION_STRING.replace("postgres://", "postgresql+asyncpg://")

    @property
    def SYNC_DATABASE_URL(self) -> str:
        """Sync URL for Alembic"""
        return self.POSTGRES_CONNECTION_STRING.replace("postgres://", "postgresql://")

    @property
    def SUCCESS_URL_ESEWA(self) -> str:
        return f"{self.APP_URL}/api/payments/esewa/success"

    @property
    def SUCCESS_URL_FONEPAY(self) -> str:
        return f"{self.APP_URL}/api/payments/fonepay/success"

    @property
    def FAILURE_URL(self) -> str:
        return f"{self.APP_URL}/payment/failed"


settings = Settings()
