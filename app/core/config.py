from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    DATABASE_URL: str = "sqlite:///./barbershop.db"

    # JWT
    SECRET_KEY: str = "change-me"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24 * 7

    # agenda
    TIMEZONE: str = "Asia/Ho_Chi_Minh"
    SLOT_MINUTES: int = 30
    BOOKING_LEAD_MINUTES: int = 30

    # VNPay
    VNPAY_TMN_CODE: str = ""
    VNPAY_HASH_SECRET: str = ""
    VNPAY_URL: str = "https://sandbox.vnpayment.vn/paymentv2/vpcpay.html"
    VNPAY_RETURN_URL: str = "http://localhost:3000/payment/vnpay-return"
    PAYMENT_EXPIRE_MINUTES: int = 15

    CLIENT_URL: str = "http://localhost:3000"
    LOG_LEVEL: str = "INFO"


settings = Settings()
