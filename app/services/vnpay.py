"""VNPay 2.1.0 payment gateway codec.

The canonical string is what both sides sign: parameters sorted by key,
keys and values percent-encoded the way JavaScript's ``encodeURIComponent``
does with ``%20`` turned into ``+``, joined as ``k=v&k=v``. The signature is
the hex HMAC-SHA512 of that string keyed with the merchant hash secret.
"""

import hashlib
import hmac
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, List, Mapping, Tuple
from urllib.parse import quote

from app.core.config import settings


VERSION = "2.1.0"
DATE_FORMAT = "%Y%m%d%H%M%S"

SIGNATURE_FIELDS = ("vnp_SecureHash", "vnp_SecureHashType")

# characters encodeURIComponent leaves alone
_UNRESERVED = "-_.!~*'()"

RESPONSE_MESSAGES: Dict[str, str] = {
    "00": "Transaction successful",
    "07": "Money deducted; transaction flagged as suspicious",
    "09": "Card/account is not registered for internet banking",
    "10": "Card/account verification failed more than 3 times",
    "11": "Payment window expired",
    "12": "Card/account is locked",
    "13": "Wrong one-time password (OTP)",
    "24": "Customer cancelled the transaction",
    "51": "Insufficient balance",
    "65": "Daily transaction limit exceeded",
    "75": "Issuing bank is under maintenance",
    "79": "Wrong payment password too many times",
    "99": "Other error",
}


# IPN acknowledgements expected by the gateway
class IpnCode:
    SUCCESS = "00"
    ORDER_NOT_FOUND = "01"
    ALREADY_CONFIRMED = "02"
    INVALID_AMOUNT = "04"
    INVALID_SIGNATURE = "97"
    UNKNOWN_ERROR = "99"


IPN_MESSAGES = {
    IpnCode.SUCCESS: "Confirm Success",
    IpnCode.ORDER_NOT_FOUND: "Order not found",
    IpnCode.ALREADY_CONFIRMED: "Order already confirmed",
    IpnCode.INVALID_AMOUNT: "Invalid amount",
    IpnCode.INVALID_SIGNATURE: "Invalid signature",
    IpnCode.UNKNOWN_ERROR: "Unknown error",
}


@dataclass(frozen=True)
class VNPayConfig:
    tmn_code: str
    hash_secret: str
    payment_url: str
    return_url: str
    expire_minutes: int = 15

    @classmethod
    def from_settings(cls) -> "VNPayConfig":
        return cls(
            tmn_code=settings.VNPAY_TMN_CODE,
            hash_secret=settings.VNPAY_HASH_SECRET,
            payment_url=settings.VNPAY_URL,
            return_url=settings.VNPAY_RETURN_URL,
            expire_minutes=settings.PAYMENT_EXPIRE_MINUTES,
        )


def get_vnpay_config() -> VNPayConfig:
    return VNPayConfig.from_settings()


def response_message(code: str) -> str:
    return RESPONSE_MESSAGES.get(code, "Unknown error")


def _encode(value) -> str:
    return quote(str(value), safe=_UNRESERVED).replace("%20", "+")


def sorted_params(params: Mapping[str, object]) -> List[Tuple[str, str]]:
    encoded = [(_encode(key), _encode(value)) for key, value in params.items()]
    return sorted(encoded, key=lambda pair: pair[0])


def canonical_query(params: Mapping[str, object]) -> str:
    return "&".join(f"{key}={value}" for key, value in sorted_params(params))


def sign(params: Mapping[str, object], secret: str) -> str:
    data = canonical_query(params).encode("utf-8")
    return hmac.new(secret.encode("utf-8"), data, hashlib.sha512).hexdigest()


def build_payment_url(
    config: VNPayConfig,
    txn_ref: str,
    amount: int,
    order_info: str,
    client_ip: str,
    now: datetime,
) -> str:
    """Signed redirect URL for a payment of ``amount`` VND; ``now`` is shop-local."""
    params = {
        "vnp_Version": VERSION,
        "vnp_Command": "pay",
        "vnp_TmnCode": config.tmn_code,
        "vnp_Locale": "vn",
        "vnp_CurrCode": "VND",
        "vnp_TxnRef": txn_ref,
        "vnp_OrderInfo": order_info,
        "vnp_OrderType": "other",
        "vnp_Amount": amount * 100,
        "vnp_ReturnUrl": config.return_url,
        "vnp_IpAddr": client_ip,
        "vnp_CreateDate": now.strftime(DATE_FORMAT),
        "vnp_ExpireDate": (now + timedelta(minutes=config.expire_minutes)).strftime(DATE_FORMAT),
    }
    signature = sign(params, config.hash_secret)
    return f"{config.payment_url}?{canonical_query(params)}&vnp_SecureHash={signature}"


def verify_signature(params: Mapping[str, str], secret: str) -> bool:
    provided = params.get("vnp_SecureHash")
    if not provided:
        return False

    signed = {
        key: value
        for key, value in params.items()
        if key.startswith("vnp_") and key not in SIGNATURE_FIELDS
    }
    expected = sign(signed, secret)
    return hmac.compare_digest(expected.encode("utf-8"), provided.encode("utf-8"))


def parse_pay_date(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        return datetime.strptime(value, DATE_FORMAT)
    except ValueError:
        return None
