import base64
import hashlib
import hmac


def hmac_sha256_base64(message: str, secret_key: str) -> str:
    digest = hmac.new(secret_key.encode(), message.encode(), hashlib.sha256).digest()
    return base64.b64encode(digest).decode()


def hmac_sha512_hex(message: str, secret_key: str) -> str:
    return hmac.new(secret_key.encode(), message.encode(), hashlib.sha512).hexdigest()


def signatures_match(expected: str, received: str) -> bool:
    """Full-length comparison; never short-circuits on the first differing byte"""
    if not received:
        return False
    return hmac.compare_digest(expected.encode(), str(received).strip().encode())
