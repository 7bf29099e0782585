import secrets
import hashlib


def generate_secure_token(nbytes: int = 32) -> str:
    # plain value goes to the user once
    return secrets.token_hex(nbytes)


def generate_request_id() -> str:
    return secrets.token_urlsafe(24)


def generate_otp(length: int = 6) -> str:
    return "".join(secrets.choice("0123456789") for _ in range(length))


def random_code(alphabet: str, length: int) -> str:
    return "".join(secrets.choice(alphabet) for _ in range(length))


def hash_token(token: str) -> str:
    # DB keeps only the hash
    return hashlib.sha256(token.encode("utf-8")).hexdigest()
