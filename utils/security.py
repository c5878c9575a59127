"""Security helpers for response headers, tokens and attempt tracking."""
import hashlib
import secrets


def apply_security_headers(response, force_https: bool = False):
    """Headers for a JSON API that also serves stored images."""
    response.headers.setdefault("Content-Security-Policy", "default-src 'none'; img-src 'self'; frame-ancestors 'none'")
    response.headers.setdefault("X-Content-Type-Options", "nosniff")
    response.headers.setdefault("X-Frame-Options", "DENY")
    response.headers.setdefault("Referrer-Policy", "strict-origin-when-cross-origin")
    if force_https:
        response.headers.setdefault("Strict-Transport-Security", "max-age=63072000; includeSubDomains")
    return response


def generate_token(length: int = 32) -> str:
    return secrets.token_urlsafe(length)


def hash_value(value: str) -> str:
    return hashlib.sha256(value.encode("utf-8")).hexdigest()


# In-process counters; swap for a shared cache when running several workers.
_attempts: dict[str, int] = {}


def track_attempt(key: str, limit: int = 10) -> bool:
    """Count an attempt for ``key``; False once ``limit`` is exceeded."""
    count = _attempts.get(key, 0) + 1
    _attempts[key] = count
    return count <= limit


def clear_attempts(key: str) -> None:
    _attempts.pop(key, None)
