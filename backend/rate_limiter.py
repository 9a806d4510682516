from slowapi import Limiter
from fastapi import Request


def get_real_ip(request: Request) -> str:
    """Client IP, honouring the proxy headers set by the hosting platform."""
    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()

    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip

    if request.client and request.client.host:
        return request.client.host

    return "127.0.0.1"


def get_rate_limit_key(request: Request) -> str:
    """Limits are counted per signed-in student, falling back to the client IP."""
    user_id = request.headers.get("x-user-id")
    if user_id:
        return f"user:{user_id.strip()}"
    return f"ip:{get_real_ip(request)}"


# Broad default; the Gemini-backed routes carry tighter limits of their own.
limiter = Limiter(key_func=get_rate_limit_key, default_limits=["200/minute", "5000/hour"])
