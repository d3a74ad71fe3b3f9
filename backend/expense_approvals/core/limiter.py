"""Rate limiter singleton; import from here to avoid circular deps.

Decisions are limited per caller token when one is present so that several
approvers behind one NAT do not share a bucket.
"""
from slowapi import Limiter
from slowapi.util import get_remote_address
from starlette.requests import Request


def approver_key(request: Request) -> str:
    auth = request.headers.get("authorization", "")
    if auth.lower().startswith("bearer "):
        return auth[7:]
    return get_remote_address(request)


limiter = Limiter(key_func=approver_key)
