import secrets
from typing import Optional

from fastapi import Header, HTTPException, Request


async def require_api_key(request: Request, x_api_key: Optional[str] = Header(None)):
    """Rejects the request unless X-API-Key matches the configured key.

    No configured key (unset or empty) means the gate is open.
    """
    expected = request.app.state.settings.api_key
    if not expected:
        return
    if not x_api_key:
        raise HTTPException(status_code=401, detail="API key missing")
    if not secrets.compare_digest(x_api_key.encode(), expected.encode()):
        raise HTTPException(status_code=403, detail="invalid API key")
