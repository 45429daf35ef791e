"""
Request dependencies shared by all routers.
"""

from fastapi import HTTPException, Request


def get_user_id(request: Request) -> str:
    """Extract user ID from request headers."""
    user_id = request.headers.get("x-user-id")
    if not user_id:
        raise HTTPException(status_code=401, detail="User ID required")
    return user_id


def get_organization_id(request: Request) -> str:
    """Extract the caller's organization from request headers."""
    organization_id = request.headers.get("x-organization-id")
    if not organization_id:
        raise HTTPException(status_code=401, detail="Organization ID required")
    return organization_id
