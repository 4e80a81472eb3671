# deps.py
from typing import Annotated, Optional
from fastapi import Depends, Header, HTTPException, Request, status
from app.utils.security import verify_token

# Scopes checked by the evaluation routers
SCOPE_EVALUATE = "features:evaluate"
SCOPE_SNAPSHOTS = "snapshots:rw"


# -------------------------
# Tenant extraction
# -------------------------
Tenant = Annotated[Optional[str], Header(alias="X-Tenant-ID")]


async def require_tenant(tenant: Tenant = None) -> str:
    if not tenant:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="X-Tenant-ID header required",
        )
    return tenant


# -------------------------
# JWT + tenant enforcement
# -------------------------
async def require_auth(
    request: Request,
    tenant: str = Depends(require_tenant),
    required_scope: str | None = None,
):
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing or invalid Authorization header",
        )

    token = auth_header.split(" ", 1)[1]
    payload = verify_token(token)

    if required_scope and required_scope not in payload.get("scopes", []):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Missing required scope: {required_scope}",
        )

    token_tenant = payload.get("tenant")
    if token_tenant and token_tenant != tenant:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Token not valid for tenant '{tenant}'",
        )

    # Attach to request.state
    request.state.user = payload.get("sub")
    request.state.scopes = payload.get("scopes", [])
    request.state.tenant = tenant

    return payload


def scoped(scope: str):
    """Dependency factory binding require_auth to one scope."""
    async def dependency(request: Request, tenant: str = Depends(require_tenant)):
        return await require_auth(request, tenant=tenant, required_scope=scope)
    return dependency
