"""
tenant.py
---------
Purpose:
    Resolve the calling tenant for the internal API.

Notes:
    - The API sits behind the product's authenticated gateway, which
      forwards the verified user id in the X-Tenant-Id header.
    - Every route that touches tenant data depends on `tenant_dependency`.
"""

from fastapi import Header, HTTPException, status


def tenant_dependency(x_tenant_id: str | None = Header(default=None)) -> str:
    tenant_id = (x_tenant_id or "").strip()
    if not tenant_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing tenant",
        )
    return tenant_id
