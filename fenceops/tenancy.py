"""Tenant scoping for every request"""

import logging

from fastapi import Header, HTTPException

from .shared.validators import validate_tenant_id

logger = logging.getLogger(__name__)


async def get_tenant_id(x_tenant_id: str = Header(None, alias="X-Tenant-ID")) -> str:
    """
    Tenant id supplied by the multi-tenant gateway in front of this service.
    Every repository query is filtered on it.
    """
    if not x_tenant_id:
        raise HTTPException(status_code=400, detail="Missing X-Tenant-ID header")

    tenant_id = x_tenant_id.strip()
    if not validate_tenant_id(tenant_id):
        logger.warning(f"⚠️ Rejected malformed tenant id: {x_tenant_id!r}")
        raise HTTPException(status_code=400, detail="Invalid X-Tenant-ID header")

    return tenant_id
