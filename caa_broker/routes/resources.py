"""Enterprise resource APIs protected by Okta (ID-JAG) or Auth0 access tokens."""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Request

from ..config import Settings
from ..deps import get_jwks_cache, get_settings_dep
from ..enterprise_data import FINANCIAL_DATA, HR_DATA, KPI_DATA, SALESFORCE_DATA
from ..validators import (
    TokenValidator,
    auth0_token_validator,
    extract_bearer_token,
    okta_access_token_validator,
    require_scope,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/resource")


def _okta_validator(request: Request, settings: Settings) -> TokenValidator:
    return okta_access_token_validator(settings, get_jwks_cache(request, settings.okta.jwks_uri))


def _auth0_validator(request: Request, settings: Settings) -> TokenValidator:
    return auth0_token_validator(settings, get_jwks_cache(request, settings.auth0.jwks_uri))


async def _serve(
    request: Request,
    validator: TokenValidator,
    scope: str,
    data: List[Dict[str, Any]],
    audience: Optional[str] = None,
    protected_by: str = "Okta",
) -> Dict[str, Any]:
    token = extract_bearer_token(request.headers.get("authorization"))
    claims = await validator.validate(token, audience=audience)
    scopes = require_scope(claims, scope)

    metadata = {
        "requestedBy": claims.get("sub"),
        "scopes": scopes,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "protectedBy": protected_by,
    }
    if claims.get("client_id") or claims.get("cid"):
        metadata["clientId"] = claims.get("client_id") or claims.get("cid")
    return {"success": True, "data": data, "metadata": metadata}


@router.get("/hr")
async def hr_data(request: Request, settings: Settings = Depends(get_settings_dep)):
    return await _serve(request, _okta_validator(request, settings), "mcp:read", HR_DATA)


@router.get("/kpi")
async def kpi_data(request: Request, settings: Settings = Depends(get_settings_dep)):
    logger.info("Accessing KPI data with ID-JAG token")
    return await _serve(request, _okta_validator(request, settings), "kpi:read", KPI_DATA)


@router.get("/financial")
async def financial_data(request: Request, settings: Settings = Depends(get_settings_dep)):
    logger.info("Accessing Financial data with Auth0 access token")
    return await _serve(
        request,
        _auth0_validator(request, settings),
        "finance:read",
        FINANCIAL_DATA,
        audience=settings.auth0.resource or None,
        protected_by="Auth0",
    )


@router.get("/salesforce")
async def salesforce_data(request: Request, settings: Settings = Depends(get_settings_dep)):
    logger.info("Accessing Salesforce data with Auth0 access token")
    return await _serve(
        request,
        _auth0_validator(request, settings),
        "salesforce:read",
        SALESFORCE_DATA,
        audience=settings.auth0.salesforce_resource or None,
        protected_by="Auth0",
    )
