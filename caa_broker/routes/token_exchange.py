"""Token exchange endpoints: ID-JAG, Auth0, vaulted secret, service account."""

import logging

from fastapi import APIRouter, Depends, HTTPException, Request

from ..config import Settings, require
from ..deps import get_exchange_client, get_settings_dep, id_token_from, read_json
from ..token_exchange import CrossAppAccessClient

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/token-exchange")


async def _id_token(request: Request) -> tuple:
    body = await read_json(request)
    id_token = id_token_from(request, body)
    if not id_token:
        raise HTTPException(status_code=400, detail="Missing idToken")
    return id_token, body


@router.post("")
async def exchange_id_jag(request: Request, exchange: CrossAppAccessClient = Depends(get_exchange_client)):
    """Exchange the agent ID token for an ID-JAG accepted by the resource APIs"""
    id_token, _ = await _id_token(request)
    result = await exchange.exchange_id_token_for_id_jag(id_token)
    logger.info("Token exchange successful")
    return result.to_dict()


@router.post("/auth0")
async def exchange_auth0(
    request: Request,
    settings: Settings = Depends(get_settings_dep),
    exchange: CrossAppAccessClient = Depends(get_exchange_client),
):
    """ID token -> ID-JAG -> Auth0 access token for the finance or Salesforce API"""
    id_token, body = await _id_token(request)
    resource_type = body.get("resourceType")
    try:
        settings.auth0.profile(resource_type)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    result = await exchange.exchange_for_auth0_token(id_token, resource_type)
    return result.to_dict()


@router.post("/me")
async def exchange_me(
    request: Request,
    settings: Settings = Depends(get_settings_dep),
    exchange: CrossAppAccessClient = Depends(get_exchange_client),
):
    """Request an ID-JAG for the Auth0 My Account (/me/) API"""
    id_token, body = await _id_token(request)
    auth0 = settings.auth0
    resource = body.get("resource") or auth0.me_resource
    audience = require(auth0.audience, "AUTH0_AUDIENCE")

    id_jag = await exchange.request_id_jag(id_token, resource, audience)
    logger.info("ID-JAG for /me/ received")
    return {"idJag": id_jag}


@router.post("/vaulted-secret")
async def exchange_vaulted_secret(
    request: Request,
    settings: Settings = Depends(get_settings_dep),
    exchange: CrossAppAccessClient = Depends(get_exchange_client),
):
    id_token, _ = await _id_token(request)
    pam = settings.pam
    resource = require(pam.github_pat_path, "GITHUB_PAT_PATH")

    vaulted = await exchange.exchange_vaulted_secret(id_token, resource, pam.github_secret_key_name)
    logger.info("GitHub PAT extracted: github_pat_***")
    return {
        "githubPat": vaulted.secret,
        "tokenType": vaulted.token_type,
        "expiresIn": vaulted.expires_in,
        "issuedTokenType": vaulted.issued_token_type,
    }


@router.post("/service-account")
async def exchange_service_account(
    request: Request,
    settings: Settings = Depends(get_settings_dep),
    exchange: CrossAppAccessClient = Depends(get_exchange_client),
):
    id_token, _ = await _id_token(request)
    resource = require(settings.pam.servicenow_secret_path, "SERVICENOW_SECRET_PATH")

    credentials = await exchange.exchange_service_account(id_token, resource)
    return credentials.to_dict()
