"""Gateway test endpoints: each step of the Salesforce flow, and the whole flow."""

import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse

from ..config import Settings, require
from ..connected_accounts import MyAccountClient
from ..deps import (
    connect_redirect_uri,
    get_exchange_client,
    get_gateway_flow,
    get_http_client,
    get_my_account_client,
    get_settings_dep,
    id_token_from,
    read_json,
)
from ..gateway import SalesforceGatewayFlow, call_gateway, preview
from ..token_exchange import CrossAppAccessClient

logger = logging.getLogger(__name__)

router = APIRouter()


def _required(body: dict, key: str, message: str) -> str:
    value = body.get(key)
    if not value:
        raise HTTPException(status_code=400, detail=message)
    return value


@router.post("/api/gateway-test/salesforce-jag")
async def salesforce_jag(
    request: Request,
    settings: Settings = Depends(get_settings_dep),
    exchange: CrossAppAccessClient = Depends(get_exchange_client),
):
    body = await read_json(request)
    id_token = id_token_from(request, body, prefer_web=True)
    if not id_token:
        raise HTTPException(status_code=400, detail="ID token is required")

    resource = require(settings.gateway.salesforce_domain, "SALESFORCE_DOMAIN")
    audience = require(settings.auth0.audience, "AUTH0_AUDIENCE")
    id_jag = await exchange.request_id_jag(id_token, resource, audience)
    logger.info("Salesforce ID-JAG received: %s", preview(id_jag))
    return {"idJagToken": id_jag}


@router.post("/api/gateway-test/auth0-token")
async def auth0_token(request: Request, exchange: CrossAppAccessClient = Depends(get_exchange_client)):
    body = await read_json(request)
    id_jag = _required(body, "idJagToken", "ID-JAG token is required")
    resource_type = body.get("resourceType")
    try:
        result = await exchange.exchange_id_jag_for_auth0_token(id_jag, resource_type)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"accessToken": result.access_token}


@router.post("/api/gateway-test/me-jag")
async def me_jag(request: Request, flow: SalesforceGatewayFlow = Depends(get_gateway_flow)):
    body = await read_json(request)
    id_token = id_token_from(request, body, prefer_web=True)
    if not id_token:
        raise HTTPException(status_code=400, detail="ID token is required")

    id_jag = await flow.me_id_jag(id_token)
    logger.info("ME ID-JAG received: %s", preview(id_jag))
    return {"idJagToken": id_jag}


@router.post("/api/gateway-test/me-auth0-token")
async def me_auth0_token(request: Request, exchange: CrossAppAccessClient = Depends(get_exchange_client)):
    body = await read_json(request)
    id_jag = _required(body, "idJagToken", "ID-JAG token is required")
    result = await exchange.exchange_id_jag_for_auth0_token(id_jag, "me")
    return {"accessToken": result.access_token}


@router.post("/api/gateway-test/me-delete-token")
async def me_delete_token(request: Request, exchange: CrossAppAccessClient = Depends(get_exchange_client)):
    body = await read_json(request)
    id_jag = _required(body, "idJagToken", "ID-JAG token is required")
    access_token = await exchange.exchange_for_me_delete_token(id_jag)
    logger.info("ME delete access token received: %s", preview(access_token))
    return {"accessToken": access_token}


@router.post("/api/gateway-test/connect-account")
async def connect_account(request: Request, flow: SalesforceGatewayFlow = Depends(get_gateway_flow)):
    """Start a Salesforce connected account with a My Account API token"""
    body = await read_json(request)
    me_token = _required(body, "meAccessToken", "ME access token is required")
    return await flow.start_connection(me_token, connect_redirect_uri(request))


@router.post("/api/gateway-test/delete-connected-account")
async def delete_connected_account(
    request: Request, my_account: MyAccountClient = Depends(get_my_account_client)
):
    body = await read_json(request)
    me_token = _required(body, "meAccessToken", "ME access token is required")
    connection_id = _required(body, "connectionId", "Connection ID is required")
    await my_account.delete(me_token, connection_id)
    return {"success": True, "message": "Connected account deleted successfully"}


@router.post("/api/gateway-test/salesforce-data")
async def salesforce_data(
    request: Request,
    settings: Settings = Depends(get_settings_dep),
    http=Depends(get_http_client),
):
    """Call the configured gateway with an Auth0 access token, passing its status through"""
    body = await read_json(request)
    access_token = _required(body, "accessToken", "Missing required parameters")
    status, data = await call_gateway(http, settings, access_token, body.get("endpoint"))
    return JSONResponse(data, status_code=status)


@router.post("/api/gateway-test/run")
async def run_flow(request: Request, flow: SalesforceGatewayFlow = Depends(get_gateway_flow)):
    """Run the full Salesforce flow, starting a connected account when needed"""
    body = await read_json(request)
    id_token = id_token_from(request, body, prefer_web=True)
    if not id_token:
        raise HTTPException(status_code=401, detail="Not authenticated. Please log in with Okta Gateway first.")
    result = await flow.run(id_token, connect_redirect_uri(request))
    return result.to_dict()


@router.post("/api/gateway-test/complete-connected-account")
async def complete_connected_account(request: Request, flow: SalesforceGatewayFlow = Depends(get_gateway_flow)):
    body = await read_json(request)
    state = _required(body, "state", "state is required")
    connect_code = _required(body, "connectCode", "connectCode is required")
    result = await flow.complete(state, connect_code)
    return {"success": True, "message": "Connected account completed", "result": result}


@router.post("/api/gateway-test/delete-flow")
async def delete_flow(request: Request, flow: SalesforceGatewayFlow = Depends(get_gateway_flow)):
    body = await read_json(request)
    id_token = id_token_from(request, body, prefer_web=True)
    if not id_token:
        raise HTTPException(status_code=401, detail="Not authenticated. Please log in with Okta Gateway first.")
    return await flow.delete_connection(id_token, body.get("connectionId"))


@router.get("/agent/connect-callback")
async def connect_callback(
    connect_code: str = None,
    state: str = None,
    error: str = None,
    flow: SalesforceGatewayFlow = Depends(get_gateway_flow),
):
    """Auth0 redirects here once the user has authorized the connection"""
    if error:
        raise HTTPException(status_code=400, detail=f"Connected account error: {error}")
    if not connect_code:
        raise HTTPException(status_code=400, detail="Missing connect_code parameter")
    if not state:
        raise HTTPException(status_code=400, detail="Missing state parameter")

    result = await flow.complete(state, connect_code)
    return {"success": True, "message": "Connected account completed", "result": result}
