"""Delegated Graph API proxy.

Each route verifies the caller's delegated assertion, exchanges it on
behalf of the user for a Graph token with the scopes the call needs, and
forwards the request. A successful downstream response is returned with
its status and body unchanged; any failure answers with
``{"error": ..., "details": ...}``.

Tokens obtained here live for one request and are never stored.
"""

from __future__ import annotations

import logging
from typing import Annotated, Any

from fastapi import APIRouter, Body, Depends, Request
from fastapi.responses import JSONResponse, Response

from tripgate.foundation.domain.exceptions import DelegationError
from tripgate.infra.auth.delegation import GraphClient, GraphResponse, OnBehalfOfClient
from tripgate.infra.auth.dependencies import AuthConfig, DelegatedAssertion

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/ms", tags=["delegation"])

CALENDAR_SCOPES = ("https://graph.microsoft.com/Calendars.ReadWrite",)
MAIL_SCOPES = ("https://graph.microsoft.com/Mail.Send",)


class DelegationClients:
    """On-behalf-of and Graph clients built by the auth lifespan."""

    def __init__(self, obo: OnBehalfOfClient, graph: GraphClient) -> None:
        self.obo = obo
        self.graph = graph


def get_delegation_clients(request: Request) -> DelegationClients:
    obo = getattr(request.app.state, "obo_client", None)
    graph = getattr(request.app.state, "graph_client", None)
    if obo is None or graph is None:
        raise DelegationError("Delegation is not configured", status_code=503)
    return DelegationClients(obo, graph)


ClientsDep = Annotated[DelegationClients, Depends(get_delegation_clients)]
JsonBody = Annotated[dict[str, Any], Body()]


@router.get("/me")
async def graph_me(
    identity: DelegatedAssertion,
    clients: ClientsDep,
    settings: AuthConfig,
) -> Response:
    """Profile of the signed-in user from Graph ``/me``."""
    token = await clients.obo.exchange(settings.graph_default_scopes, identity.assertion)
    return _passthrough(await clients.graph.get("/me", token))


@router.post("/events")
async def create_event(
    identity: DelegatedAssertion,
    clients: ClientsDep,
    payload: JsonBody,
) -> Response:
    """Create a calendar event.

    ``start`` and ``end`` need a ``dateTime``; a missing ``timeZone`` becomes UTC.
    """
    event = dict(payload)
    for edge in ("start", "end"):
        value = event.get(edge)
        if not isinstance(value, dict) or not value.get("dateTime"):
            raise DelegationError("start.dateTime and end.dateTime are required", status_code=400)
        event[edge] = {**value, "timeZone": value.get("timeZone") or "UTC"}

    token = await clients.obo.exchange(CALENDAR_SCOPES, identity.assertion)
    return _passthrough(await clients.graph.post("/me/events", token, event))


@router.post("/send-mail", status_code=202)
async def send_mail(
    identity: DelegatedAssertion,
    clients: ClientsDep,
    payload: JsonBody,
) -> JSONResponse:
    """Send mail as the signed-in user.

    Body: ``to`` (one address or a list), ``subject``, and ``html`` or ``text``.
    """
    to = payload.get("to")
    subject = payload.get("subject")
    html = payload.get("html")
    text = payload.get("text")
    if not to or not subject or not (html or text):
        raise DelegationError("to, subject, and (html or text) are required", status_code=400)

    recipients = to if isinstance(to, list) else [to]
    message = {
        "message": {
            "subject": subject,
            "body": {"contentType": "HTML" if html else "Text", "content": html or text},
            "toRecipients": [{"emailAddress": {"address": str(r)}} for r in recipients],
        },
        "saveToSentItems": True,
    }
    token = await clients.obo.exchange(MAIL_SCOPES, identity.assertion)
    result = await clients.graph.post("/me/sendMail", token, message)
    logger.info("graph_mail_sent", extra={"recipients": len(recipients)})
    return JSONResponse(status_code=202, content={"ok": True, "result": result.body})


@router.get("/admin-consent-url")
async def admin_consent_url(
    _: DelegatedAssertion,
    clients: ClientsDep,
    tenant: str = "common",
    redirect_uri: str | None = None,
) -> dict[str, str]:
    """URL a tenant administrator opens to pre-approve the app's permissions."""
    return {"url": clients.obo.admin_consent_url(tenant, redirect_uri)}


def _passthrough(result: GraphResponse) -> Response:
    if result.body is None:
        return Response(status_code=result.status_code)
    if isinstance(result.body, str) and "json" not in (result.media_type or ""):
        return Response(
            content=result.body,
            status_code=result.status_code,
            media_type=result.media_type or "text/plain",
        )
    return JSONResponse(status_code=result.status_code, content=result.body)
