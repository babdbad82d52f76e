"""Async SAMA Money merchant API wrapper."""

import logging
from typing import Any

import httpx

from elverra.config import settings

logger = logging.getLogger(__name__)


class SamaMoneyError(Exception):
    """The gateway refused the request or could not be reached."""

    def __init__(self, message: str, details: Any = None) -> None:
        super().__init__(message)
        self.details = details


def get_http_client() -> httpx.AsyncClient:
    """Create an HTTP client bound to the SAMA Money merchant API."""
    return httpx.AsyncClient(
        base_url=settings.sama_base_url,
        timeout=settings.sama_timeout_seconds,
    )


async def _authenticate(client: httpx.AsyncClient) -> str:
    """Exchange merchant credentials for a bearer token."""
    response = await client.post(
        "/marchand/auth",
        headers={
            "TRANSAC": settings.sama_transac,
            "cmd": settings.sama_cmd,
            "cle_publique": settings.sama_cle_publique,
        },
    )
    response.raise_for_status()
    data = response.json()
    if data.get("status") != 1:
        raise SamaMoneyError("SAMA auth failed", details=data)

    token = (data.get("resultat") or {}).get("token")
    if not token:
        raise SamaMoneyError("SAMA token missing", details=data)
    return token


async def request_payment(
    reference: str,
    amount_fcfa: int,
    phone: str,
    description: str | None = None,
    return_url: str | None = None,
) -> dict[str, Any]:
    """Push a payment request to the customer's phone.

    Raises:
        SamaMoneyError: If the gateway is not configured, unreachable, or
            rejects the request.
    """
    if not settings.sama_configured:
        raise SamaMoneyError("SAMA Money not configured")

    logger.info("Requesting SAMA Money payment %s (%s FCFA)", reference, amount_fcfa)
    try:
        async with get_http_client() as client:
            token = await _authenticate(client)
            response = await client.post(
                "/marchand/pay",
                data={
                    "cmd": settings.sama_cmd,
                    "idCommande": reference,
                    "phoneClient": phone,
                    "montant": str(int(amount_fcfa)),
                    "description": description or "Elverra payment",
                    "url": return_url or settings.frontend_url,
                },
                headers={
                    "Authorization": f"Bearer {token}",
                    "TRANSAC": settings.sama_transac,
                },
            )
            response.raise_for_status()
            data = response.json()
    except (httpx.HTTPError, ValueError) as e:
        logger.error("SAMA Money request for %s failed: %s", reference, e)
        raise SamaMoneyError("SAMA Money payment failed", details=str(e)) from e

    if data.get("status") != 1:
        raise SamaMoneyError("SAMA pay failed", details=data)

    logger.info("SAMA Money payment %s initiated", reference)
    return data
