"""
Shiprocket API client.

Shiprocket is the shipping aggregator used to book couriers, print labels
and track parcels. Every call authenticates with a bearer token obtained
from /auth/login; the token is cached for SHIPROCKET_TOKEN_TTL_HOURS and
refreshed once if Shiprocket answers 401.

All transport and API failures are raised as ShipmentProviderError (502).
"""
import logging
import time
from typing import Optional

import httpx

from config import settings
from domain.errors import ShipmentProviderError

logger = logging.getLogger(__name__)


class ShiprocketClient:
    """Thin async wrapper over the Shiprocket external API."""

    def __init__(self, base_url: Optional[str] = None, timeout: float = 20.0,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.base_url = (base_url or settings.shiprocket_base_url).rstrip("/")
        self.timeout = timeout
        self.transport = transport
        self._token: Optional[str] = None
        self._token_expires_at: float = 0.0

    # ── Auth ────────────────────────────────────────────────────────

    async def _login(self) -> str:
        if not settings.shiprocket_configured:
            raise ShipmentProviderError(
                "Shiprocket credentials are not configured "
                "(SHIPROCKET_EMAIL, SHIPROCKET_PASSWORD)"
            )
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.post(
                    f"{self.base_url}/auth/login",
                    json={
                        "email": settings.shiprocket_email,
                        "password": settings.shiprocket_password,
                    },
                )
        except httpx.HTTPError as e:
            logger.error(f"Shiprocket login failed: {e}")
            raise ShipmentProviderError(f"Shiprocket unreachable: {e}")

        if response.status_code != 200 or not response.json().get("token"):
            logger.error(f"Shiprocket login rejected: HTTP {response.status_code}")
            raise ShipmentProviderError("Shiprocket login rejected", details={"status": response.status_code})

        self._token = response.json()["token"]
        self._token_expires_at = time.time() + settings.shiprocket_token_ttl_hours * 3600
        logger.info("Shiprocket token refreshed")
        return self._token

    async def _get_token(self) -> str:
        if self._token and time.time() < self._token_expires_at:
            return self._token
        return await self._login()

    def invalidate_token(self) -> None:
        self._token = None
        self._token_expires_at = 0.0

    async def _request(self, method: str, path: str, *, json: dict | None = None, params: dict | None = None) -> dict:
        for attempt in (1, 2):
            token = await self._get_token()
            try:
                async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                    response = await client.request(
                        method,
                        f"{self.base_url}{path}",
                        json=json,
                        params=params,
                        headers={"Authorization": f"Bearer {token}"},
                    )
            except httpx.HTTPError as e:
                logger.error(f"Shiprocket {method} {path} failed: {e}")
                raise ShipmentProviderError(f"Shiprocket unreachable: {e}")

            if response.status_code == 401 and attempt == 1:
                self.invalidate_token()
                continue
            break

        try:
            body = response.json()
        except ValueError:
            body = {"raw": response.text[:500]}

        if response.status_code >= 400:
            message = body.get("message") if isinstance(body, dict) else None
            logger.error(f"Shiprocket {method} {path} → HTTP {response.status_code}: {message or body}")
            raise ShipmentProviderError(
                f"Shiprocket error: {message or f'HTTP {response.status_code}'}",
                details={"status": response.status_code, "path": path},
            )
        return body

    # ── Orders & AWB ────────────────────────────────────────────────

    async def create_adhoc_order(self, payload: dict) -> dict:
        """POST /orders/create/adhoc → {order_id, shipment_id, status, ...}"""
        return await self._request("POST", "/orders/create/adhoc", json=payload)

    async def assign_awb(self, shipment_id: str, courier_id: int | None = None) -> dict:
        """POST /courier/assign/awb → {awb_assign_status, response: {data: {...}}}"""
        body = {"shipment_id": shipment_id}
        if courier_id:
            body["courier_id"] = courier_id
        return await self._request("POST", "/courier/assign/awb", json=body)

    async def generate_label(self, shipment_ids: list[str]) -> dict:
        """POST /courier/generate/label → {label_created, label_url, not_created}"""
        return await self._request("POST", "/courier/generate/label", json={"shipment_id": shipment_ids})

    async def track_awb(self, awb_code: str) -> dict:
        """GET /courier/track/awb/{awb} → {tracking_data: {...}}"""
        return await self._request("GET", f"/courier/track/awb/{awb_code}")

    async def cancel_orders(self, shiprocket_order_ids: list[str]) -> dict:
        return await self._request("POST", "/orders/cancel", json={"ids": shiprocket_order_ids})

    # ── Courier, pickup, manifest ───────────────────────────────────

    async def serviceability(self, *, delivery_pincode: str, weight: float, cod: bool) -> dict:
        return await self._request(
            "GET",
            "/courier/serviceability/",
            params={
                "pickup_postcode": settings.shiprocket_pickup_pincode,
                "delivery_postcode": delivery_pincode,
                "weight": weight,
                "cod": 1 if cod else 0,
            },
        )

    async def pickup_addresses(self) -> dict:
        return await self._request("GET", "/settings/company/pickup")

    async def generate_pickup(self, shipment_ids: list[str]) -> dict:
        """POST /courier/generate/pickup → {pickup_status, response: {pickup_scheduled_date, ...}}"""
        return await self._request("POST", "/courier/generate/pickup", json={"shipment_id": shipment_ids})

    async def generate_manifest(self, shipment_ids: list[str]) -> dict:
        """POST /manifests/generate → {status, manifest_url}"""
        return await self._request("POST", "/manifests/generate", json={"shipment_id": shipment_ids})


# Module-level singleton
shiprocket_client = ShiprocketClient()
