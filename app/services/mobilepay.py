"""Vipps MobilePay integration: webhook signatures and recurring charges."""

from __future__ import annotations

import hashlib
import hmac
import logging
import os
from datetime import date, timedelta
from typing import Any

import httpx

from app.config import settings
from app.schemas.billing import ChargeRequest, ChargeResult

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "X-MobilePay-Signature"
CHARGE_DUE_DAYS = 2


def _get_webhook_secret() -> str:
    return os.getenv("MOBILEPAY_WEBHOOK_SECRET", "")


def _get_credentials() -> dict[str, str]:
    """Resolve MobilePay API credentials from env.

    Raises:
        ValueError: If any required credential is missing.
    """
    credentials = {
        "client_id": os.getenv("MOBILEPAY_CLIENT_ID", ""),
        "client_secret": os.getenv("MOBILEPAY_CLIENT_SECRET", ""),
        "subscription_key": os.getenv("MOBILEPAY_SUBSCRIPTION_KEY", ""),
        "merchant_serial_number": os.getenv("MOBILEPAY_MERCHANT_SERIAL_NUMBER", ""),
    }
    missing = sorted(name for name, value in credentials.items() if not value)
    if missing:
        raise ValueError(
            "MobilePay API credentials are not configured: " + ", ".join(missing)
        )
    credentials["recurring_subscription_key"] = (
        os.getenv("MOBILEPAY_RECURRING_SUBSCRIPTION_KEY") or credentials["subscription_key"]
    )
    return credentials


def webhook_secret_configured() -> bool:
    return bool(_get_webhook_secret())


def verify_webhook_signature(body: bytes, signature: str | None) -> bool:
    """Verify a MobilePay webhook HMAC-SHA256 signature.

    Args:
        body: Raw request body bytes.
        signature: Hex digest from the X-MobilePay-Signature header.

    Returns:
        True if the signature is valid. False when no secret is configured.
    """
    secret = _get_webhook_secret()
    if not secret or not signature:
        return False
    expected = hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()
    return hmac.compare_digest(expected, signature.strip().lower())


def get_access_token(timeout: float | None = None) -> str:
    """Fetch an OAuth access token from the MobilePay access token endpoint.

    Raises:
        httpx.HTTPStatusError: On non-2xx response.
        ValueError: If credentials are missing or no token is returned.
    """
    credentials = _get_credentials()
    resp = httpx.post(
        f"{settings.mobilepay_api_base_url}/accesstoken/get",
        headers={
            "Content-Type": "application/json",
            "client_id": credentials["client_id"],
            "client_secret": credentials["client_secret"],
            "Ocp-Apim-Subscription-Key": credentials["subscription_key"],
        },
        timeout=timeout or settings.provider_http_timeout_seconds,
    )
    resp.raise_for_status()
    token = resp.json().get("access_token")
    if not token:
        raise ValueError("MobilePay access token response did not include a token")
    return token


def create_charge(
    *,
    agreement_id: str,
    amount: int,
    currency: str,
    description: str,
    external_id: str,
    due: date | None = None,
) -> dict[str, Any]:
    """Create a charge on a recurring agreement (recurring v3 API).

    Args:
        agreement_id: MobilePay agreement id.
        amount: Amount in minor units (øre).
        currency: ISO currency code.
        description: Charge description shown to the customer.
        external_id: Merchant reference, also used as the idempotency key.
        due: Due date; defaults to two days from today.

    Returns:
        Parsed JSON response, containing the ``chargeId``.

    Raises:
        httpx.HTTPStatusError: On non-2xx response from MobilePay.
        ValueError: If credentials are not configured.
    """
    credentials = _get_credentials()
    token = get_access_token()
    due_date = due or (date.today() + timedelta(days=CHARGE_DUE_DAYS))
    resp = httpx.post(
        f"{settings.mobilepay_api_base_url}/recurring/v3/agreements/{agreement_id}/charges",
        json={
            "amount": amount,
            "currency": currency,
            "description": description,
            "due": due_date.isoformat(),
            "externalId": external_id,
        },
        headers={
            "Content-Type": "application/json",
            "Authorization": f"Bearer {token}",
            "Ocp-Apim-Subscription-Key": credentials["recurring_subscription_key"],
            "Merchant-Serial-Number": credentials["merchant_serial_number"],
            "Vipps-System-Name": settings.mobilepay_system_name,
            "Vipps-System-Version": "1.0.0",
            "Idempotency-Key": external_id,
        },
        timeout=settings.provider_http_timeout_seconds,
    )
    resp.raise_for_status()
    return resp.json()


class MobilePayChargeClient:
    """Charge-initiation client backed by the MobilePay recurring API."""

    def create_charge(self, request: ChargeRequest) -> ChargeResult:
        try:
            data = create_charge(
                agreement_id=request.agreement_id,
                amount=request.amount,
                currency=request.currency,
                description=request.description,
                external_id=request.external_id,
            )
        except httpx.HTTPStatusError as exc:
            logger.error(
                "MobilePay charge for agreement %s failed: %s %s",
                request.agreement_id,
                exc.response.status_code,
                exc.response.text,
            )
            return ChargeResult(
                success=False,
                error=f"MobilePay API error: {exc.response.status_code} - {exc.response.text}",
            )
        except (httpx.HTTPError, ValueError) as exc:
            logger.error("MobilePay charge for agreement %s failed: %s", request.agreement_id, exc)
            return ChargeResult(success=False, error=str(exc))
        if "id" not in data and data.get("chargeId"):
            data = {**data, "id": data["chargeId"]}
        return ChargeResult(success=True, data=data)
