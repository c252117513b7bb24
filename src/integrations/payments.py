"""
Payments provider: the "create transfer" primitive.

Transfers move released escrow to the project's payout account. Every
request carries an idempotency key so a retried or repeated call never
moves money twice.
"""

from abc import ABC, abstractmethod
from typing import Dict, Optional

import httpx
from pydantic import BaseModel, Field

from src.config import get_settings
from src.integrations.http import request_with_retry
from src.logging_config import get_logger

logger = get_logger(__name__)


class TransferRequest(BaseModel):
    """One outbound transfer."""

    amount: int = Field(..., gt=0)  # minor units
    currency: str
    destination: str
    description: str
    metadata: Dict[str, str] = Field(default_factory=dict)
    idempotency_key: str


class Transfer(BaseModel):
    """Provider's view of a created transfer."""

    id: str
    status: str = "pending"
    destination: Optional[str] = None
    amount: Optional[int] = None


class TransferError(Exception):
    """The provider rejected or failed a transfer."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class TransferGateway(ABC):
    """Interface to the payments provider."""

    @abstractmethod
    async def create_transfer(self, request: TransferRequest) -> Transfer:
        """Create a transfer or raise ``TransferError``."""


class HttpTransferGateway(TransferGateway):
    """Transfers via the provider's REST API."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: Optional[float] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        settings = get_settings()
        self.base_url = (base_url or settings.payments_api_url).rstrip("/")
        self.api_key = api_key if api_key is not None else settings.payments_api_key
        self.timeout = timeout or settings.transfer_timeout_seconds
        self._client = client

    async def create_transfer(self, request: TransferRequest) -> Transfer:
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Idempotency-Key": request.idempotency_key,
        }
        body = {
            "amount": request.amount,
            "currency": request.currency.lower(),
            "destination": request.destination,
            "description": request.description,
            "metadata": request.metadata,
        }
        url = f"{self.base_url}/transfers"

        try:
            if self._client is not None:
                response = await request_with_retry(
                    self._client, "POST", url, json=body, headers=headers, timeout=self.timeout
                )
            else:
                async with httpx.AsyncClient() as client:
                    response = await request_with_retry(
                        client, "POST", url, json=body, headers=headers, timeout=self.timeout
                    )
        except httpx.HTTPError as e:
            logger.warning(
                "Transfer request failed: %s",
                e,
                extra={"idempotency_key": request.idempotency_key},
            )
            raise TransferError(f"Transfer request failed: {e}") from e

        if response.status_code >= 400:
            message = _error_message(response)
            raise TransferError(message, status_code=response.status_code)

        try:
            data = response.json()
            return Transfer(
                id=data["id"],
                status=data.get("status") or "pending",
                destination=data.get("destination"),
                amount=data.get("amount"),
            )
        except (ValueError, KeyError, TypeError) as e:
            raise TransferError(f"Malformed transfer response: {e}") from e


def _error_message(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return f"Transfer failed with status {response.status_code}"
    error = payload.get("error") if isinstance(payload, dict) else None
    if isinstance(error, dict) and error.get("message"):
        return str(error["message"])
    return f"Transfer failed with status {response.status_code}"
