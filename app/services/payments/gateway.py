from __future__ import annotations

from typing import Any

import httpx
import structlog

from app.core.config import Settings
from app.core.exceptions import UpstreamGatewayError

logger = structlog.get_logger(__name__)


class EasebuzzClient:
    """Thin client for the gateway's initiateLink call."""

    def __init__(self, settings: Settings, http_client: httpx.Client | None = None):
        self.base_url = settings.easebuzz_base_url
        self._timeout = settings.easebuzz_timeout_seconds
        self._http = http_client

    def _client(self) -> httpx.Client:
        if self._http is None:
            self._http = httpx.Client(timeout=self._timeout)
        return self._http

    def payment_url(self, access_key: str) -> str:
        return f"{self.base_url}/pay/{access_key}"

    def initiate_link(self, params: dict[str, str]) -> str:
        """POST the signed parameters and return the gateway access key."""
        url = f"{self.base_url}/payment/initiateLink"
        try:
            response = self._client().post(
                url,
                data=params,
                headers={"Accept": "application/json"},
            )
        except httpx.HTTPError as exc:
            logger.error("gateway_request_failed", txnid=params.get("txnid"), error=str(exc))
            raise UpstreamGatewayError(str(exc)) from exc

        body = _parse_body(response)
        # the gateway answers 200 with status 1 on success, anything else is a refusal
        if str(body.get("status")) != "1" or not body.get("data"):
            detail = body.get("error_desc") or body.get("data") or response.text[:200]
            logger.error(
                "gateway_initiation_refused",
                txnid=params.get("txnid"),
                http_status=response.status_code,
                detail=str(detail),
            )
            raise UpstreamGatewayError(str(detail))

        logger.info("gateway_link_created", txnid=params.get("txnid"))
        return str(body["data"])

    def close(self) -> None:
        if self._http is not None:
            self._http.close()


def _parse_body(response: httpx.Response) -> dict[str, Any]:
    try:
        body = response.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}
