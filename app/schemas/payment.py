from __future__ import annotations

from pydantic import BaseModel, ConfigDict

from app.schemas.submission import CamelModel


class CreatePaymentRequest(CamelModel):
    uid: str = ""
    frontend_url: str | None = None


class CreateAttendeePaymentRequest(CamelModel):
    name: str = ""
    email: str = ""
    phone: str = ""
    organization: str | None = None
    frontend_url: str | None = None


class GatewayCallback(BaseModel):
    """Form fields posted by the gateway to surl/furl."""

    model_config = ConfigDict(extra="ignore")

    txnid: str = ""
    amount: str = ""
    productinfo: str = ""
    firstname: str = ""
    email: str = ""
    status: str = ""
    hash: str = ""
