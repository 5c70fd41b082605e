# Overview: Caller identity passed into every sale engine operation.

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class RequestContext:
    """
    Tenant and actor context for one engine call.

    Supplied by the authentication layer and trusted as-is: the engine
    never re-derives business or cashier identity.
    """
    business_id: int
    cashier_id: int
    tenant_id: str | None = None
    shift_id: int | None = None
