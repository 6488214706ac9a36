# api/routes_user.py
"""
Push subscription routes consumed by the browser client.

- POST   /api/subscribe        register or replace (by endpoint), then one immediate delivery
- DELETE /api/subscribe        remove by endpoint
- POST   /api/subscribe/check  does this endpoint have a subscription, and for which location
- GET    /api/subscriptions    debug listing filtered by owner_id or location
"""
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import JSONResponse

from core.container import Services
from core.errors import PermanentEndpointError
from core.response import ok, error
from models.schemas import EndpointRequest, SubscribeRequest
from models.subscription import Location, Subscription
from services.delivery_coordinator import DeliveryStatus

router = APIRouter()


def get_services(request: Request) -> Services:
    return request.app.state.services


def _public(sub: Subscription) -> dict:
    return {
        "endpoint": sub.endpoint,
        "location": str(sub.location),
        "owner_id": sub.owner_id,
        "created_at": sub.created_at.isoformat(),
        "last_notified": sub.last_notified.isoformat() if sub.last_notified else None,
        "next_notification_time": sub.next_notification_time.isoformat(),
    }


@router.post("/subscribe", status_code=201)
async def subscribe(payload: SubscribeRequest, services: Services = Depends(get_services)):
    """
    Behavior / edge cases:
    - 201 Created: stored (new or replaced); an immediate delivery was attempted.
    - 400: missing endpoint/keys or location not "city, region, country".
    - 410 Gone: the push service rejected the endpoint during the immediate delivery;
      the subscription was removed again and nothing is stored.
    """
    sub, outcome = await services.registration.register(payload)
    if outcome is not None and outcome.status is DeliveryStatus.PRUNED:
        return JSONResponse(status_code=410, content=error(code=PermanentEndpointError.code,
                                                           message="Push endpoint rejected by the push service"))
    data = _public(sub)
    data["delivery"] = outcome.status.value if outcome else None
    return ok(data)


@router.delete("/subscribe")
async def unsubscribe(payload: EndpointRequest, services: Services = Depends(get_services)):
    """
    - 200 OK: subscription existed and was removed.
    - 404 Not Found: no such subscription.
    """
    removed = await services.registration.unregister(payload.endpoint)
    if not removed:
        raise HTTPException(status_code=404, detail="Subscription not found")
    return ok({"removed": True})


@router.post("/subscribe/check")
async def check_subscription(payload: EndpointRequest, services: Services = Depends(get_services)):
    sub = await services.registration.check(payload.endpoint)
    if sub is None:
        return JSONResponse(status_code=404, content=error(code="not_found", message="Subscription not found"))
    return ok({"subscribed": True, "location": str(sub.location)})


@router.get("/subscriptions")
async def list_subscriptions(
    owner_id: Optional[str] = Query(None, description="Optional: filter by owner_id"),
    location: Optional[str] = Query(None, description="Optional: filter by 'city, region, country'"),
    services: Services = Depends(get_services),
):
    """
    Debug: list subscriptions, optionally through the owner/location indexes.
    """
    repo = services.repository
    if owner_id:
        subs = await repo.find_by_owner(owner_id)
    elif location:
        subs = await repo.find_by_location(Location.parse(location))
    else:
        subs = await repo.list_all()
    return ok([_public(s) for s in subs])
