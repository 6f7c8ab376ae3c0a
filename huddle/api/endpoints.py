"""
REST endpoints exposed to the rest of the platform.

The REST tier (join requests, approvals, reviews) hands notification events
to the realtime core through this router, building the request bodies with
``huddle.services.notifications``.
"""
import logging
from fastapi import APIRouter, Depends, status
from huddle.api.dependencies import get_dispatcher
from huddle.api.dispatcher import Dispatcher
from huddle.api.schemas import NotificationRequest, NotificationDispatchResponse

logger = logging.getLogger(__name__)

notifications_router = APIRouter()


@notifications_router.post(
    "",
    response_model=NotificationDispatchResponse,
    status_code=status.HTTP_202_ACCEPTED
)
async def send_notification(
    request: NotificationRequest,
    dispatcher: Dispatcher = Depends(get_dispatcher)
):
    """
    Push a notification to every live connection of a user.
    
    Delivery is best-effort: if the recipient has no open WebSocket the
    notification is dropped and ``delivered`` is 0. Nothing is stored.

    Bodies for the platform's notification kinds are built with the helpers
    in ``huddle.services.notifications``; serialise them with
    ``model_dump(by_alias=True)``:
        - ``join_request_notification``: someone asked to join a host's activity
        - ``request_update_notification``: a join request was approved or rejected
        - ``new_review_notification``: a user received a review

    Example Request:
        ```json
        {
            "recipientId": 1,
            "message": "bob has requested to join your activity \"Sunrise hike\"",
            "data": {"type": "join_request", "activityId": 42, "requestId": 7}
        }
        ```
    
    Returns:
        202 with the number of connections reached
    """
    delivered = await dispatcher.send_notification(request)
    return NotificationDispatchResponse(recipient_id=request.recipient_id, delivered=delivered)
