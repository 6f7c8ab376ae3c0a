"""
Notification payload builders for the REST tier.

Each builder returns the NotificationRequest that the corresponding REST
action hands to ``Dispatcher.send_notification`` (or POSTs to
``/v1/notifications``).
"""
from huddle.api.schemas import NotificationRequest
from huddle.db.models import ParticipantStatus

JOIN_REQUEST = "join_request"
REQUEST_UPDATE = "request_update"
NEW_REVIEW = "new_review"


def join_request_notification(
    host_id: int,
    requester_name: str,
    activity_id: int,
    activity_title: str,
    request_id: int
) -> NotificationRequest:
    """Tell an activity host that someone asked to join."""
    return NotificationRequest(
        recipient_id=host_id,
        message=f'{requester_name} has requested to join your activity "{activity_title}"',
        data={
            "type": JOIN_REQUEST,
            "activityId": activity_id,
            "requestId": request_id
        }
    )


def request_update_notification(
    participant_id: int,
    activity_id: int,
    activity_title: str,
    status: ParticipantStatus
) -> NotificationRequest:
    """
    Tell a requester that the host approved or rejected their join request.

    Raises:
        ValueError: if status is still pending
    """
    status = ParticipantStatus(status)
    if status == ParticipantStatus.PENDING:
        raise ValueError("Join request update must be approved or rejected")

    return NotificationRequest(
        recipient_id=participant_id,
        message=f'Your request to join "{activity_title}" has been {status.value}',
        data={
            "type": REQUEST_UPDATE,
            "activityId": activity_id,
            "status": status.value
        }
    )


def new_review_notification(user_id: int, reviewer_name: str, review_id: int) -> NotificationRequest:
    """Tell a user that someone reviewed them."""
    return NotificationRequest(
        recipient_id=user_id,
        message=f"{reviewer_name} has left you a review",
        data={
            "type": NEW_REVIEW,
            "reviewId": review_id
        }
    )
