"""
Repository layer for database operations.
Provides high-level methods for the queries behind the chat access gate,
message persistence and recent-history fetches.
"""
from typing import List, Optional, Tuple
from sqlalchemy.orm import Session
from huddle.db.models import User, Activity, Participant, Message, ParticipantStatus


class Repository:
    """Repository class for database operations."""

    def __init__(self, db: Session):
        """
        Initialize repository with database session.

        Args:
            db: SQLAlchemy database session
        """
        self.db = db

    # User operations
    def create_user(self, username: str, password_hash: str, email: Optional[str] = None) -> User:
        """Create a new user."""
        user = User(
            username=username,
            password=password_hash,
            email=email
        )
        self.db.add(user)
        self.db.commit()
        self.db.refresh(user)
        return user

    def get_user_by_id(self, user_id: int) -> Optional[User]:
        """Get user by ID."""
        return self.db.query(User).filter(User.id == user_id).first()

    # Activity operations
    def create_activity(self, host_id: int, title: str, description: Optional[str] = None) -> Activity:
        """Create a new activity hosted by host_id."""
        activity = Activity(
            host_id=host_id,
            title=title,
            description=description
        )
        self.db.add(activity)
        self.db.commit()
        self.db.refresh(activity)
        return activity

    def get_activity_by_id(self, activity_id: int) -> Optional[Activity]:
        """Get activity by ID."""
        return self.db.query(Activity).filter(Activity.id == activity_id).first()

    # Participant operations
    def create_participant_request(
        self,
        activity_id: int,
        user_id: int,
        status: ParticipantStatus = ParticipantStatus.PENDING
    ) -> Participant:
        """Create a join request for user_id on activity_id."""
        participant = Participant(
            activity_id=activity_id,
            user_id=user_id,
            status=status
        )
        self.db.add(participant)
        self.db.commit()
        self.db.refresh(participant)
        return participant

    def update_participant_status(
        self,
        activity_id: int,
        user_id: int,
        status: ParticipantStatus
    ) -> Optional[Participant]:
        """
        Approve or reject a join request.

        Returns:
            Updated Participant, or None if no request exists
        """
        participant = self.db.query(Participant).filter(
            Participant.activity_id == activity_id,
            Participant.user_id == user_id
        ).first()

        if not participant:
            return None

        participant.status = status
        self.db.commit()
        self.db.refresh(participant)
        return participant

    def can_user_access_chat(self, user_id: int, activity_id: int) -> bool:
        """
        Check whether a user may read and post in an activity's chat room.

        Access is granted to the activity host and to participants whose
        join request was approved. Unknown activities deny everyone.

        Args:
            user_id: User requesting access
            activity_id: Activity (room) ID

        Returns:
            True if the user is the host or an approved participant
        """
        activity = self.get_activity_by_id(activity_id)
        if not activity:
            return False

        if activity.host_id == user_id:
            return True

        participant = self.db.query(Participant).filter(
            Participant.activity_id == activity_id,
            Participant.user_id == user_id,
            Participant.status == ParticipantStatus.APPROVED
        ).first()

        return participant is not None

    # Message operations
    def create_message(self, activity_id: int, sender_id: int, content: str) -> Message:
        """Persist a chat message."""
        message = Message(
            activity_id=activity_id,
            sender_id=sender_id,
            content=content
        )
        self.db.add(message)
        self.db.commit()
        self.db.refresh(message)
        return message

    def get_recent_messages_by_activity_id(
        self,
        activity_id: int,
        limit: int = 50
    ) -> List[Tuple[Message, Optional[str]]]:
        """
        Get the most recent messages of a room with their sender's username.

        Args:
            activity_id: Activity (room) ID
            limit: Maximum number of messages to return

        Returns:
            List of (message, sender username) tuples in chronological order
        """
        rows = (
            self.db.query(Message, User.username)
            .outerjoin(User, User.id == Message.sender_id)
            .filter(Message.activity_id == activity_id)
            .order_by(Message.created_at.desc(), Message.id.desc())
            .limit(limit)
            .all()
        )

        # Return in chronological order
        return [(message, username) for message, username in reversed(rows)]

    def count_messages_by_activity_id(self, activity_id: int) -> int:
        """Count all messages persisted for a room."""
        return self.db.query(Message).filter(Message.activity_id == activity_id).count()
