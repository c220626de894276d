from sqlalchemy import case, func

from extensions import db
from ledger.exceptions import NotFoundError
from ledger.transaction import atomic
from models import ConversationStatus, SenderType, SupportConversation, SupportMessage, User, utcnow

WELCOME_MESSAGE = "Hello, it's our pleasure to serve you!"
SYSTEM_SERVICE_ID = 0


class SupportHelper:
    """Member <-> customer service conversations."""

    @staticmethod
    def get_conversation(conversation_id: int) -> SupportConversation:
        conversation = db.session.get(SupportConversation, conversation_id)
        if not conversation:
            raise NotFoundError("Conversation not found")
        return conversation

    @staticmethod
    def open_conversation(user_id: int) -> SupportConversation:
        """Reuse the member's open conversation, or start one with a welcome message."""
        if not db.session.get(User, user_id):
            raise NotFoundError("User not found")

        conversation = SupportConversation.query.filter_by(
            user_id=user_id, status=ConversationStatus.OPEN.value
        ).first()
        if conversation:
            return conversation

        with atomic():
            conversation = SupportConversation(user_id=user_id, status=ConversationStatus.OPEN.value)
            db.session.add(conversation)
            db.session.flush()
            db.session.add(SupportMessage(
                conversation_id=conversation.id,
                sender_type=SenderType.SERVICE.value,
                sender_id=SYSTEM_SERVICE_ID,
                content=WELCOME_MESSAGE,
            ))
        return conversation

    @staticmethod
    def list_for_user(user_id: int):
        return (
            SupportConversation.query.filter_by(user_id=user_id)
            .order_by(SupportConversation.created_at.desc(), SupportConversation.id.desc())
            .all()
        )

    @staticmethod
    def list_all():
        """Open conversations first, most recently active first, each with its unread count."""
        unread = dict(
            db.session.query(SupportMessage.conversation_id, func.count(SupportMessage.id))
            .filter(SupportMessage.sender_type == SenderType.USER.value, SupportMessage.is_read.is_(False))
            .group_by(SupportMessage.conversation_id)
            .all()
        )
        open_first = case((SupportConversation.status == ConversationStatus.OPEN.value, 0), else_=1)
        conversations = (
            SupportConversation.query
            .order_by(open_first, SupportConversation.updated_at.desc(), SupportConversation.id.desc())
            .all()
        )

        result = []
        for conversation in conversations:
            item = conversation.to_dict(include_people=True)
            item["unreadCount"] = unread.get(conversation.id, 0)
            result.append(item)
        return result

    @staticmethod
    def unread_count() -> int:
        return SupportMessage.query.filter_by(sender_type=SenderType.USER.value, is_read=False).count()

    @staticmethod
    def mark_read(conversation_id: int) -> int:
        with atomic():
            updated = (
                SupportMessage.query.filter_by(
                    conversation_id=conversation_id, sender_type=SenderType.USER.value, is_read=False
                )
                .update({SupportMessage.is_read: True}, synchronize_session=False)
            )
        return updated

    @staticmethod
    def clear_messages(conversation_id: int) -> int:
        """Delete the history but keep the conversation."""
        conversation = SupportHelper.get_conversation(conversation_id)
        with atomic():
            deleted = SupportMessage.query.filter_by(conversation_id=conversation.id) \
                .delete(synchronize_session=False)
            conversation.updated_at = utcnow()
        db.session.expire(conversation, ["messages"])
        return deleted

    @staticmethod
    def assign_service(conversation_id: int, service_id: int) -> SupportConversation:
        conversation = SupportHelper.get_conversation(conversation_id)
        if not db.session.get(User, service_id):
            raise NotFoundError("Service user not found")
        with atomic():
            conversation.service_id = service_id
        return conversation

    @staticmethod
    def send_message(conversation_id: int, sender_type: str, sender_id: int, content: str) -> SupportMessage:
        conversation = SupportHelper.get_conversation(conversation_id)
        with atomic():
            message = SupportMessage(
                conversation_id=conversation.id,
                sender_type=sender_type,
                sender_id=sender_id,
                content=content,
            )
            db.session.add(message)
            conversation.updated_at = utcnow()
        return message

    @staticmethod
    def list_messages(conversation_id: int):
        return (
            SupportMessage.query.filter_by(conversation_id=conversation_id)
            .order_by(SupportMessage.created_at.asc(), SupportMessage.id.asc())
            .all()
        )
