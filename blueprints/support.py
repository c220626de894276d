#======================================================================================
#
# Customer support chat
#
#======================================================================================
from flask import Blueprint, jsonify
import logging

from ledger.support import SupportHelper
from models import SenderType
from utils import get_json_body, parse_id, require_choice, require_int, require_string

logger = logging.getLogger(__name__)

bp = Blueprint("support", __name__, url_prefix="/support")

SENDER_TYPES = (SenderType.USER.value, SenderType.SERVICE.value)


@bp.route("/conversations", methods=["POST"])
def open_conversation():
    data = get_json_body()
    conversation = SupportHelper.open_conversation(require_int(data, "userId", positive=True))
    return jsonify(conversation.to_dict())


@bp.route("/conversations/user/<user_id>", methods=["GET"])
def user_conversations(user_id):
    conversations = SupportHelper.list_for_user(parse_id(user_id, "user id"))
    return jsonify([c.to_dict() for c in conversations])


@bp.route("/conversations", methods=["GET"])
def all_conversations():
    return jsonify(SupportHelper.list_all())


@bp.route("/unread-count", methods=["GET"])
def unread_count():
    return jsonify({"count": SupportHelper.unread_count()})


@bp.route("/conversations/<conversation_id>/read", methods=["POST"])
def mark_read(conversation_id):
    updated = SupportHelper.mark_read(parse_id(conversation_id, "conversation id"))
    return jsonify({"updated": updated})


@bp.route("/conversations/<conversation_id>/clear", methods=["POST"])
def clear_conversation(conversation_id):
    deleted = SupportHelper.clear_messages(parse_id(conversation_id, "conversation id"))
    logger.info(f"Cleared {deleted} messages from conversation {conversation_id}")
    return jsonify({"deleted": deleted})


@bp.route("/conversations/<conversation_id>/assign", methods=["PUT"])
def assign_service(conversation_id):
    conversation_id = parse_id(conversation_id, "conversation id")
    data = get_json_body()
    conversation = SupportHelper.assign_service(conversation_id, require_int(data, "serviceId", positive=True))
    return jsonify(conversation.to_dict())


@bp.route("/messages", methods=["POST"])
def send_message():
    data = get_json_body()
    message = SupportHelper.send_message(
        conversation_id=require_int(data, "conversationId", positive=True),
        sender_type=require_choice(data, "senderType", SENDER_TYPES),
        # 0 is the system service agent
        sender_id=require_int(data, "senderId", non_negative=True),
        content=require_string(data, "content"),
    )
    return jsonify(message.to_dict())


@bp.route("/conversations/<conversation_id>/messages", methods=["GET"])
def list_messages(conversation_id):
    messages = SupportHelper.list_messages(parse_id(conversation_id, "conversation id"))
    return jsonify([m.to_dict() for m in messages])
