#======================================================================================
#
# Back office member management
#
#======================================================================================
from flask import Blueprint, jsonify
import logging

from blueprints.security import current_actor
from ledger.members import MemberHelper
from models import isoformat
from utils import get_json_body, optional_string, parse_id

logger = logging.getLogger(__name__)

bp = Blueprint("users", __name__, url_prefix="/users")


@bp.route("", methods=["GET"])
def list_users():
    """
    Members with order stats, recharge total and injection shortfall.
    Sub-users only see the members they manage.
    """
    return jsonify(MemberHelper.list_members(current_actor()))


@bp.route("/<user_id>", methods=["GET"])
def get_user(user_id):
    user = MemberHelper.get_user(parse_id(user_id, "user ID"))
    return jsonify({
        "id": user.id,
        "account": user.account,
        "email": user.email,
        "name": user.name,
        "inviteCode": user.invite_code,
        "createdAt": isoformat(user.created_at),
        "updatedAt": isoformat(user.updated_at),
    })


@bp.route("/<user_id>/team", methods=["GET"])
def get_team(user_id):
    return jsonify(MemberHelper.team(parse_id(user_id, "user ID")))


@bp.route("/<user_id>/password", methods=["PUT"])
def reset_password(user_id):
    user_id = parse_id(user_id, "user ID")
    data = get_json_body()
    user = MemberHelper.reset_passwords(
        user_id,
        login_password=optional_string(data, "loginPassword"),
        pay_password=optional_string(data, "payPassword"),
    )
    logger.info(f"Passwords reset for user {user.id}")
    return jsonify({"id": user.id})


@bp.route("/<user_id>/remark", methods=["PUT"])
def update_remark(user_id):
    user_id = parse_id(user_id, "user ID")
    data = get_json_body()
    user = MemberHelper.set_remark(user_id, optional_string(data, "remark"))
    return jsonify({"id": user.id, "remark": user.remark})


@bp.route("/<user_id>/assign-sub-user", methods=["PUT"])
def assign_sub_user(user_id):
    user_id = parse_id(user_id, "user ID")
    data = get_json_body()
    sub_user_id = data.get("subUserId")
    if sub_user_id is not None:
        sub_user_id = parse_id(sub_user_id, "sub user ID")

    user = MemberHelper.assign_sub_user(user_id, sub_user_id, current_actor())
    logger.info(f"User {user.id} now managed by {user.managed_by_sub_user_id}")
    return jsonify({"id": user.id, "managedBySubUserId": user.managed_by_sub_user_id})


@bp.route("/<user_id>", methods=["DELETE"])
def delete_user(user_id):
    MemberHelper.delete_member(parse_id(user_id, "user ID"))
    return jsonify({"message": "User deleted successfully"})
