from flask import Blueprint, jsonify
import logging

from ledger.members import SubUserHelper
from utils import get_json_body, optional_string, parse_id, require_string

logger = logging.getLogger(__name__)

bp = Blueprint("sub_users", __name__, url_prefix="/sub-users")


@bp.route("", methods=["GET"])
def list_sub_users():
    return jsonify(SubUserHelper.list_sub_users())


@bp.route("", methods=["POST"])
def create_sub_user():
    data = get_json_body()
    sub_user = SubUserHelper.create_sub_user(
        account=require_string(data, "account", min_length=4, strip=True,
                               message="Account must be at least 4 characters"),
        login_password=require_string(data, "loginPassword", min_length=6,
                                      message="Login password must be at least 6 characters"),
        pay_password=require_string(data, "payPassword", min_length=6,
                                    message="Payment password must be at least 6 characters"),
    )
    return jsonify(SubUserHelper.to_dict(sub_user)), 201


@bp.route("/<sub_user_id>", methods=["PUT"])
def update_sub_user(sub_user_id):
    sub_user_id = parse_id(sub_user_id, "user ID")
    data = get_json_body()
    sub_user = SubUserHelper.update_sub_user(
        sub_user_id,
        account=optional_string(data, "account", min_length=4, strip=True),
        login_password=optional_string(data, "loginPassword", min_length=6),
        pay_password=optional_string(data, "payPassword", min_length=6),
    )
    return jsonify(SubUserHelper.to_dict(sub_user))


@bp.route("/<sub_user_id>", methods=["DELETE"])
def delete_sub_user(sub_user_id):
    SubUserHelper.delete_sub_user(parse_id(sub_user_id, "user ID"))
    return jsonify({"message": "Sub user deleted successfully"})


@bp.route("/generate-invite-codes", methods=["POST"])
def generate_invite_codes():
    succeeded, results = SubUserHelper.backfill_invite_codes()
    logger.info(f"Invite codes generated for {succeeded} sub-users")
    return jsonify({
        "message": f"Generated invite codes for {succeeded} sub-users",
        "results": results,
    })
