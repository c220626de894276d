#======================================================================================
#
# Member self-service: overview, balance, wallet and passwords
#
#======================================================================================
from flask import Blueprint, jsonify, request
import logging

from ledger.members import MemberHelper
from ledger.money import as_number
from utils import get_json_body, parse_id, require_int, require_number, require_string

logger = logging.getLogger(__name__)

bp = Blueprint("user", __name__, url_prefix="/user")


@bp.route("/me", methods=["GET"])
def me():
    user_id = parse_id(request.args.get("userId"), "user ID")
    return jsonify(MemberHelper.overview(user_id))


@bp.route("/balance", methods=["PUT"])
def update_balance():
    """Signed balance adjustment; the result may not drop below zero."""
    data = get_json_body()
    user_id = require_int(data, "userId", positive=True)
    delta = require_number(data, "amount")

    user = MemberHelper.adjust_balance(user_id, delta)
    return jsonify({"id": user.id, "balance": as_number(user.balance)})


@bp.route("/wallet", methods=["PUT"])
def update_wallet():
    data = get_json_body()
    user_id = require_int(data, "userId")
    wallet_address = require_string(data, "walletAddress", strip=True, message="walletAddress is required")

    user = MemberHelper.update_wallet(user_id, wallet_address)
    return jsonify({"id": user.id, "walletAddress": user.wallet_address})


def _password_change(data):
    user_id = require_int(data, "userId")
    old_password = require_string(data, "oldPassword", message="Old password is required")
    new_password = require_string(data, "newPassword", min_length=6,
                                  message="New password must be at least 6 characters")
    return user_id, old_password, new_password


@bp.route("/password/login", methods=["PUT"])
def change_login_password():
    user_id, old_password, new_password = _password_change(get_json_body())
    MemberHelper.change_login_password(user_id, old_password, new_password)
    logger.info(f"Login password changed for user {user_id}")
    return jsonify({"message": "Login password updated successfully"})


@bp.route("/password/payment", methods=["PUT"])
def change_payment_password():
    user_id, old_password, new_password = _password_change(get_json_body())
    MemberHelper.change_pay_password(user_id, old_password, new_password)
    logger.info(f"Payment password changed for user {user_id}")
    return jsonify({"message": "Payment password updated successfully"})
