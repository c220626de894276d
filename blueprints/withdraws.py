#======================================================================================
#
# Withdraw requests: the amount is reserved on submit and returned on rejection
#
#======================================================================================
from flask import Blueprint, jsonify
import logging

from blueprints.security import current_actor
from ledger.funding import WithdrawalManager, REVIEW_STATUSES
from ledger.money import as_number
from utils import get_json_body, optional_string, parse_id, require_choice, require_int, require_number, require_string

logger = logging.getLogger(__name__)

bp = Blueprint("withdraws", __name__, url_prefix="/withdraws")


@bp.route("", methods=["POST"])
def submit_withdraw():
    data = get_json_body()
    withdraw, user = WithdrawalManager.submit(
        user_id=require_int(data, "userId", positive=True),
        amount=require_number(data, "amount"),
        pay_password=require_string(data, "payPassword", message="Payment password is required"),
        wallet_address=optional_string(data, "walletAddress", strip=True),
    )
    return jsonify({
        "withdraw": withdraw.to_dict(),
        "user": {"id": user.id, "balance": as_number(user.balance)},
    })


@bp.route("", methods=["GET"])
def list_withdraws():
    withdraws = WithdrawalManager.list_for(current_actor())
    return jsonify([w.to_dict(include_user=True) for w in withdraws])


@bp.route("/user/<user_id>", methods=["GET"])
def user_withdraws(user_id):
    withdraws = WithdrawalManager.list_for_user(parse_id(user_id, "user ID"))
    return jsonify([w.to_dict() for w in withdraws])


@bp.route("/<withdraw_id>/status", methods=["PUT"])
def review_withdraw(withdraw_id):
    withdraw_id = parse_id(withdraw_id, "id")
    data = get_json_body()
    withdraw, refunded_user = WithdrawalManager.review(
        withdraw_id,
        status=require_choice(data, "status", REVIEW_STATUSES),
        note=optional_string(data, "note", strip=True),
        actor=current_actor(),
    )
    result = {"withdraw": withdraw.to_dict()}
    if refunded_user is not None:
        result["user"] = {"id": refunded_user.id, "balance": as_number(refunded_user.balance)}
    return jsonify(result)
