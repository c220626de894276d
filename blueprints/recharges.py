#======================================================================================
#
# Recharge requests: member submits, back office approves / rejects
#
#======================================================================================
from flask import Blueprint, jsonify
import logging

from blueprints.security import current_actor
from ledger.funding import RechargeManager, REVIEW_STATUSES
from utils import get_json_body, optional_string, parse_id, require_choice, require_int, require_number

logger = logging.getLogger(__name__)

bp = Blueprint("recharges", __name__, url_prefix="/recharges")


@bp.route("", methods=["POST"])
def create_recharge():
    data = get_json_body()
    recharge = RechargeManager.create(
        user_id=require_int(data, "userId", positive=True),
        amount=require_number(data, "amount", non_negative=True),
        voucher_image=optional_string(data, "voucherImage"),
        actor=current_actor(),
    )
    return jsonify(recharge.to_dict())


@bp.route("", methods=["GET"])
def list_recharges():
    recharges = RechargeManager.list_for(current_actor())
    return jsonify([r.to_dict(include_user=True) for r in recharges])


@bp.route("/<recharge_id>/status", methods=["PUT"])
def review_recharge(recharge_id):
    recharge_id = parse_id(recharge_id, "id")
    data = get_json_body()
    recharge = RechargeManager.review(
        recharge_id,
        status=require_choice(data, "status", REVIEW_STATUSES),
        note=optional_string(data, "note", strip=True),
        actor=current_actor(),
    )
    return jsonify(recharge.to_dict())


@bp.route("/pending/count", methods=["GET"])
def pending_count():
    return jsonify({"count": RechargeManager.pending_count()})


@bp.route("/user/<user_id>", methods=["GET"])
def user_recharges(user_id):
    recharges = RechargeManager.list_for_user(parse_id(user_id, "user ID"))
    return jsonify([r.to_dict() for r in recharges])
