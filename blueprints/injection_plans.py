#======================================================================================
#
# Injection plans and the per-user shortfall ("difference")
#
#======================================================================================
from flask import Blueprint, jsonify
import logging

from ledger.injection import InjectionPlanHelper
from ledger.money import as_number
from ledger.orders import OrderLedgerHelper
from utils import get_json_body, optional_bool, optional_int, optional_number, parse_id, require_int, require_number

logger = logging.getLogger(__name__)

bp = Blueprint("injection_plans", __name__, url_prefix="/injection-plans")


@bp.route("/user/<user_id>", methods=["GET"])
def list_user_plans(user_id):
    """Plans newest first, each marked completed / pending (null when the user has no batch)."""
    return jsonify(InjectionPlanHelper.list_plans_with_status(parse_id(user_id, "user ID")))


@bp.route("/shortfall/<user_id>", methods=["GET"])
def user_shortfall(user_id):
    user_id = parse_id(user_id, "user ID")
    current_number = OrderLedgerHelper.current_order_number(user_id)
    total_recharged = InjectionPlanHelper.total_approved_recharges(user_id)
    difference = InjectionPlanHelper.shortfall(user_id, current_number, total_recharged)
    return jsonify({
        "userId": user_id,
        "currentOrderNumber": current_number,
        "totalRecharged": as_number(total_recharged),
        "difference": as_number(difference),
    })


@bp.route("", methods=["POST"])
def create_plan():
    data = get_json_body()
    plan = InjectionPlanHelper.create_plan(
        user_id=require_int(data, "userId", positive=True),
        order_number=optional_int(data, "orderSettingId", positive=True),
        commission_rate=require_number(data, "commissionRate", non_negative=True),
        injection_amount=require_number(data, "injectionAmount", non_negative=True),
        is_active=optional_bool(data, "isActive") is not False,
    )
    return jsonify(plan.to_dict()), 201


@bp.route("/<plan_id>", methods=["PUT"])
def update_plan(plan_id):
    plan_id = parse_id(plan_id)
    data = get_json_body()
    plan = InjectionPlanHelper.update_plan(
        plan_id,
        order_number=optional_int(data, "orderSettingId", positive=True),
        commission_rate=optional_number(data, "commissionRate", non_negative=True),
        injection_amount=optional_number(data, "injectionAmount", non_negative=True),
        is_active=optional_bool(data, "isActive"),
    )
    return jsonify(plan.to_dict())


@bp.route("/<plan_id>", methods=["DELETE"])
def delete_plan(plan_id):
    InjectionPlanHelper.delete_plan(parse_id(plan_id))
    return jsonify({"message": "Deleted successfully"})
