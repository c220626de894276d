#======================================================================================
#
# Order batches (settings), task records and progress
#
#======================================================================================
from flask import Blueprint, jsonify
import logging

from ledger.money import as_number
from ledger.orders import OrderLedgerHelper
from models import OrderStatus
from utils import (
    get_json_body,
    optional_int,
    optional_number,
    optional_string,
    parse_id,
    require_int,
    require_number,
    require_string,
)

logger = logging.getLogger(__name__)

bp = Blueprint("orders", __name__, url_prefix="/orders")


#===========================================================================
#      ORDER SETTINGS
#==============================================================================
@bp.route("/settings/<user_id>", methods=["GET"])
def current_setting(user_id):
    setting = OrderLedgerHelper.get_current_setting(parse_id(user_id, "user ID"))
    return jsonify(setting.to_dict() if setting else None)


@bp.route("/settings/<user_id>/history", methods=["GET"])
def setting_history(user_id):
    settings = OrderLedgerHelper.list_settings(parse_id(user_id, "user ID"))
    return jsonify([s.to_dict() for s in settings])


@bp.route("/settings", methods=["POST"])
def create_setting():
    """Open a new batch; it becomes the user's current batch."""
    data = get_json_body()
    setting = OrderLedgerHelper.create_order_setting(
        user_id=require_int(data, "userId", positive=True),
        max_orders=require_int(data, "maxOrders", non_negative=True),
        commission_rate=require_number(data, "commissionRate", non_negative=True),
        order_type=require_string(data, "orderType", default="pre-order"),
        amount=require_number(data, "amount", non_negative=True, default=0),
        description=optional_string(data, "description"),
    )
    return jsonify(setting.to_dict()), 201


@bp.route("/settings/<setting_id>", methods=["PUT"])
def update_setting(setting_id):
    setting_id = parse_id(setting_id, "setting ID")
    data = get_json_body()
    setting = OrderLedgerHelper.update_order_setting(
        setting_id,
        max_orders=optional_int(data, "maxOrders", non_negative=True),
        commission_rate=optional_number(data, "commissionRate", non_negative=True),
        description=optional_string(data, "description"),
    )
    return jsonify(setting.to_dict())


@bp.route("/settings/<setting_id>", methods=["DELETE"])
def delete_setting(setting_id):
    OrderLedgerHelper.delete_order_setting(parse_id(setting_id, "setting ID"))
    return jsonify({"message": "Setting deleted"})


#===========================================================================
#      ORDER RECORDS
#==============================================================================
@bp.route("/records/<user_id>", methods=["GET"])
def list_records(user_id):
    records = OrderLedgerHelper.list_records(parse_id(user_id, "user ID"))
    return jsonify([r.to_dict() for r in records])


@bp.route("/records", methods=["POST"])
def create_record():
    """
    Completed records credit the user's balance in the same transaction:
    `commission` when given and non-zero, otherwise amount x effective rate.
    """
    data = get_json_body()
    record, credited = OrderLedgerHelper.create_order_record(
        user_id=require_int(data, "userId", positive=True),
        order_type=require_string(data, "orderType"),
        amount=require_number(data, "amount", non_negative=True),
        status=require_string(data, "status", default=OrderStatus.PENDING.value),
        description=optional_string(data, "description"),
        commission=optional_number(data, "commission", non_negative=True),
        commission_override=optional_number(data, "commissionOverride", non_negative=True),
    )
    if credited:
        logger.info(f"Record {record.id} credited {credited}")
    return jsonify(record.to_dict()), 201


#===========================================================================
#      PROGRESS
#==============================================================================
@bp.route("/progress/<user_id>", methods=["GET"])
def progress(user_id):
    stats = OrderLedgerHelper.progress(parse_id(user_id, "user ID"))
    stats["totalCommission"] = as_number(stats["totalCommission"])
    return jsonify(stats)
