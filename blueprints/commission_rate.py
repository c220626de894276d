from flask import Blueprint, jsonify, current_app
import logging

from ledger.money import as_number
from ledger.rates import CommissionRateHelper
from models import CommissionRate
from utils import get_json_body, optional_bool, optional_string, parse_id, require_number

logger = logging.getLogger(__name__)

bp = Blueprint("commission_rate", __name__, url_prefix="/commission-rate")


@bp.route("/active", methods=["GET"])
def active_rate():
    """Display value only. Balance math treats 'no active row' as 0."""
    rate = CommissionRateHelper.get_active_rate()
    if rate:
        return jsonify(rate.to_dict())
    return jsonify({"rate": as_number(current_app.config["DEFAULT_DISPLAY_RATE"]), "isActive": True})


@bp.route("", methods=["GET"])
def list_rates():
    rates = CommissionRate.query.order_by(CommissionRate.updated_at.desc(), CommissionRate.id.desc()).all()
    return jsonify([r.to_dict() for r in rates])


@bp.route("", methods=["POST"])
def create_rate():
    data = get_json_body()
    is_active = optional_bool(data, "isActive")
    rate = CommissionRateHelper.create_rate(
        require_number(data, "rate", non_negative=True),
        is_active=is_active is not False,
        description=optional_string(data, "description"),
    )
    return jsonify(rate.to_dict()), 201


@bp.route("/<rate_id>", methods=["PUT"])
def update_rate(rate_id):
    rate_id = parse_id(rate_id)
    data = get_json_body()
    rate = CommissionRateHelper.update_rate(
        rate_id,
        require_number(data, "rate", non_negative=True),
        is_active=optional_bool(data, "isActive"),
        description=optional_string(data, "description"),
    )
    return jsonify(rate.to_dict())


@bp.route("/<rate_id>", methods=["DELETE"])
def delete_rate(rate_id):
    CommissionRateHelper.delete_rate(parse_id(rate_id))
    return jsonify({"message": "Deleted successfully"})
