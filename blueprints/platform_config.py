#======================================================================================
#
# Single-row platform settings: product price range and recharge addresses
#
#======================================================================================
from decimal import Decimal
from flask import Blueprint, jsonify
import logging

from extensions import db
from ledger.exceptions import ValidationError
from models import ProductPriceConfig, RechargeConfig
from utils import get_json_body, optional_string, require_number

logger = logging.getLogger(__name__)

bp = Blueprint("platform_config", __name__, url_prefix="")

DEFAULT_MIN_RATE = Decimal("0.29")
DEFAULT_MAX_RATE = Decimal("0.60")


def ensure_row(model, **defaults):
    """Return the settings row, creating it with defaults on first access."""
    row = model.query.order_by(model.id.asc()).first()
    if row:
        return row
    row = model(**defaults)
    try:
        db.session.add(row)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    return row


#===========================================================================
#      PRODUCT PRICE CONFIG
#==============================================================================
@bp.route("/product-price-config", methods=["GET"])
def get_price_config():
    row = ensure_row(ProductPriceConfig, min_rate=DEFAULT_MIN_RATE, max_rate=DEFAULT_MAX_RATE)
    return jsonify(row.to_dict())


@bp.route("/product-price-config", methods=["PUT"])
def update_price_config():
    data = get_json_body()
    min_rate = require_number(data, "minRate", minimum="0.01", maximum="1")
    max_rate = require_number(data, "maxRate", minimum="0.01", maximum="1")
    if min_rate > max_rate:
        raise ValidationError("minRate must not be greater than maxRate")

    row = ensure_row(ProductPriceConfig, min_rate=DEFAULT_MIN_RATE, max_rate=DEFAULT_MAX_RATE)
    try:
        row.min_rate = min_rate
        row.max_rate = max_rate
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    logger.info(f"Product price range set to {min_rate}-{max_rate}")
    return jsonify(row.to_dict())


#===========================================================================
#      RECHARGE CONFIG
#==============================================================================
@bp.route("/recharge-config", methods=["GET"])
def get_recharge_config():
    return jsonify(ensure_row(RechargeConfig).to_dict())


@bp.route("/recharge-config", methods=["PUT"])
def update_recharge_config():
    data = get_json_body()
    trc20_address = optional_string(data, "trc20Address", strip=True)
    trx_address = optional_string(data, "trxAddress", strip=True)

    row = ensure_row(RechargeConfig)
    try:
        if trc20_address is not None:
            row.trc20_address = trc20_address
        if trx_address is not None:
            row.trx_address = trx_address
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    return jsonify(row.to_dict())
