#======================================================================================
#
# Product catalog shown to members while doing tasks
#
#======================================================================================
from flask import Blueprint, jsonify, current_app
import logging

from extensions import db
from ledger.exceptions import NotFoundError, ValidationError
from models import Product
from utils import get_json_body, optional_bool, optional_string, parse_id, require_string

logger = logging.getLogger(__name__)

bp = Blueprint("products", __name__, url_prefix="/products")

MAX_BULK_PRODUCTS = 100


def _product_from(data: dict) -> Product:
    if not isinstance(data, dict):
        raise ValidationError("Each product must be an object")
    return Product(
        name=require_string(data, "name", message="name is required"),
        description=optional_string(data, "description"),
        image=optional_string(data, "image") or None,
        is_active=optional_bool(data, "isActive") is not False,
    )


def _get_product(product_id) -> Product:
    product = db.session.get(Product, parse_id(product_id))
    if not product:
        raise NotFoundError("Product not found")
    return product


@bp.route("/active", methods=["GET"])
def active_products():
    products = Product.query.filter_by(is_active=True).order_by(Product.created_at.desc()).all()
    return jsonify([p.to_dict() for p in products])


@bp.route("", methods=["GET"])
def list_products():
    products = Product.query.order_by(Product.updated_at.desc(), Product.id.desc()).all()
    return jsonify([p.to_dict() for p in products])


@bp.route("", methods=["POST"])
def create_product():
    product = _product_from(get_json_body())
    try:
        db.session.add(product)
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Product creation failed: {e}")
        raise
    return jsonify(product.to_dict()), 201


@bp.route("/bulk", methods=["POST"])
def bulk_create_products():
    """Create 1-100 products in one transaction: all or none."""
    items = get_json_body().get("products")
    if not isinstance(items, list) or not 1 <= len(items) <= MAX_BULK_PRODUCTS:
        raise ValidationError(f"products must contain between 1 and {MAX_BULK_PRODUCTS} items")

    products = [_product_from(item) for item in items]
    try:
        db.session.add_all(products)
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Bulk product creation failed: {e}")
        raise

    logger.info(f"Bulk created {len(products)} products")
    return jsonify({
        "message": f"Successfully created {len(products)} products",
        "products": [p.to_dict() for p in products],
    }), 201


@bp.route("/<product_id>", methods=["PUT"])
def update_product(product_id):
    product = _get_product(product_id)
    data = get_json_body()

    name = optional_string(data, "name", min_length=1)
    description = optional_string(data, "description")
    image = optional_string(data, "image")
    is_active = optional_bool(data, "isActive")

    try:
        if name is not None:
            product.name = name
        if description is not None:
            product.description = description
        if image is not None:
            product.image = image
        if is_active is not None:
            product.is_active = is_active
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    return jsonify(product.to_dict())


@bp.route("/<product_id>", methods=["DELETE"])
def delete_product(product_id):
    product = _get_product(product_id)
    try:
        db.session.delete(product)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    return jsonify({"message": "Deleted successfully"})
