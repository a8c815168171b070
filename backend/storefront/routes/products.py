# Overview: Flask API routes for catalog search and product maintenance.

# backend/storefront/routes/products.py
"""
Product routes.

Reads are public and only show active products. Writes require an admin.
DELETE deactivates the product instead of removing it.
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import optional_auth, require_admin, require_auth
from ..errors import InvalidArgumentError, StorefrontError, error_response, internal_error_response
from ..services import products_service


products_bp = Blueprint("products", __name__, url_prefix="/api/products")


def _is_admin() -> bool:
    user = g.get("current_user")
    return bool(user and user.is_admin)


@products_bp.get("")
@optional_auth
def search_products_route():
    """
    Search the catalog.

    Query params:
    - q: text matched against name, description and brand
    - category: exact category
    - min_price / max_price: sale price bounds in currency units
    - sort: price_low | price_high | newest | name
    - page: int (default 1)
    - limit: int (default 20, max 50)
    - include_inactive: admins only
    """
    try:
        result = products_service.search_products(
            query=request.args.get("q"),
            category=request.args.get("category"),
            min_price=request.args.get("min_price"),
            max_price=request.args.get("max_price"),
            sort=request.args.get("sort"),
            page=request.args.get("page", type=int),
            per_page=request.args.get("limit", type=int),
            include_inactive=_is_admin() and request.args.get("include_inactive") == "true",
        )
        return jsonify({"success": True, **result})
    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to search products")
        return internal_error_response()


@products_bp.get("/<int:product_id>")
@optional_auth
def get_product_route(product_id: int):
    try:
        product = products_service.get_product(product_id, include_inactive=_is_admin())
        return jsonify({"success": True, "product": product.to_dict()})
    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to load product")
        return internal_error_response()


@products_bp.get("/<int:product_id>/recommendations")
@optional_auth
def recommendations_route(product_id: int):
    """
    Query params:
    - type: similar (default) | related | trending | personalized
    - limit: int (default 8, max 50)

    personalized uses the signed-in user's order history; guests get trending.
    """
    try:
        user = g.get("current_user")
        products = products_service.get_recommendations(
            product_id,
            kind=request.args.get("type", "similar"),
            limit=request.args.get("limit", products_service.DEFAULT_RECOMMENDATION_LIMIT, type=int),
            user_id=user.id if user else None,
        )
        return jsonify({
            "success": True,
            "type": request.args.get("type", "similar"),
            "recommendations": [p.to_dict() for p in products],
        })
    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to get recommendations")
        return internal_error_response()


@products_bp.post("")
@require_auth
@require_admin
def create_product_route():
    try:
        product = products_service.create_product(
            request.get_json(silent=True),
            user_id=g.current_user.id,
        )
        return jsonify({"success": True, "product": product.to_dict()}), 201
    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create product")
        return internal_error_response()


@products_bp.put("/<int:product_id>")
@require_auth
@require_admin
def update_product_route(product_id: int):
    try:
        product = products_service.update_product(product_id, request.get_json(silent=True))
        return jsonify({"success": True, "product": product.to_dict()})
    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update product")
        return internal_error_response()


@products_bp.delete("/<int:product_id>")
@require_auth
@require_admin
def delete_product_route(product_id: int):
    try:
        product = products_service.deactivate_product(product_id)
        return jsonify({"success": True, "product": product.to_dict()})
    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to delete product")
        return internal_error_response()


@products_bp.post("/bulk-update")
@require_auth
@require_admin
def bulk_update_products_route():
    """
    Apply the same changes to several products at once.

    Request body:
    {
        "product_ids": [1, 2, 3],
        "updates": {"is_active": false}
    }

    Returns:
        200: Updated products
        400: Invalid ids or updates (stock and sku cannot be bulk updated)
        404: One or more products do not exist (nothing is updated)
    """
    try:
        data = request.get_json(silent=True)
        if not isinstance(data, dict):
            raise InvalidArgumentError("Invalid JSON payload")
        products = products_service.bulk_update_products(data.get("product_ids"), data.get("updates"))
        return jsonify({
            "success": True,
            "message": f"{len(products)} products updated successfully",
            "products": [p.to_dict() for p in products],
        })
    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to bulk update products")
        return internal_error_response()
