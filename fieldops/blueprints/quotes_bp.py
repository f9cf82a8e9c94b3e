"""Quotes blueprint.

Endpoint groups:
  Quotes        GET/POST        /api/v1/quotes
                GET/PUT/DELETE  /api/v1/quotes/<id>
  Response      POST            /api/v1/quotes/<id>/send
                POST            /api/v1/quotes/<id>/approve
                POST            /api/v1/quotes/<id>/decline
  Conversion    POST            /api/v1/quotes/<id>/convert
"""

from __future__ import annotations

import logging

from flask import Blueprint, jsonify, request

import fieldops.services.quote_lifecycle as quotes
from fieldops.blueprints import json_body, page_args, page_response, tenant_id, user_id

logger = logging.getLogger(__name__)

quotes_bp = Blueprint("quotes", __name__, url_prefix="/api/v1/quotes")


@quotes_bp.route("", methods=["GET"])
def list_quotes():
    limit, offset = page_args()
    items, total = quotes.list_quotes(
        tenant_id(),
        status=request.args.get("status"),
        client_id=request.args.get("client_id", type=int),
        limit=limit,
        offset=offset,
    )
    return page_response(items, total, limit, offset)


@quotes_bp.route("", methods=["POST"])
def create_quote():
    """Body: {client_id, title, line_items: [{name, quantity, unit_price, is_taxable?}], tax_rate?, discount_amount?}"""
    quote = quotes.create_quote(tenant_id(), user_id(), json_body())
    return jsonify(quote.to_dict()), 201


@quotes_bp.route("/<int:quote_id>", methods=["GET"])
def get_quote(quote_id):
    return jsonify(quotes.get_quote(tenant_id(), quote_id).to_dict()), 200


@quotes_bp.route("/<int:quote_id>", methods=["PUT"])
def update_quote(quote_id):
    quote = quotes.update_quote(tenant_id(), quote_id, json_body())
    return jsonify(quote.to_dict()), 200


@quotes_bp.route("/<int:quote_id>", methods=["DELETE"])
def delete_quote(quote_id):
    quotes.delete_quote(tenant_id(), quote_id)
    return "", 204


@quotes_bp.route("/<int:quote_id>/send", methods=["POST"])
def send_quote(quote_id):
    return jsonify(quotes.send_quote(tenant_id(), quote_id).to_dict()), 200


@quotes_bp.route("/<int:quote_id>/approve", methods=["POST"])
def approve_quote(quote_id):
    """Body: {signature?}. Client IP is taken from the request."""
    quote = quotes.approve_quote(
        tenant_id(), quote_id,
        signature=json_body().get("signature"),
        ip_address=request.headers.get("X-Forwarded-For", request.remote_addr),
    )
    return jsonify(quote.to_dict()), 200


@quotes_bp.route("/<int:quote_id>/decline", methods=["POST"])
def decline_quote(quote_id):
    """Body: {reason?}"""
    quote = quotes.decline_quote(tenant_id(), quote_id, reason=json_body().get("reason"))
    return jsonify(quote.to_dict()), 200


@quotes_bp.route("/<int:quote_id>/convert", methods=["POST"])
def convert_quote(quote_id):
    job = quotes.convert_to_job(tenant_id(), quote_id, user_id())
    return jsonify({"job": job.to_dict(), "quote_id": quote_id}), 201
