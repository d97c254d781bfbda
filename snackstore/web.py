"""HTTP routes and request handling for the store API."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Callable, Iterable

from flask import Blueprint, Flask, Response, g, jsonify, request, send_file

from snackstore import constants
from snackstore.middleware import RateLimiter, normalize_client_ip
from snackstore.pagination import parse_pagination
from snackstore.responses import (
    AppError,
    http_error_response,
    success_response,
    success_with_pagination_response,
)
from snackstore.schemas import (
    CreateProductRequest,
    CreateRedemptionRequest,
    CreateTransactionRequest,
    GetCustomerRequest,
    GetProductRequest,
    GetTransactionRequest,
    ReportTransactionsRequest,
    ValidationError,
)

OPENAPI_FILE = Path("api") / "openapi.yaml"


def _error_response(err: BaseException) -> tuple[Response, int]:
    status, body = http_error_response(err)
    return jsonify(body), status


def create_app(
    customer_use_case: Any,
    product_use_case: Any,
    transaction_use_case: Any,
    redemption_use_case: Any,
    report_use_case: Any,
    rate_limiter: RateLimiter | None = None,
    logger: logging.Logger | None = None,
) -> Flask:
    """Build the Flask application with every route of the API."""
    log = logger if logger is not None else logging.getLogger(__name__)
    app = Flask(__name__)
    app.json.sort_keys = False

    def validate(req: Any) -> None:
        try:
            req.validate()
        except ValidationError as exc:
            log.warning("Validation failed : %s", exc)
            message = str(exc) or constants.FAILED_VALIDATION_OCCURRED
            raise AppError(message, 400, exc) from exc

    def paging() -> tuple[int, int]:
        try:
            return parse_pagination(
                request.args.get("page", ""),
                request.args.get("page_size", ""),
                constants.DEFAULT_PAGE,
                constants.DEFAULT_PAGE_SIZE,
            )
        except ValueError as exc:
            log.warning("Failed to parse pagination : %s", exc)
            raise AppError(constants.FAILED_INPUT_FORMAT, 400, exc) from exc

    def bind(schema: Any, trimmed: Iterable[str] = ()) -> Any:
        keys = set(trimmed)
        try:
            data = request.get_json(force=True, silent=True)
            if not isinstance(data, dict):
                raise ValueError("request body must be a JSON object")
            data = {
                key: value.strip() if key in keys and isinstance(value, str) else value
                for key, value in data.items()
            }
            return schema.from_dict(data)
        except Exception as exc:
            log.warning("Failed to parse request body : %s", exc)
            raise AppError(constants.FAILED_DATA_FROM_BODY, 400, exc) from exc

    def call(what: str, func: Callable[..., Any], *args: Any) -> Any:
        try:
            return func(*args)
        except AppError as exc:
            log.warning("Failed to %s : %s", what, exc)
            raise
        except Exception as exc:
            log.warning("Failed to %s : %s", what, exc)
            raise AppError(constants.INTERNAL_SERVER_ERROR, 500, exc) from exc

    def query(name: str) -> str:
        return request.args.get(name, "").strip()

    api = Blueprint("api", __name__, url_prefix="/api")

    if rate_limiter is not None:

        @api.before_request
        def _limit() -> None:
            ip = normalize_client_ip(request.remote_addr or "")
            try:
                context = rate_limiter.get(ip)
            except Exception as exc:
                raise AppError(constants.INTERNAL_SERVER_ERROR, 500, exc) from exc
            g.rate_limit = context
            if context.reached:
                raise AppError(constants.TOO_MANY_REQUESTS, 429)

        @api.after_request
        def _limit_headers(response: Response) -> Response:
            context = g.get("rate_limit")
            if context is not None:
                response.headers[constants.RATE_LIMIT_LIMIT_HEADER] = str(context.limit)
                response.headers[constants.RATE_LIMIT_REMAINING_HEADER] = str(context.remaining)
                response.headers[constants.RATE_LIMIT_RESET_HEADER] = str(context.reset)
            return response

    @api.get("/customers")
    def list_customers():
        page, page_size = paging()
        req = GetCustomerRequest(page=page, page_size=page_size)
        validate(req)
        items, meta = call("get customers", customer_use_case.list, req)
        return jsonify(success_with_pagination_response(constants.CUSTOMERS_FETCHED, items, meta))

    @api.post("/products")
    def create_product():
        req = bind(CreateProductRequest)
        validate(req)
        created = call("create product", product_use_case.create, req)
        return jsonify(success_response(constants.PRODUCT_CREATED, created)), 201

    @api.get("/products")
    def list_products():
        req = GetProductRequest(date=query("date"))
        validate(req)
        items = call("get products", product_use_case.list_by_date, req)
        return jsonify(success_response(constants.PRODUCTS_FETCHED, items))

    @api.post("/transactions")
    def create_transaction():
        req = bind(
            CreateTransactionRequest, ("customer_name", "product_id", "transaction_at")
        )
        validate(req)
        created = call("create transaction", transaction_use_case.create, req)
        return jsonify(success_response(constants.TRANSACTION_CREATED, created)), 201

    @api.get("/transactions")
    def list_transactions():
        start, end = query("start"), query("end")
        page, page_size = paging()
        req = GetTransactionRequest(start=start, end=end, page=page, page_size=page_size)
        validate(req)
        items, meta = call("get transactions", transaction_use_case.list, req)
        return jsonify(
            success_with_pagination_response(constants.TRANSACTIONS_FETCHED, items, meta)
        )

    @api.post("/redemptions")
    def create_redemption():
        req = bind(CreateRedemptionRequest, ("customer_name", "product_id", "redeem_at"))
        validate(req)
        created = call("create redemption", redemption_use_case.create, req)
        return jsonify(success_response(constants.REDEMPTION_CREATED, created)), 201

    @api.get("/reports/transactions")
    def report_transactions():
        req = ReportTransactionsRequest(start=query("start"), end=query("end"))
        validate(req)
        report = call("get report", report_use_case.transactions, req)
        return jsonify(success_response(constants.REPORT_FETCHED, report))

    app.register_blueprint(api)

    def welcome():
        return jsonify(success_response(constants.WELCOME_MESSAGE, {"status": "ok"}))

    app.add_url_rule("/", "welcome", welcome, methods=["GET"])
    app.add_url_rule("/api", "api_welcome", welcome, methods=["GET"])

    @app.get("/health")
    def health():
        return jsonify(success_response(constants.HEALTH_CHECK_SUCCESS, {"status": "ok"}))

    @app.get("/api/openapi.yaml")
    def openapi():
        path = OPENAPI_FILE.resolve()
        if not path.is_file():
            raise AppError(constants.NOT_FOUND, 404)
        return send_file(path)

    app.register_error_handler(AppError, _error_response)

    def not_found(_exc: BaseException):
        return _error_response(AppError(constants.NOT_FOUND, 404))

    app.register_error_handler(404, not_found)
    app.register_error_handler(405, not_found)
    return app