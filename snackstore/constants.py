"""Shared constants: cache keys, headers, defaults, layouts and user-facing messages."""

from datetime import timedelta

# Cache keys and lifetimes
PRODUCT_CACHE_KEY_PREFIX = "products:date:"
REPORT_CACHE_KEY_PREFIX = "report:transactions:"
PRODUCT_CACHE_TTL = timedelta(minutes=5)
REPORT_CACHE_TTL = timedelta(minutes=2)

# Rate limit response headers
RATE_LIMIT_LIMIT_HEADER = "X-RateLimit-Limit"
RATE_LIMIT_REMAINING_HEADER = "X-RateLimit-Remaining"
RATE_LIMIT_RESET_HEADER = "X-RateLimit-Reset"

# Pagination defaults
DEFAULT_PAGE = 1
DEFAULT_PAGE_SIZE = 10

# Rate limit in "<limit>-<period>" form
DEFAULT_RATE_LIMIT = "60-M"

# Number of transactions listed in a report
REPORT_LAST_TRANSACTION_LIMIT = 10

# Date and timestamp layouts (timestamps are RFC 3339)
DATE_LAYOUT = "%Y-%m-%d"
DATETIME_LAYOUT = "%Y-%m-%dT%H:%M:%S%z"

# Error messages
NOT_FOUND = "API not found"
FAILED_DATA_FROM_BODY = "Failed to get data from body"
FAILED_INPUT_FORMAT = "Invalid input format"
FAILED_VALIDATION_OCCURRED = "Validation error occurred"
INVALID_REQUEST_DATA = "Invalid request data"
INTERNAL_SERVER_ERROR = "Internal server error"
TOO_MANY_REQUESTS = "Too many requests, please try again later"
UNAUTHORIZED = "Unauthorized access"
ERR_INVALID_ID_FORMAT = "Invalid ID format"
CONFLICT_ERROR = "Resource conflict"
STATUS_NOT_FOUND = "Resource not found"
ERR_CREATE_PRODUCT = "Failed to create product"
ERR_INSUFFICIENT_STOCK = "Insufficient stock"
ERR_INSUFFICIENT_POINTS = "Insufficient points"

# Success messages
WELCOME_MESSAGE = "Welcome to Snack Store API!"
HEALTH_CHECK_SUCCESS = "Health check success"
CUSTOMERS_FETCHED = "Customers fetched successfully"
PRODUCTS_FETCHED = "Products fetched successfully"
PRODUCT_CREATED = "Product created successfully"
TRANSACTION_CREATED = "Transaction created successfully"
TRANSACTIONS_FETCHED = "Transactions fetched successfully"
REDEMPTION_CREATED = "Redemption created successfully"
REPORT_FETCHED = "Report fetched successfully"