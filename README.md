# snackstore

A JSON HTTP API for a small snack store, built on Flask and SQLAlchemy. It keeps a
product catalogue and records sales. Customers earn loyalty points on each sale and
can spend those points on products. Reports summarise the sales in a range of dates.

Product lists and reports are cached, and requests under `/api/...` are rate limited
per client IP. The `snackstore` command uses Redis for both the cache and the rate limit.

## Installation

```
pip install .
```

The default database URL uses the `postgresql` dialect. Its driver (for example
`psycopg2`) is not installed with the package, so install one yourself. You can also
set `DATABASE_URL` to any URL that SQLAlchemy accepts.

For the test suite:

```
pip install ".[test]"
pytest
```

## Configuration

`snackstore.settings.load_settings` reads the defaults first. Values from a `.env`
file in the working directory, if one is present, replace the defaults. Non-empty
environment variables replace both. Key names are not case-sensitive.

| Key                | Default           | Meaning                                            |
|--------------------|-------------------|----------------------------------------------------|
| `APP_NAME`         | `snack-store-api` | logger name                                        |
| `PORT`             | `8080`            | port the server listens on                         |
| `LOG_LEVEL`        | `info`            | `trace`, `debug`, `info`, `warn`, `error`, `fatal`, `panic`; any other value means `info` |
| `DATABASE_URL`     |                   | if set, used instead of the `DB_*` keys             |
| `DB_HOST`          | `localhost`       |                                                    |
| `DB_PORT`          | `5432`            |                                                    |
| `DB_NAME`          | `snack_store`     |                                                    |
| `DB_USERNAME`      |                   |                                                    |
| `DB_PASSWORD`      |                   |                                                    |
| `DB_POOL_IDLE`     | `10`              | connection pool size                               |
| `DB_POOL_MAX`      | `100`             | largest number of open connections                 |
| `DB_POOL_LIFETIME` | `300`             | seconds before a connection is recycled            |
| `REDIS_HOST`       | `localhost`       |                                                    |
| `REDIS_PORT`       | `6379`            |                                                    |
| `REDIS_PASSWORD`   | empty             |                                                    |
| `REDIS_DB`         | `0`               |                                                    |
| `RATE_LIMIT`       | `60-M`            | requests per client IP                             |
| `DROP_TABLE_NAMES` |                   | comma-separated tables for `--drop-table`          |

`RATE_LIMIT` has the form `<count>-<period>`. The period is `S`, `M`, `H` or `D`.
A value that cannot be parsed means 60 requests per minute.

The pool settings do not apply to SQLite URLs. Logs are written to stderr as one JSON
object per line. Every request is logged with its status, method, path, latency and
client. A request that takes two seconds or more is logged as a warning.

## Running

```
snackstore --drop-table --migrate --seed --run
```

At start-up the command connects to the database. The flags then run in the order
they are given:

- `--drop-table` drops each table named in `DROP_TABLE_NAMES`. It fails if that
  key is not set.
- `--migrate` creates the `customers`, `products`, `transactions` and
  `redemptions` tables together with their indexes and constraints.
- `--seed` reads `customers.json`, `products.json`, `transactions.json` and
  `redemptions.json` from `migrations/json` in the working directory. Each file
  fills its table only when that table is empty. A missing or malformed file is
  logged as a warning and skipped.
- `--run` starts the HTTP server after the other steps.

Unknown flags are ignored.

- With no arguments, the command starts the server straight away.
- With arguments but no `--run`, the other steps run and the command exits.
- If a step fails, the command exits with status 1.

The server is Flask's built-in server, listening on `0.0.0.0:PORT`.

## Endpoints

| Method | Path                        | Purpose                                          |
|--------|-----------------------------|--------------------------------------------------|
| GET    | `/`, `/api`                 | welcome message                                  |
| GET    | `/health`                   | health check                                     |
| GET    | `/api/openapi.yaml`         | serves `api/openapi.yaml` from the working directory if it exists |
| GET    | `/api/customers`            | customers, newest first, paged with `page` and `page_size` (defaults 1 and 10) |
| GET    | `/api/products?date=…`      | products manufactured on a date (`YYYY-MM-DD`)   |
| POST   | `/api/products`             | create a product                                 |
| GET    | `/api/transactions`         | transactions from `start` to `end`, latest first, paged |
| POST   | `/api/transactions`         | record a sale                                    |
| POST   | `/api/redemptions`          | spend points on a product                        |
| GET    | `/api/reports/transactions` | report for `start` to `end`                      |

Date ranges include both ends.

### Request bodies

`POST /api/products` takes a JSON object with these fields:

- `name`, `type`: strings.
- `flavor`: one of `Jagung Bakar`, `Rumput Laut`, `Original`, `Jagung Manis`,
  `Keju Asin`, `Keju Manis`, `Pedas`.
- `size`: one of `Small`, `Medium`, `Large`.
- `price`, `stock_qty`: integers.
- `manufactured_date`: a date as `YYYY-MM-DD`.

`POST /api/transactions` takes `customer_name`, `product_id`, `qty` and
`transaction_at`. `POST /api/redemptions` takes `customer_name`, `product_id`, `qty`
and `redeem_at`. Timestamps are RFC 3339, for example `2024-05-01T10:00:00Z`.

### Responses

A successful response has this shape:

```json
{"message": "...", "data": ..., "paging": {...}}
```

`paging` appears only on paged lists. It holds `current_page`, `page_size`,
`total_item`, `total_page`, `has_next` and `has_previous`.

An error response has this shape:

```json
{"error": {"code": "VALIDATION_ERROR", "message": "..."}}
```

The codes follow the HTTP status:

| Status | Code                    |
|--------|-------------------------|
| 400    | `VALIDATION_ERROR`      |
| 401    | `UNAUTHORIZED`          |
| 403    | `FORBIDDEN`             |
| 404    | `NOT_FOUND`             |
| 409    | `CONFLICT`              |
| 422    | `UNPROCESSABLE_ENTITY`  |
| 429    | `TOO_MANY_REQUESTS`     |
| any other | `INTERNAL_SERVER_ERROR` |

Unknown paths and methods return `NOT_FOUND`.

Responses under `/api/...` carry the headers `X-RateLimit-Limit`,
`X-RateLimit-Remaining` and `X-RateLimit-Reset`.

### Points

- A sale earns one point for every full 1000 of its total price.
- A redemption costs 200 points per item for a `Small` product, 300 for `Medium`
  and 500 for `Large`.
- A sale to a customer name not seen before creates that customer. Names are
  matched without regard to case.
- A redemption needs an existing customer with enough points and a product with
  enough stock. Otherwise it is refused with `NOT_FOUND` or `CONFLICT`.

### Reports

A report holds these fields:

- `total_customer`: the number of distinct buyers in the range.
- `has_new_customer`: whether any buyer joined in the month of their purchase.
- `total_income`
- `total_products_sold`
- `best_seller`: the product sold in the largest quantity.
- `last_transactions`: the ten latest transactions.

### Caching

Product lists are cached for five minutes and reports for two minutes. A new
product, sale or redemption drops the cached product list for that product's
manufacturing date, and a sale or redemption also drops all cached reports. If the
cache fails, the failure is logged and the request is answered from the database.

## Using it as a library

`snackstore.server.bootstrap(engine, logger, cache, rate_limiter)` returns a Flask
application, which you can run under any WSGI server. Without a cache nothing is
cached. Without a rate limiter nothing is limited.

`snackstore.cache.MemoryCache` and `snackstore.middleware.MemoryRateStore` keep their
data in process memory, so the application can run without Redis:

```python
import logging

from sqlalchemy import create_engine

from snackstore.cache import MemoryCache
from snackstore.middleware import MemoryRateStore, RateLimiter, parse_rate
from snackstore.migrations import migrate
from snackstore.server import bootstrap

engine = create_engine("sqlite:///snacks.db")
migrate(engine)
app = bootstrap(
    engine,
    logging.getLogger("snackstore"),
    MemoryCache(),
    RateLimiter(MemoryRateStore(), parse_rate("100-M")),
)
response = app.test_client().get("/health")
```

The modules:

- `snackstore.catalog` and `snackstore.sales` hold the use cases.
- `snackstore.repositories` holds the queries.
- `snackstore.migrations` provides `migrate` and `seed(engine, logger, seed_dir)`.
  `seed` returns the number of rows inserted into each table.

## What it does not do

- There is no Swagger UI page.
- No OpenAPI document ships with the package. `/api/openapi.yaml` only serves a file
  that you place at `api/openapi.yaml`.
- There is no authentication.
- The `snackstore` command runs Flask's development server. For production, serve the
  application returned by `bootstrap` with a WSGI server of your choice.