"""Pytest configuration and shared fixtures."""

import copy
import itertools
from collections import defaultdict
from datetime import date, datetime, timedelta

import pytest

from domain.errors import StoreError, UNIQUE_VIOLATION
from utils.config import Settings

TODAY = date(2024, 1, 16)
YESTERDAY = TODAY - timedelta(days=1)


class FakeStore:
    """
    In-memory stand-in for SupabaseStore with the same four methods.

    - filters, ordering, limit and embeds behave like PostgREST
    - unique constraints raise StoreError with code 23505
    - `fail()` injects errors for a table/action, optionally only when a
      predicate on the inserted fields (or query filters) matches
    - `views` maps a relation name to a function computing its rows live
    - `insert_hooks` / `update_hooks` run just before a write, to play another
      session changing the data first
    - unknown relations raise, as PostgREST does
    """

    def __init__(self, settings=None):
        self.settings = settings or Settings()
        self.tables = defaultdict(list)
        self.unique = defaultdict(list)
        self.views = {}
        self.failures = defaultdict(list)
        self.insert_hooks = []
        self.update_hooks = []
        self.queries = []
        self._ids = itertools.count(1)
        self._clock = itertools.count(1)

    # -- fixture helpers ---------------------------------------------------

    def seed(self, table, *rows):
        for row in rows:
            self.tables[table].append(dict(row))

    def fail(self, action, table, when=None, message="injected failure", code=None):
        self.failures[(action, table)].append((when, message, code))

    def rows(self, table):
        return [copy.deepcopy(r) for r in self.tables[table]]

    def _check_failure(self, action, table, payload):
        for when, message, code in self.failures[(action, table)]:
            if when is None or when(payload):
                raise StoreError(f"{action} {table} failed: {message}", code=code)

    def _next_timestamp(self):
        return (datetime(2024, 1, 16, 8, 0, 0) + timedelta(seconds=next(self._clock))).isoformat()

    # -- contract ------------------------------------------------------------

    def query_rows(self, table_name, columns="*", filters=(), order_by=None,
                   descending=False, limit=None, embeds=()):
        self.queries.append((table_name, list(filters)))
        self._check_failure("query", table_name, list(filters))

        if table_name in self.views:
            source = self.views[table_name](self)
        elif table_name in self.tables:
            source = self.rows(table_name)
        else:
            raise StoreError(f'Fetch {table_name} failed: relation "{table_name}" does not exist', code="42P01")

        result = []
        for row in source:
            if all(self._matches(row, op, column, value) for op, column, value in filters):
                result.append(row)

        if order_by:
            result.sort(key=lambda r: (r.get(order_by) is None, r.get(order_by) or ""), reverse=descending)
        if limit is not None:
            result = result[:limit]

        return [self._project(row, columns, embeds) for row in result]

    def _matches(self, row, op, column, value):
        actual = row.get(column)
        if op == "eq":
            return actual == value
        if op == "neq":
            return actual != value
        if op == "in":
            if not value:
                raise StoreError("Fetch failed: malformed IN () filter")
            return actual in value
        if actual is None:
            return False
        return {
            "gt": actual > value,
            "gte": actual >= value,
            "lt": actual < value,
            "lte": actual <= value,
        }[op]

    def _project(self, row, columns, embeds):
        if columns.strip() == "*":
            out = dict(row)
        else:
            out = {c.strip(): row.get(c.strip()) for c in columns.split(",")}
        for embed in embeds:
            target = next((t for t in self.tables[embed.table] if t.get("id") == row.get(embed.fk)), None)
            out[embed.alias] = {f: target.get(f) for f in embed.fields} if target else None
        return out

    def query_by_id(self, table_name, row_id, columns="*"):
        rows = self.query_rows(table_name, columns, filters=[("eq", "id", row_id)], limit=1)
        return rows[0] if rows else None

    def insert_row(self, table_name, fields):
        for hook in list(self.insert_hooks):
            hook(self, table_name, fields)
        self._check_failure("insert", table_name, fields)

        for cols in self.unique[table_name]:
            key = tuple(fields.get(c) for c in cols)
            if any(tuple(r.get(c) for c in cols) == key for r in self.tables[table_name]):
                raise StoreError(
                    f'Insert {table_name} failed: duplicate key value violates unique constraint '
                    f'"{table_name}_{"_".join(cols)}_key" | Key ({", ".join(cols)})=({", ".join(map(str, key))}) '
                    f'already exists.',
                    code=UNIQUE_VIOLATION,
                )

        row = dict(fields)
        row.setdefault("id", f"{table_name}-{next(self._ids)}")
        row.setdefault("created_at", self._next_timestamp())
        self.tables[table_name].append(row)
        return dict(row)

    def update_row(self, table_name, row_id, fields, match=None):
        self._check_failure("update", table_name, fields)
        for hook in list(self.update_hooks):
            hook(self, table_name, row_id, fields)
        for row in self.tables[table_name]:
            if row.get("id") == row_id and all(row.get(c) == v for c, v in (match or {}).items()):
                row.update(fields)
                return dict(row)
        return None


def dashboard_view_rows(store, day):
    """
    What vw_production_dashboard returns for `day`, computed straight from
    the tables so it can be compared with the fallback path.
    """
    start, end = f"{day.isoformat()}T00:00:00", f"{day.isoformat()}T23:59:59"
    shipment_ids = {
        s["id"] for s in store.tables["production_shipments"]
        if s["status"] == "pending" and start <= s["created_at"] <= end
    }
    delivery_ids = {
        d["id"] for d in store.tables["production_deliveries"]
        if d["production_date"] == day.isoformat()
    }

    rows = []
    for product in store.tables["salad_types"]:
        requested = sum(
            i["quantity"] for i in store.tables["production_items"]
            if i["salad_type_id"] == product["id"] and i["shipment_id"] in shipment_ids
        )
        produced = sum(
            i["quantity"] for i in store.tables["delivery_items"]
            if i["salad_type_id"] == product["id"] and i["delivery_id"] in delivery_ids
        )
        rows.append({
            "salad_type_id": product["id"],
            "salad_name": product["name"],
            "salad_emoji": product.get("emoji"),
            "salad_color": product.get("color"),
            "total_requested": requested,
            "total_produced": produced,
            "remaining": requested - produced,
        })
    return rows


@pytest.fixture
def today():
    return TODAY


@pytest.fixture
def store():
    """Reference data plus unique constraints on deliveries."""
    fake = FakeStore()
    fake.seed(
        "salad_types",
        {"id": "s1", "name": "Caesar", "emoji": "🥗", "color": "#4CAF50", "sale_price": 12.5},
        {"id": "s2", "name": "Caprese", "emoji": "🍅", "color": "#E53935", "sale_price": "9.90"},
        {"id": "s3", "name": "Tuna", "emoji": None, "color": None, "sale_price": 15},
    )
    fake.seed(
        "stores",
        {"id": "st1", "name": "Centro"},
        {"id": "st2", "name": "Norte"},
    )
    for table in ("production_shipments", "production_items", "production_deliveries", "delivery_items"):
        fake.tables.setdefault(table, [])
    fake.unique["production_deliveries"] = [("delivery_number",), ("store_id", "production_date")]
    return fake


@pytest.fixture
def with_view(store):
    store.views["vw_production_dashboard"] = lambda s: dashboard_view_rows(s, TODAY)
    return store


def add_request(store, product_id, quantity, day=TODAY, status="pending", hour=9):
    """Seed one production request (shipment + one item)."""
    shipment_id = f"ship-{len(store.tables['production_shipments']) + 1}"
    store.seed("production_shipments", {
        "id": shipment_id,
        "status": status,
        "created_at": f"{day.isoformat()}T{hour:02d}:00:00",
    })
    store.seed("production_items", {
        "id": f"pi-{len(store.tables['production_items']) + 1}",
        "shipment_id": shipment_id,
        "salad_type_id": product_id,
        "quantity": quantity,
    })
    return shipment_id


def add_delivery(store, delivery_number, store_id, day=TODAY, items=(), created_at=None):
    """Seed one delivery with (product_id, quantity, unit_price) items."""
    delivery_id = f"del-{delivery_number}"
    store.seed("production_deliveries", {
        "id": delivery_id,
        "delivery_number": delivery_number,
        "store_id": store_id,
        "production_date": day.isoformat(),
        "total_items": sum(q for _, q, _ in items),
        "total_value": str(sum(q * p for _, q, p in items)),
        "status": "delivered",
        "notes": "",
        "created_by": None,
        "created_at": created_at or f"{day.isoformat()}T07:00:00",
    })
    for n, (product_id, quantity, price) in enumerate(items, start=1):
        store.seed("delivery_items", {
            "id": f"{delivery_id}-item-{n}",
            "delivery_id": delivery_id,
            "salad_type_id": product_id,
            "quantity": quantity,
            "unit_price": str(price),
            "batch_number": "LOTE-TEST",
        })
    return delivery_id
