from typing import Any, Dict, List, NamedTuple, Optional, Sequence, Tuple

from postgrest.exceptions import APIError
from supabase import create_client, Client

from domain.errors import StoreError
from utils.config import Settings, load_settings

# Supported filter operators, mapped to postgrest builder methods
FILTER_METHODS = {
    "eq": "eq",
    "neq": "neq",
    "gt": "gt",
    "gte": "gte",
    "lt": "lt",
    "lte": "lte",
    "in": "in_",
}

Filter = Tuple[str, str, Any]


class Embed(NamedTuple):
    """
    A related row pulled in through a foreign key, e.g.
    Embed("store", "store_id", "stores", ("name",)) -> store:store_id ( name )
    The embed is a left join: a missing target comes back as None.
    """
    alias: str
    fk: str
    table: str
    fields: Tuple[str, ...]

    def render(self) -> str:
        return f"{self.alias}:{self.fk} ( {', '.join(self.fields)} )"


def _describe(error: APIError) -> str:
    parts = [getattr(error, "message", None) or str(error)]
    details = getattr(error, "details", None)
    if details:
        parts.append(str(details))
    return " | ".join(parts)


class SupabaseStore:
    """
    Thin data access layer over a Supabase schema.

    Every method either returns data or raises StoreError, so callers can
    decide per call whether a failure is fatal or only skips a row.
    """

    def __init__(self, client: Optional[Client] = None, settings: Optional[Settings] = None):
        self._client = client
        self.settings = settings or load_settings()

    @property
    def client(self) -> Client:
        if self._client is None:
            url = self.settings.supabase_url
            key = self.settings.supabase_key
            if not url or not key:
                raise RuntimeError("Set SUPABASE_URL and SUPABASE_KEY in .env or environment variables")
            self._client = create_client(url, key)
        return self._client

    def _table(self, table_name: str):
        return self.client.schema(self.settings.schema).table(table_name)

    def _execute(self, query, action: str, table_name: str):
        try:
            resp = query.execute()
        except APIError as e:
            raise StoreError(f"{action} {table_name} failed: {_describe(e)}", code=e.code) from e
        except Exception as e:
            raise StoreError(f"{action} {table_name} failed: {e}") from e

        if getattr(resp, "error", None):
            raise StoreError(f"{action} {table_name} failed: {resp.error}")

        return resp

    def query_rows(
            self,
            table_name: str,
            columns: str = "*",
            filters: Sequence[Filter] = (),
            order_by: Optional[str] = None,
            descending: bool = False,
            limit: Optional[int] = None,
            embeds: Sequence[Embed] = (),
    ) -> List[Dict[str, Any]]:
        select = ", ".join([columns, *(e.render() for e in embeds)])
        query = self._table(table_name).select(select)

        for op, column, value in filters:
            method = FILTER_METHODS.get(op)
            if method is None:
                raise ValueError(f"Unsupported filter operator: {op}")
            if op == "in":
                value = list(value)
            query = getattr(query, method)(column, value)

        if order_by:
            query = query.order(order_by, desc=descending)
        if limit is not None:
            query = query.limit(limit)

        resp = self._execute(query, "Fetch", table_name)
        return resp.data or []

    def query_by_id(self, table_name: str, row_id: Any, columns: str = "*") -> Optional[Dict[str, Any]]:
        rows = self.query_rows(table_name, columns, filters=[("eq", "id", row_id)], limit=1)
        return rows[0] if rows else None

    def insert_row(self, table_name: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        resp = self._execute(self._table(table_name).insert(fields), "Insert", table_name)
        if not resp.data:
            raise StoreError(f"Insert {table_name} failed: no data returned")
        return resp.data[0]

    def update_row(
            self,
            table_name: str,
            row_id: Any,
            fields: Dict[str, Any],
            match: Optional[Dict[str, Any]] = None,
    ) -> Optional[Dict[str, Any]]:
        """
        Returns the updated row, or None when no row has this id (and, with
        `match`, these current column values).
        """
        query = self._table(table_name).update(fields).eq("id", row_id)
        for column, value in (match or {}).items():
            query = query.is_(column, "null") if value is None else query.eq(column, value)
        resp = self._execute(query, "Update", table_name)
        return resp.data[0] if resp.data else None
