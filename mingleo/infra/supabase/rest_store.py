# =============================================================================
# File: mingleo/infra/supabase/rest_store.py
# Description: DurableStorePort over the PostgREST HTTP surface
# =============================================================================

from typing import Any, List, Mapping, Optional, Sequence, Tuple

from mingleo.chat.ports.store_port import OrderBy, Row
from mingleo.common.exceptions.exceptions import NotFoundError, ValidationError
from mingleo.config.logging_config import get_logger
from mingleo.infra.supabase.base_client import SupabaseBaseClient

log = get_logger("mingleo.infra.supabase.rest")

SINGLE_OBJECT = "application/vnd.pgrst.object+json"
RETURN_REPRESENTATION = "return=representation"


def _literal(value: Any) -> str:
    if value is True:
        return "true"
    if value is False:
        return "false"
    return str(value)


def _quote(value: Any) -> str:
    text = _literal(value).replace('"', '\\"')
    return f'"{text}"'


def build_filter_params(filters: Optional[Mapping[str, Any]]) -> List[Tuple[str, str]]:
    """Column criteria -> PostgREST query parameters."""
    params: List[Tuple[str, str]] = []
    for column, expected in (filters or {}).items():
        if isinstance(expected, Mapping):
            if "$in" in expected:
                values = ",".join(_quote(v) for v in expected["$in"])
                params.append((column, f"in.({values})"))
            elif "$ne" in expected:
                params.append((column, f"neq.{_literal(expected['$ne'])}"))
            else:
                raise ValidationError(f"Unsupported filter operator for {column}: {list(expected)}")
        elif expected is None:
            params.append((column, "is.null"))
        else:
            params.append((column, f"eq.{_literal(expected)}"))
    return params


class SupabaseRestStore(SupabaseBaseClient):
    """
    Durable store adapter.

    Example:
        ```python
        store = SupabaseRestStore()
        rows = await store.select("messages", {"chat_id": chat_id}, OrderBy("created_at"))
        ```
    """

    def _url(self, table: str) -> str:
        return f"{self.config.rest_url}/{table}"

    async def select(
            self,
            table: str,
            filters: Optional[Mapping[str, Any]] = None,
            order: Optional[OrderBy] = None,
            columns: str = "*",
    ) -> List[Row]:
        params = [("select", columns)] + build_filter_params(filters)
        if order is not None:
            params.append(("order", f"{order.column}.{'asc' if order.ascending else 'desc'}"))

        response = await self._request("GET", self._url(table), f"select {table}", params=params)
        return response.json()

    async def select_one(self, table: str, filters: Mapping[str, Any], columns: str = "*") -> Row:
        params = [("select", columns)] + build_filter_params(filters)
        response = await self._request(
            "GET", self._url(table), f"select one {table}",
            params=params,
            headers={"Accept": SINGLE_OBJECT},
        )
        row = response.json()
        if not row:
            raise NotFoundError(f"No {table} row matching {dict(filters)}")
        return row

    async def insert(self, table: str, values: Mapping[str, Any]) -> Row:
        rows = await self._write("POST", table, dict(values), f"insert {table}")
        if not rows:
            raise NotFoundError(f"Insert into {table} returned no row")
        return rows[0]

    async def insert_many(self, table: str, values: Sequence[Mapping[str, Any]]) -> List[Row]:
        if not values:
            return []
        return await self._write("POST", table, [dict(v) for v in values], f"insert {table}")

    async def upsert(self, table: str, values: Mapping[str, Any], on_conflict: str) -> Row:
        rows = await self._write(
            "POST", table, dict(values), f"upsert {table}",
            params=[("on_conflict", on_conflict)],
            prefer=f"resolution=merge-duplicates,{RETURN_REPRESENTATION}",
        )
        if not rows:
            raise NotFoundError(f"Upsert into {table} returned no row")
        return rows[0]

    async def update(self, table: str, filters: Mapping[str, Any], values: Mapping[str, Any]) -> List[Row]:
        return await self._write(
            "PATCH", table, dict(values), f"update {table}",
            params=build_filter_params(filters),
        )

    async def delete(self, table: str, filters: Mapping[str, Any]) -> List[Row]:
        if not filters:
            raise ValidationError(f"Refusing unfiltered delete on {table}")
        return await self._write(
            "DELETE", table, None, f"delete {table}",
            params=build_filter_params(filters),
        )

    async def _write(
            self,
            method: str,
            table: str,
            body: Any,
            context: str,
            params: Optional[List[Tuple[str, str]]] = None,
            prefer: str = RETURN_REPRESENTATION,
    ) -> List[Row]:
        response = await self._request(
            method, self._url(table), context,
            params=params,
            json=body,
            headers={"Prefer": prefer},
        )
        if response.status_code == 204 or not response.content:
            return []
        data = response.json()
        return data if isinstance(data, list) else [data]
