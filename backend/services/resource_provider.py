"""Resource provider: the composition root of the access layer.

Every read goes resolve config -> scope -> search/filter/sort -> page ->
fetch -> re-assert scope -> hydrate -> to_domain -> post_process ->
(optionally) project. Writes re-run the same scope guards before
touching storage and return a fresh scoped read afterwards.
"""

from dataclasses import dataclass
from typing import Any, Mapping, Optional, Sequence, Union

import structlog

from access.config import ManyToOne, RelationSpec, ResourceConfig, SortSpec
from access.context import AuthorizationContext
from access.filters import FilterNode, compile_filter, split_for_storage
from access.hydration import RelationHydrator, select_relations
from access.list_query import ListQuery, normalize_list_params
from access.query import DataSource, TableQuery
from access.registry import ResourceEntry, ResourceRegistry
from access.scope import apply_scopes, assert_row_in_scope
from access.validation import validate_input
from app.config import Settings, get_settings
from core.exceptions import ForbiddenError, InvalidParameterError, NotFoundError
from core.utils import page_range

logger = structlog.get_logger(__name__)

MAX_ID_LENGTH = 128


@dataclass
class ListResult:
    rows: list
    total: int
    page: int
    page_size: int
    raw: bool


@dataclass
class BulkDeleteResult:
    deleted_ids: list[str]
    soft_delete: bool


def validate_id(id: Any) -> str:
    if not isinstance(id, str) or not id.strip() or len(id) > MAX_ID_LENGTH:
        raise InvalidParameterError("Invalid id parameter")
    return id.strip()


class ResourceProvider:
    """CRUD over registered resources for one request.

    Usage:
        provider = ResourceProvider(registry, SqlAlchemyDataSource(db))
        result = await provider.list_resource("tally_cards", {"page": "2"}, ctx)
    """

    def __init__(
        self,
        registry: ResourceRegistry,
        source: DataSource,
        settings: Optional[Settings] = None,
    ):
        self.registry = registry
        self.source = source
        self.settings = settings or get_settings()
        self.hydrator = RelationHydrator(source)

    # ─── Read ──────────────────────────────────────────────

    async def list_resource(
        self,
        key: str,
        query: Union[ListQuery, Mapping[str, Any], None],
        ctx: AuthorizationContext,
        filter: Optional[FilterNode] = None,
    ) -> ListResult:
        """A page of scoped, hydrated domain records plus the total count.

        Filter leaves on columns outside the storage projection are
        evaluated in memory after ``post_process``; that path reads at most
        ``LOCAL_FILTER_ROW_CAP`` scoped rows and pages in memory. A query
        matching more rows than that is rejected rather than answered with
        a truncated total.

        Raises:
            UnknownResourceError: No such resource
            InvalidParameterError: Raw mode not allowed, bad sort or filter,
                or an in-memory filter over more than the row cap
        """
        entry = self.registry.resolve(key)
        config = entry.config
        if not isinstance(query, ListQuery):
            query = normalize_list_params(query)
        if query.raw and not entry.allow_raw:
            raise InvalidParameterError(f"Raw mode is not enabled for resource '{entry.key}'")

        storage_filter, local_filter = split_for_storage(filter, config.select_columns)

        table_query = self._scoped_query(config, ctx)
        table_query.search_any(config.searchable_columns, query.search)
        table_query.filter(storage_filter)
        if query.active_only and config.active_flag_column:
            table_query.eq(config.active_flag_column, True)
        sort = self._resolve_sort(config, query.sort)
        if sort is not None:
            table_query.order(sort.column, sort.descending)
        table_query.order(config.primary_key)

        start, end = page_range(query.page, query.page_size)
        if local_filter is None:
            table_query.range(start, end).with_count()
            rows, total = await self.source.fetch(table_query)
        else:
            cap = self.settings.LOCAL_FILTER_ROW_CAP
            table_query.limit_to(cap + 1)
            rows, _ = await self.source.fetch(table_query)
            if len(rows) > cap:
                logger.warning("local_filter_row_cap_exceeded", resource=entry.key, cap=cap)
                raise InvalidParameterError(
                    f"Filter on derived fields would scan more than {cap} rows; "
                    "narrow it with a search or a filter on stored columns"
                )

        relations = select_relations(config, query.include)
        records = await self._materialize(config, rows, relations, ctx)

        if local_filter is not None:
            predicate = compile_filter(local_filter, strict=self.settings.strict_filter_evaluation)
            records = [record for record in records if predicate(record)]
            total = len(records)
            records = records[start:end + 1]

        if not query.raw:
            records = [entry.project(record) for record in records]

        logger.info(
            "resource_list",
            resource=entry.key,
            page=query.page,
            page_size=query.page_size,
            rows=len(records),
            total=total,
            in_memory_filter=local_filter is not None,
        )
        return ListResult(
            rows=records,
            total=total or 0,
            page=query.page,
            page_size=query.page_size,
            raw=query.raw,
        )

    async def get_resource(
        self,
        key: str,
        id: str,
        ctx: AuthorizationContext,
        include: Sequence[str] = (),
    ) -> Any:
        """One scoped domain record.

        Raises:
            NotFoundError: Row absent or outside the caller's scope
        """
        entry = self.registry.resolve(key)
        return await self._read_one(entry, validate_id(id), ctx, include)

    # ─── Create ────────────────────────────────────────────

    async def create_resource(self, key: str, data: Any, ctx: AuthorizationContext) -> Any:
        """Validate, scope-check and insert; returns the stored record.

        The owner column is stamped with the caller's id when absent.

        Raises:
            ForbiddenError: The resource requires a write permission the caller lacks
            InvalidParameterError: Body fails the field schema or a constraint,
                or references a row the caller cannot see
            ScopeViolationError: The new row would be outside the caller's scope
        """
        entry = self.registry.resolve(key)
        config = entry.config
        self._require_write(entry, ctx)

        payload = config.from_input(validate_input(config, data))
        owner = config.ownership_scope
        if owner.mode == "self" and payload.get(owner.column) is None and ctx.user_id:
            payload[owner.column] = ctx.user_id
        assert_row_in_scope(payload, config, ctx)
        await self._check_references(config, payload, ctx)

        inserted = await self.source.insert(config.table, payload)
        await self.source.commit()

        logger.info("resource_created", resource=entry.key, id=inserted.get(config.primary_key))
        return await self._read_after_write(entry, inserted[config.primary_key], ctx)

    # ─── Update ────────────────────────────────────────────

    async def update_resource(self, key: str, id: str, patch: Any, ctx: AuthorizationContext) -> Any:
        """Apply a partial update to a row the caller can see.

        The merged row is scope-checked before writing, so a row cannot be
        moved into a warehouse or owner outside the caller's scope.

        Raises:
            ForbiddenError: The resource requires a write permission the caller lacks
            InvalidParameterError: Bad patch, or it references a row the caller cannot see
            NotFoundError: Row absent or outside scope, before or after the write
            ScopeViolationError: The change would leave the caller's scope
        """
        entry = self.registry.resolve(key)
        config = entry.config
        self._require_write(entry, ctx)
        id = validate_id(id)

        current = await self._load_scoped_row(entry, id, ctx)
        changes = config.from_input(validate_input(config, patch, partial=True))
        changes.pop(config.primary_key, None)
        assert_row_in_scope({**current, **changes}, config, ctx)
        await self._check_references(config, changes, ctx)

        if changes:
            await self.source.update(config.table, config.primary_key, id, changes)
            await self.source.commit()
            logger.info("resource_updated", resource=entry.key, id=id, fields=sorted(changes))

        return await self._read_after_write(entry, id, ctx)

    # ─── Delete ────────────────────────────────────────────

    async def delete_resource(self, key: str, id: str, ctx: AuthorizationContext) -> Optional[Any]:
        """Soft delete via the active flag when configured, else hard delete.

        Returns:
            The deactivated record for a soft delete, ``None`` for a hard delete

        Raises:
            ForbiddenError: The resource requires a write permission the caller lacks
            NotFoundError: Row absent or outside scope
        """
        entry = self.registry.resolve(key)
        config = entry.config
        self._require_write(entry, ctx)
        id = validate_id(id)

        current = await self._load_scoped_row(entry, id, ctx)
        assert_row_in_scope(current, config, ctx)

        if config.active_flag_column:
            await self.source.update(config.table, config.primary_key, id, {config.active_flag_column: False})
            await self.source.commit()
            logger.info("resource_deleted", resource=entry.key, id=id, soft=True)
            return await self._read_after_write(entry, id, ctx)

        await self.source.delete(config.table, config.primary_key, [id])
        await self.source.commit()
        logger.info("resource_deleted", resource=entry.key, id=id, soft=False)
        return None

    async def bulk_delete_resources(
        self,
        key: str,
        ids: Any,
        ctx: AuthorizationContext,
    ) -> BulkDeleteResult:
        """Delete several rows, all or nothing.

        Every id must resolve to a row inside the caller's scope, otherwise
        nothing is deleted.

        Raises:
            ForbiddenError: The resource requires a write permission the caller lacks
            InvalidParameterError: ``ids`` is not a non-empty list of ids
            NotFoundError: Any id is absent or out of scope
        """
        entry = self.registry.resolve(key)
        config = entry.config
        self._require_write(entry, ctx)
        if not isinstance(ids, (list, tuple)) or not ids:
            raise InvalidParameterError("ids must be a non-empty array")
        ids = list(dict.fromkeys(validate_id(id) for id in ids))

        query = self._scoped_query(config, ctx).in_(config.primary_key, ids)
        rows, _ = await self.source.fetch(query)
        found = {str(row[config.primary_key]) for row in rows}
        missing = [id for id in ids if id not in found]
        if missing:
            raise NotFoundError(f"Not found: {', '.join(missing)}")
        for row in rows:
            assert_row_in_scope(row, config, ctx)

        soft = bool(config.active_flag_column)
        if soft:
            await self.source.update_many(
                config.table, config.primary_key, ids, {config.active_flag_column: False}
            )
        else:
            await self.source.delete(config.table, config.primary_key, ids)
        await self.source.commit()

        logger.info("resource_bulk_deleted", resource=entry.key, count=len(ids), soft=soft)
        return BulkDeleteResult(deleted_ids=ids, soft_delete=soft)

    # ─── Internals ─────────────────────────────────────────

    def _scoped_query(self, config: ResourceConfig, ctx: AuthorizationContext) -> TableQuery:
        return apply_scopes(TableQuery.from_select(config.table, config.select), config, ctx)

    def _target_scope(self, ctx: AuthorizationContext):
        """``table -> predicates`` for related rows, from every config reading that table."""

        def predicates(table: str) -> list:
            query = TableQuery(table)
            for config in self.registry.configs_for_table(table):
                apply_scopes(query, config, ctx)
            return query.predicates

        return predicates

    def _require_write(self, entry: ResourceEntry, ctx: AuthorizationContext) -> None:
        required = entry.config.write_permissions
        if required and not ctx.has_any_permission(required):
            logger.warning(
                "write_permission_denied",
                resource=entry.key,
                user_id=ctx.user_id,
                required=list(required),
            )
            raise ForbiddenError(f"Writing '{entry.key}' requires one of: {', '.join(required)}")

    async def _check_references(
        self,
        config: ResourceConfig,
        values: Mapping[str, Any],
        ctx: AuthorizationContext,
    ) -> None:
        """Every many-to-one key being written must point at a row the caller can see."""
        scope = self._target_scope(ctx)
        for relation in config.relations:
            if not isinstance(relation, ManyToOne) or values.get(relation.local_key) is None:
                continue
            value = values[relation.local_key]
            found = await self.source.fetch_by_keys(
                relation.target_table,
                relation.target_key,
                [value],
                columns=(relation.target_key,),
                where=scope(relation.target_table),
            )
            if not found:
                logger.warning(
                    "reference_out_of_scope",
                    table=config.table,
                    relation=relation.name,
                    user_id=ctx.user_id,
                )
                raise InvalidParameterError(f"Unknown {relation.name}: {value}")

    def _resolve_sort(self, config: ResourceConfig, sort: Optional[str]) -> Optional[SortSpec]:
        if not sort:
            return config.default_sort
        descending = sort.startswith("-")
        column = sort[1:] if descending else sort
        if column not in config.select_columns:
            raise InvalidParameterError(f"Cannot sort by '{column}'")
        return SortSpec(column, descending)

    async def _load_scoped_row(self, entry: ResourceEntry, id: str, ctx: AuthorizationContext) -> dict:
        config = entry.config
        query = self._scoped_query(config, ctx).eq(config.primary_key, id).limit_to(1)
        rows, _ = await self.source.fetch(query)
        if not rows:
            raise NotFoundError("Not found")
        return rows[0]

    async def _read_one(
        self,
        entry: ResourceEntry,
        id: str,
        ctx: AuthorizationContext,
        include: Sequence[str] = (),
    ) -> Any:
        row = await self._load_scoped_row(entry, id, ctx)
        relations = select_relations(entry.config, include)
        records = await self._materialize(entry.config, [row], relations, ctx)
        return records[0]

    async def _read_after_write(self, entry: ResourceEntry, id: Any, ctx: AuthorizationContext) -> Any:
        try:
            return await self._read_one(entry, str(id), ctx)
        except NotFoundError:
            raise NotFoundError("Record is not visible after write")

    async def _materialize(
        self,
        config: ResourceConfig,
        rows: list[dict],
        relations: Sequence[RelationSpec],
        ctx: AuthorizationContext,
    ) -> list:
        for row in rows:
            assert_row_in_scope(row, config, ctx)
        rows = await self.hydrator.hydrate(config, rows, relations, self._target_scope(ctx))
        records = []
        for row in rows:
            record = config.to_domain(row)
            if isinstance(record, dict):
                for relation in relations:
                    if relation.name not in record:
                        record[relation.name] = row[relation.name]
            records.append(record)
        return config.post_process(records)
