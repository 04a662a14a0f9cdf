"""Batch relation hydration.

Every relation costs a fixed number of round trips for the whole page of
parents (never one per parent). The hydrator only attaches raw results;
what an empty many-to-many means is left to the resource's post_process.
"""

import asyncio
from collections import defaultdict
from typing import Any, Callable, Optional, Sequence

import structlog

from access.config import ManyToMany, ManyToOne, OneToMany, RelationSpec, ResourceConfig, parse_projection
from access.query import DataSource

logger = structlog.get_logger(__name__)

TargetScope = Callable[[str], Sequence[Any]]


def _with_key(columns: tuple[str, ...], key: str) -> tuple[tuple[str, ...], bool]:
    """Make sure the grouping key is fetched; report whether it was added."""
    if not columns or key in columns:
        return columns, False
    return columns + (key,), True


def _strip(row: dict, key: str, added: bool) -> dict:
    if not added:
        return row
    return {name: value for name, value in row.items() if name != key}


def _copy(value: Any) -> Any:
    """Fresh containers per parent so no two parents share a dict."""
    if isinstance(value, list):
        return [_copy(item) for item in value]
    if isinstance(value, dict):
        return dict(value)
    return value


def select_relations(config: ResourceConfig, include: Sequence[str] = ()) -> list[RelationSpec]:
    """Relations to hydrate: defaults plus any requested by name.

    Unknown names are ignored.
    """
    requested = set(include)
    return [
        relation
        for relation in config.relations
        if relation.include_by_default or relation.name in requested
    ]


class RelationHydrator:
    """Attach declared relations to a batch of parent rows."""

    def __init__(self, source: DataSource):
        self.source = source

    async def hydrate(
        self,
        config: ResourceConfig,
        rows: list[dict],
        relations: Sequence[RelationSpec],
        target_scope: Optional[TargetScope] = None,
    ) -> list[dict]:
        """Return copies of ``rows`` with each relation attached under its name.

        Relations are fetched concurrently. If one fails the others are
        cancelled and the error propagates; no partially hydrated rows are
        returned.

        ``target_scope(table)`` returns the predicates a target row must
        satisfy to be visible; targets outside them are left out as if
        they did not exist. Join tables are never scoped.
        """
        scope = target_scope or (lambda table: ())
        if not rows or not relations:
            return rows

        tasks = [
            asyncio.ensure_future(self._resolve(config, relation, rows, scope))
            for relation in relations
        ]
        try:
            resolved = await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

        hydrated = [dict(row) for row in rows]
        for relation, (key_column, values, empty) in zip(relations, resolved):
            for row in hydrated:
                value = values.get(row.get(key_column), empty)
                row[relation.name] = _copy(value)
        return hydrated

    async def _resolve(
        self,
        config: ResourceConfig,
        relation: RelationSpec,
        rows: list[dict],
        scope: TargetScope,
    ) -> tuple[str, dict, Any]:
        if isinstance(relation, OneToMany):
            values = await self._one_to_many(config, relation, rows, scope)
            return config.primary_key, values, []
        if isinstance(relation, ManyToMany):
            values = await self._many_to_many(config, relation, rows, scope)
            return config.primary_key, values, []
        if isinstance(relation, ManyToOne):
            values = await self._many_to_one(relation, rows, scope)
            return relation.local_key, values, None
        raise TypeError(f"Unknown relation kind: {relation!r}")

    async def _one_to_many(
        self, config: ResourceConfig, relation: OneToMany, rows: list[dict], scope: TargetScope
    ) -> dict:
        keys = [row[config.primary_key] for row in rows if row.get(config.primary_key) is not None]
        columns, added = _with_key(parse_projection(relation.target_select), relation.foreign_key)
        children = await self.source.fetch_by_keys(
            relation.target_table,
            relation.foreign_key,
            keys,
            columns=columns,
            order_by=relation.order_by,
            where=scope(relation.target_table),
        )

        grouped: dict[Any, list] = defaultdict(list)
        for child in children:
            bucket = grouped[child.get(relation.foreign_key)]
            if relation.limit is None or len(bucket) < relation.limit:
                bucket.append(_strip(child, relation.foreign_key, added))

        logger.debug(
            "relation_hydrated",
            relation=relation.name,
            kind=relation.kind,
            parents=len(rows),
            fetched=len(children),
        )
        return dict(grouped)

    async def _many_to_many(
        self, config: ResourceConfig, relation: ManyToMany, rows: list[dict], scope: TargetScope
    ) -> dict:
        keys = [row[config.primary_key] for row in rows if row.get(config.primary_key) is not None]
        links = await self.source.fetch_by_keys(
            relation.via_table,
            relation.this_key,
            keys,
            columns=(relation.this_key, relation.that_key),
        )

        linked: dict[Any, list] = defaultdict(list)
        for link in links:
            target = link.get(relation.that_key)
            if target is not None and target not in linked[link.get(relation.this_key)]:
                linked[link.get(relation.this_key)].append(target)

        if relation.resolve_as == "ids":
            logger.debug("relation_hydrated", relation=relation.name, kind=relation.kind,
                         parents=len(rows), links=len(links))
            return {parent: sorted(str(target) for target in targets) for parent, targets in linked.items()}

        target_keys = list(dict.fromkeys(target for targets in linked.values() for target in targets))
        columns, added = _with_key(parse_projection(relation.target_select), relation.target_key)
        targets = await self.source.fetch_by_keys(
            relation.target_table,
            relation.target_key,
            target_keys,
            columns=columns,
            where=scope(relation.target_table),
        )
        by_key = {target.get(relation.target_key): target for target in targets}

        logger.debug(
            "relation_hydrated",
            relation=relation.name,
            kind=relation.kind,
            parents=len(rows),
            links=len(links),
            fetched=len(targets),
        )
        return {
            parent: [
                _strip(by_key[target], relation.target_key, added)
                for target in parent_targets
                if target in by_key
            ]
            for parent, parent_targets in linked.items()
        }

    async def _many_to_one(self, relation: ManyToOne, rows: list[dict], scope: TargetScope) -> dict:
        keys = [row[relation.local_key] for row in rows if row.get(relation.local_key) is not None]
        columns, added = _with_key(parse_projection(relation.target_select), relation.target_key)
        targets = await self.source.fetch_by_keys(
            relation.target_table,
            relation.target_key,
            keys,
            columns=columns,
            where=scope(relation.target_table),
        )
        logger.debug(
            "relation_hydrated",
            relation=relation.name,
            kind=relation.kind,
            parents=len(rows),
            fetched=len(targets),
        )
        return {
            target.get(relation.target_key): _strip(target, relation.target_key, added)
            for target in targets
        }
