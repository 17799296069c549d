"""Roadmap Store
================

Transactional store over Flask-SQLAlchemy used by every roadmap service.

The store owns session handling (commit/rollback) so services describe *what*
to persist, never *how*. Optimistic concurrency on ``Roadmap`` rides on the
``row_version`` column: a flush that loses a race raises
``sqlalchemy.orm.exc.StaleDataError`` for the caller to retry.
"""
from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, Iterator, List, Optional, Sequence, Type, TypeVar

from sqlalchemy import and_, func, or_, select, update

from ..extensions import db
from ..models import Resource, Roadmap, RoadmapNode, node_resources
from ..utils.logging_config import get_logger
from ..utils.time import utc_now

logger = get_logger("store")

M = TypeVar('M')

_TX_DEPTH_KEY = 'roadmap_store_tx_depth'


@dataclass
class BulkOperation:
    """One entry of a bulk write: update fields on, or delete, a row by id."""
    action: str  # 'update' | 'delete'
    model: Type[Any]
    ident: int
    fields: Dict[str, Any] = field(default_factory=dict)


class RoadmapStore:
    """Create/find/update/delete/bulk-write/transaction over the app database."""

    @property
    def session(self):
        return db.session

    # Transactions -------------------------------------------------------

    @contextmanager
    def transaction(self) -> Iterator[Any]:
        """Commit on success, roll back on any exception.

        Nested use joins the outermost transaction.
        """
        session = self.session
        depth = session.info.get(_TX_DEPTH_KEY, 0)
        session.info[_TX_DEPTH_KEY] = depth + 1
        try:
            yield session
            if depth == 0:
                session.commit()
        except BaseException:
            if depth == 0:
                session.rollback()
            raise
        finally:
            session.info[_TX_DEPTH_KEY] = depth

    def rollback(self) -> None:
        self.session.rollback()

    # Generic CRUD -------------------------------------------------------

    def get(self, model: Type[M], ident: Any) -> Optional[M]:
        return self.session.get(model, ident)

    def find(self, model: Type[M], *criteria: Any, order_by: Sequence[Any] = (),
             limit: Optional[int] = None, offset: Optional[int] = None, **filters: Any) -> List[M]:
        stmt = select(model)
        if criteria:
            stmt = stmt.where(*criteria)
        if filters:
            stmt = stmt.filter_by(**filters)
        if order_by:
            stmt = stmt.order_by(*order_by)
        if offset:
            stmt = stmt.offset(offset)
        if limit is not None:
            stmt = stmt.limit(limit)
        return list(self.session.scalars(stmt).all())

    def first(self, model: Type[M], *criteria: Any, order_by: Sequence[Any] = (), **filters: Any) -> Optional[M]:
        rows = self.find(model, *criteria, order_by=order_by, limit=1, **filters)
        return rows[0] if rows else None

    def count(self, model: Type[Any], *criteria: Any) -> int:
        stmt = select(func.count()).select_from(model)
        if criteria:
            stmt = stmt.where(*criteria)
        return int(self.session.scalar(stmt) or 0)

    def create(self, instance: M) -> M:
        """Add and flush so the new row has an identity inside the transaction."""
        self.session.add(instance)
        self.session.flush()
        return instance

    def update(self, instance: M, **fields: Any) -> M:
        for key, value in fields.items():
            setattr(instance, key, value)
        self.session.flush()
        return instance

    def delete(self, instance: Any) -> None:
        self.session.delete(instance)
        self.session.flush()

    def delete_where(self, model: Type[Any], *criteria: Any) -> int:
        """Delete every row matching `criteria` through the ORM (cascades apply)."""
        rows = self.find(model, *criteria)
        for row in rows:
            self.session.delete(row)
        if rows:
            self.session.flush()
        return len(rows)

    def bulk_write(self, operations: Iterable[BulkOperation]) -> Dict[str, int]:
        """Apply update/delete operations in one transaction; ids that no longer exist are skipped."""
        result = {'updated': 0, 'deleted': 0, 'missing': 0}
        with self.transaction():
            for op in operations:
                row = self.get(op.model, op.ident)
                if row is None:
                    result['missing'] += 1
                    continue
                if op.action == 'delete':
                    self.session.delete(row)
                    result['deleted'] += 1
                elif op.action == 'update':
                    for key, value in op.fields.items():
                        setattr(row, key, value)
                    result['updated'] += 1
                else:
                    raise ValueError(f"Unknown bulk action: {op.action}")
            self.session.flush()
        return result

    def count_by(self, model: Type[Any], column: Any, *criteria: Any) -> Dict[Any, int]:
        """Group-and-count aggregation: {column value: row count}."""
        stmt = select(column, func.count()).select_from(model)
        if criteria:
            stmt = stmt.where(*criteria)
        stmt = stmt.group_by(column)
        return {value: int(total) for value, total in self.session.execute(stmt).all()}

    # Roadmap queries ----------------------------------------------------

    def find_by_title(self, title: str) -> Optional[Roadmap]:
        """Case-insensitive whole-title equality."""
        normalized = (title or '').strip().lower()
        if not normalized:
            return None
        return self.first(Roadmap, func.lower(Roadmap.title) == normalized, order_by=(Roadmap.id,))

    def find_by_fingerprint(self, fingerprint: str) -> Optional[Roadmap]:
        if not fingerprint:
            return None
        return self.first(
            Roadmap,
            Roadmap.prompt_fingerprint == fingerprint,
            Roadmap.is_regenerating.is_(False),
            order_by=(Roadmap.id.desc(),),
        )

    def find_candidates(self, keywords: Sequence[str]) -> List[Roadmap]:
        """Coarse prefilter: any keyword in title/description or in stored keywords/tags."""
        if not keywords:
            return []
        clauses = []
        for keyword in keywords:
            like = f'%{keyword}%'
            quoted = f'%"{keyword}"%'
            clauses.extend([
                Roadmap.title.ilike(like),
                Roadmap.description.ilike(like),
                Roadmap.search_keywords_json.like(quoted),
                Roadmap.tags_json.like(quoted),
            ])
        return self.find(Roadmap, or_(*clauses), order_by=(Roadmap.id,))

    def nodes_for(self, roadmap_id: int) -> List[RoadmapNode]:
        return self.find(
            RoadmapNode,
            RoadmapNode.roadmap_id == roadmap_id,
            order_by=(RoadmapNode.depth, RoadmapNode.position),
        )

    def exclusive_resources_for(self, roadmap_id: int) -> List[Resource]:
        """Resources linked to this roadmap's nodes and to no other roadmap's nodes."""
        linked_here = (
            select(node_resources.c.resource_id)
            .join(RoadmapNode, RoadmapNode.id == node_resources.c.node_id)
            .where(RoadmapNode.roadmap_id == roadmap_id)
        )
        linked_elsewhere = (
            select(node_resources.c.resource_id)
            .join(RoadmapNode, RoadmapNode.id == node_resources.c.node_id)
            .where(RoadmapNode.roadmap_id != roadmap_id)
        )
        return self.find(Resource, Resource.id.in_(linked_here), Resource.id.not_in(linked_elsewhere))

    def delete_tree(self, roadmap: Roadmap) -> Dict[str, int]:
        """Delete a roadmap's nodes and the resources only it uses (the roadmap row stays)."""
        resources = self.exclusive_resources_for(roadmap.id)
        nodes = self.nodes_for(roadmap.id)
        for node in nodes:
            node.resources = []
            self.session.delete(node)
        for resource in resources:
            self.session.delete(resource)
        self.session.flush()
        self.session.expire(roadmap, ['nodes'])
        return {'nodes': len(nodes), 'resources': len(resources)}

    def increment_views(self, roadmap_id: int) -> None:
        """Atomic counter bump; does not touch the optimistic row version."""
        with self.transaction() as session:
            session.execute(
                update(Roadmap)
                .where(Roadmap.id == roadmap_id)
                .values(views=func.coalesce(Roadmap.views, 0) + 1)
                .execution_options(synchronize_session=False)
            )

    # Regeneration critical section --------------------------------------

    def claim_regeneration(self, roadmap_id: int, stale_before: datetime) -> bool:
        """Compare-and-set the REGENERATING mark.

        Succeeds when the roadmap is not regenerating, or when the existing
        mark is older than `stale_before` (a crashed worker).
        """
        with self.transaction() as session:
            result = session.execute(
                update(Roadmap)
                .where(
                    Roadmap.id == roadmap_id,
                    or_(
                        Roadmap.is_regenerating.is_(False),
                        and_(Roadmap.regeneration_started_at.is_not(None),
                             Roadmap.regeneration_started_at < stale_before),
                    ),
                )
                .values(
                    is_regenerating=True,
                    regeneration_started_at=utc_now(),
                    row_version=Roadmap.row_version + 1,
                )
                .execution_options(synchronize_session=False)
            )
        claimed = result.rowcount == 1
        logger.debug(f"Regeneration claim for roadmap {roadmap_id}: {'acquired' if claimed else 'busy'}")
        return claimed

    def release_regeneration(self, roadmap_id: int) -> None:
        with self.transaction() as session:
            session.execute(
                update(Roadmap)
                .where(Roadmap.id == roadmap_id)
                .values(
                    is_regenerating=False,
                    regeneration_started_at=None,
                    row_version=Roadmap.row_version + 1,
                )
                .execution_options(synchronize_session=False)
            )
