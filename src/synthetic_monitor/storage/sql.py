"""SQLAlchemy-backed repository and history store."""

import json
import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Iterator

from sqlalchemy import and_, create_engine, func, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from synthetic_monitor.errors import NotFoundError, PersistenceFailure, ValidationError
from synthetic_monitor.history import HistoryFilters, HistoryStore
from synthetic_monitor.models import (
    ApiDefinition,
    ExecutionOutcome,
    Node,
    NodeGroup,
    NodeStatus,
    ParameterDefinition,
    ParameterType,
    SyntheticTest,
    Target,
    TargetKind,
)
from synthetic_monitor.repository import Repository
from synthetic_monitor.storage.tables import (
    ApiParameterRow,
    ApiRow,
    Base,
    HistoryRow,
    NodeGroupMemberRow,
    NodeGroupRow,
    NodeRow,
    SyntheticTestRow,
    SyntheticTestTagRow,
    TagRow,
)
from synthetic_monitor.validation import (
    validate_api,
    validate_node,
    validate_node_group,
    validate_synthetic_test,
)

logger = logging.getLogger(__name__)

IN_MEMORY_URLS = ("sqlite://", "sqlite:///:memory:")


def create_database_engine(url: str) -> Engine:
    """Create an engine and make sure all tables exist."""
    kwargs: dict[str, Any] = {}
    if url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        if url in IN_MEMORY_URLS:
            # One shared connection, otherwise every session sees an empty database
            kwargs["poolclass"] = StaticPool

    engine = create_engine(url, **kwargs)
    Base.metadata.create_all(engine)
    logger.info(f"Database ready: {engine.url.render_as_string(hide_password=True)}")
    return engine


class _SessionMixin:
    """Session handling shared by the SQL repository and history store."""

    def __init__(self, engine: Engine) -> None:
        self.engine = engine
        self._sessions = sessionmaker(bind=engine, expire_on_commit=False)

    @contextmanager
    def _session(self) -> Iterator[Session]:
        session = self._sessions()
        try:
            yield session
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            raise PersistenceFailure(f"Database error: {e}") from e
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()


def _contains(column, value: str):
    """Case-insensitive literal substring match."""
    escaped = value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return column.ilike(f"%{escaped}%", escape="\\")


class SqlRepository(_SessionMixin, Repository):
    """Catalog records stored in a relational database."""

    def get_node(self, node_id: int) -> Node | None:
        with self._session() as session:
            row = session.get(NodeRow, node_id)
            return self._to_node(row) if row else None

    def get_node_group(self, group_id: int) -> NodeGroup | None:
        with self._session() as session:
            row = session.get(NodeGroupRow, group_id)
            return self._to_group(session, row) if row else None

    def get_api(self, api_id: int) -> ApiDefinition | None:
        with self._session() as session:
            row = session.get(ApiRow, api_id)
            return self._to_api(session, row) if row else None

    def get_test(self, test_id: int) -> SyntheticTest | None:
        with self._session() as session:
            row = session.get(SyntheticTestRow, test_id)
            return self._to_test(session, row) if row else None

    def list_nodes(self) -> list[Node]:
        with self._session() as session:
            rows = session.scalars(select(NodeRow).order_by(NodeRow.id)).all()
            return [self._to_node(r) for r in rows]

    def list_node_groups(self) -> list[NodeGroup]:
        with self._session() as session:
            rows = session.scalars(select(NodeGroupRow).order_by(NodeGroupRow.id)).all()
            return [self._to_group(session, r) for r in rows]

    def list_tests(self) -> list[SyntheticTest]:
        with self._session() as session:
            rows = session.scalars(select(SyntheticTestRow).order_by(SyntheticTestRow.id)).all()
            return [self._to_test(session, r) for r in rows]

    def add_node(self, node: Node) -> Node:
        validate_node(node)
        with self._session() as session:
            if session.get(NodeRow, node.id) is not None:
                raise ValidationError(f"Node already exists: {node.id}")
            session.add(NodeRow(
                id=node.id,
                name=node.name,
                host=node.host,
                port=node.port,
                status=node.status.value,
                last_checked_at=node.last_checked_at,
                description=node.description,
            ))
        return node

    def add_node_group(self, group: NodeGroup) -> NodeGroup:
        validate_node_group(group, self)
        with self._session() as session:
            if session.get(NodeGroupRow, group.id) is not None:
                raise ValidationError(f"Node group already exists: {group.id}")
            session.add(NodeGroupRow(id=group.id, name=group.name, description=group.description))
            session.flush()
            for position, node_id in enumerate(group.node_ids):
                session.add(NodeGroupMemberRow(group_id=group.id, position=position, node_id=node_id))
        return group

    def add_api(self, api: ApiDefinition) -> ApiDefinition:
        validate_api(api)
        with self._session() as session:
            if session.get(ApiRow, api.id) is not None:
                raise ValidationError(f"API already exists: {api.id}")
            session.add(ApiRow(id=api.id, name=api.name, method=api.method.upper(), uri=api.uri))
            session.flush()
            for position, param in enumerate(api.parameters):
                session.add(ApiParameterRow(
                    api_id=api.id,
                    position=position,
                    name=param.name,
                    type=param.type.value,
                    required=param.required,
                    description=param.description,
                ))
        return api

    def add_test(self, test: SyntheticTest) -> SyntheticTest:
        validate_synthetic_test(test, self)
        with self._session() as session:
            if session.get(SyntheticTestRow, test.id) is not None:
                raise ValidationError(f"Synthetic test already exists: {test.id}")
            session.add(SyntheticTestRow(
                id=test.id,
                name=test.name,
                api_id=test.api_id,
                target_kind=test.target.kind.value,
                target_id=test.target.id,
                interval_seconds=test.interval_seconds,
                alert_threshold_ms=test.alert_threshold_ms,
                parameters=json.dumps(test.parameters),
            ))
            session.flush()
            for tag_name in dict.fromkeys(t.strip() for t in test.tags if t.strip()):
                tag = session.scalars(select(TagRow).where(TagRow.name == tag_name)).first()
                if tag is None:
                    tag = TagRow(name=tag_name)
                    session.add(tag)
                    session.flush()
                session.add(SyntheticTestTagRow(test_id=test.id, tag_id=tag.id))
        return test

    def update_node_status(
        self, node_id: int, status: NodeStatus, checked_at: datetime
    ) -> Node:
        with self._session() as session:
            row = session.get(NodeRow, node_id)
            if row is None:
                raise NotFoundError("Node", node_id)
            row.status = status.value
            row.last_checked_at = checked_at
            return self._to_node(row)

    def save_test_parameters(self, test_id: int, parameters: dict[str, Any]) -> None:
        with self._session() as session:
            row = session.get(SyntheticTestRow, test_id)
            if row is None:
                raise NotFoundError("Synthetic test", test_id)
            row.parameters = json.dumps(parameters)

    @staticmethod
    def _to_node(row: NodeRow) -> Node:
        return Node(
            id=row.id,
            name=row.name,
            host=row.host,
            port=row.port,
            status=NodeStatus(row.status),
            last_checked_at=row.last_checked_at,
            description=row.description or "",
        )

    @staticmethod
    def _to_group(session: Session, row: NodeGroupRow) -> NodeGroup:
        node_ids = session.scalars(
            select(NodeGroupMemberRow.node_id)
            .where(NodeGroupMemberRow.group_id == row.id)
            .order_by(NodeGroupMemberRow.position)
        ).all()
        return NodeGroup(
            id=row.id,
            name=row.name,
            node_ids=list(node_ids),
            description=row.description or "",
        )

    @staticmethod
    def _to_api(session: Session, row: ApiRow) -> ApiDefinition:
        params = session.scalars(
            select(ApiParameterRow)
            .where(ApiParameterRow.api_id == row.id)
            .order_by(ApiParameterRow.position)
        ).all()
        return ApiDefinition(
            id=row.id,
            name=row.name,
            method=row.method,
            uri=row.uri,
            parameters=tuple(
                ParameterDefinition(
                    name=p.name,
                    type=ParameterType(p.type),
                    required=p.required,
                    description=p.description or "",
                )
                for p in params
            ),
        )

    @staticmethod
    def _to_test(session: Session, row: SyntheticTestRow) -> SyntheticTest:
        tags = session.scalars(
            select(TagRow.name)
            .join(SyntheticTestTagRow, SyntheticTestTagRow.tag_id == TagRow.id)
            .where(SyntheticTestTagRow.test_id == row.id)
            .order_by(TagRow.name)
        ).all()
        return SyntheticTest(
            id=row.id,
            name=row.name,
            api_id=row.api_id,
            target=Target(kind=TargetKind(row.target_kind), id=row.target_id),
            interval_seconds=row.interval_seconds,
            alert_threshold_ms=row.alert_threshold_ms,
            tags=list(tags),
            parameters=json.loads(row.parameters or "{}"),
        )


class SqlHistoryStore(_SessionMixin, HistoryStore):
    """Execution history stored in a relational database."""

    def append(self, outcome: ExecutionOutcome) -> ExecutionOutcome:
        with self._session() as session:
            row = HistoryRow(
                test_id=outcome.test_id,
                node_id=outcome.node_id,
                status_code=outcome.status_code,
                success=outcome.success,
                response_time_ms=outcome.response_time_ms,
                input=outcome.input,
                output=outcome.output,
                executed_at=outcome.timestamp,
            )
            session.add(row)
            session.flush()
            return self._to_outcome(row)

    def search(self, filters: HistoryFilters) -> tuple[list[ExecutionOutcome], int]:
        conditions = self._conditions(filters)

        count_stmt = select(func.count()).select_from(HistoryRow)
        rows_stmt = select(HistoryRow).order_by(HistoryRow.executed_at.desc(), HistoryRow.id.desc())
        if conditions:
            count_stmt = count_stmt.where(and_(*conditions))
            rows_stmt = rows_stmt.where(and_(*conditions))

        rows_stmt = rows_stmt.offset(filters.offset)
        if filters.limit is not None:
            rows_stmt = rows_stmt.limit(filters.limit)

        with self._session() as session:
            total = session.scalar(count_stmt) or 0
            rows = session.scalars(rows_stmt).all()
            return [self._to_outcome(r) for r in rows], total

    @staticmethod
    def _conditions(filters: HistoryFilters) -> list[Any]:
        conditions: list[Any] = []

        if filters.test_id is not None:
            conditions.append(HistoryRow.test_id == filters.test_id)
        if filters.node_id is not None:
            conditions.append(HistoryRow.node_id == filters.node_id)
        if filters.success is not None:
            conditions.append(HistoryRow.success == filters.success)
        if filters.start is not None:
            conditions.append(HistoryRow.executed_at >= filters.start)
        if filters.end is not None:
            conditions.append(HistoryRow.executed_at <= filters.end)

        if filters.test_name:
            conditions.append(HistoryRow.test_id.in_(
                select(SyntheticTestRow.id).where(_contains(SyntheticTestRow.name, filters.test_name))
            ))
        if filters.node_name:
            conditions.append(HistoryRow.node_id.in_(
                select(NodeRow.id).where(_contains(NodeRow.name, filters.node_name))
            ))
        if filters.group_name:
            conditions.append(HistoryRow.node_id.in_(
                select(NodeGroupMemberRow.node_id)
                .join(NodeGroupRow, NodeGroupRow.id == NodeGroupMemberRow.group_id)
                .where(_contains(NodeGroupRow.name, filters.group_name))
            ))
        if filters.tag_name:
            conditions.append(HistoryRow.test_id.in_(
                select(SyntheticTestTagRow.test_id)
                .join(TagRow, TagRow.id == SyntheticTestTagRow.tag_id)
                .where(_contains(TagRow.name, filters.tag_name))
            ))

        return conditions

    @staticmethod
    def _to_outcome(row: HistoryRow) -> ExecutionOutcome:
        return ExecutionOutcome(
            id=row.id,
            test_id=row.test_id,
            node_id=row.node_id,
            status_code=row.status_code,
            success=row.success,
            response_time_ms=row.response_time_ms,
            input=row.input or "",
            output=row.output or "",
            timestamp=row.executed_at,
        )
