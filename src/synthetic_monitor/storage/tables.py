"""ORM tables for the SQL storage backend."""

from datetime import datetime

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class NodeRow(Base):
    __tablename__ = "nodes"

    id = Column(Integer, primary_key=True, autoincrement=False)
    name = Column(String(50), nullable=False)
    host = Column(String(100), nullable=False)
    port = Column(Integer, nullable=False)
    status = Column(String(16), nullable=False, default="healthy")
    last_checked_at = Column(DateTime)
    description = Column(String(100), nullable=False, default="")


class NodeGroupRow(Base):
    __tablename__ = "node_groups"

    id = Column(Integer, primary_key=True, autoincrement=False)
    name = Column(String(50), nullable=False)
    description = Column(String(200), nullable=False, default="")


class NodeGroupMemberRow(Base):
    __tablename__ = "node_group_members"

    # node_id has no foreign key: groups may outlive their members
    group_id = Column(Integer, ForeignKey("node_groups.id"), primary_key=True)
    position = Column(Integer, primary_key=True)
    node_id = Column(Integer, nullable=False, index=True)


class ApiRow(Base):
    __tablename__ = "apis"

    id = Column(Integer, primary_key=True, autoincrement=False)
    name = Column(String(50), nullable=False)
    method = Column(String(8), nullable=False)
    uri = Column(String(200), nullable=False)


class ApiParameterRow(Base):
    __tablename__ = "api_parameters"

    api_id = Column(Integer, ForeignKey("apis.id"), primary_key=True)
    position = Column(Integer, primary_key=True)
    name = Column(String(40), nullable=False)
    type = Column(String(8), nullable=False)
    required = Column(Boolean, nullable=False, default=False)
    description = Column(String(100), nullable=False, default="")


class SyntheticTestRow(Base):
    __tablename__ = "synthetic_tests"

    id = Column(Integer, primary_key=True, autoincrement=False)
    name = Column(String(50), nullable=False)
    api_id = Column(Integer, nullable=False)
    target_kind = Column(String(8), nullable=False)
    target_id = Column(Integer, nullable=False)
    interval_seconds = Column(Integer, nullable=False)
    alert_threshold_ms = Column(Integer, nullable=False)
    parameters = Column(Text, nullable=False, default="{}")


class TagRow(Base):
    __tablename__ = "tags"

    id = Column(Integer, primary_key=True)
    name = Column(String(50), nullable=False, unique=True)


class SyntheticTestTagRow(Base):
    __tablename__ = "synthetic_test_tags"

    test_id = Column(Integer, ForeignKey("synthetic_tests.id"), primary_key=True)
    tag_id = Column(Integer, ForeignKey("tags.id"), primary_key=True)


class HistoryRow(Base):
    __tablename__ = "test_history"

    id = Column(Integer, primary_key=True)
    test_id = Column(Integer, nullable=False)
    node_id = Column(Integer, nullable=False, index=True)
    status_code = Column(Integer, nullable=False)
    success = Column(Boolean, nullable=False)
    response_time_ms = Column(Integer, nullable=False)
    input = Column(Text)
    output = Column(Text)
    executed_at = Column(DateTime, nullable=False, default=datetime.now, index=True)

    __table_args__ = (
        Index("ix_test_history_test_executed", "test_id", "executed_at"),
    )
