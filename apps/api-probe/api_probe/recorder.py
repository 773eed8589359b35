"""Append-only persistence of ExecutionRecords."""

from __future__ import annotations

import json
import threading
from pathlib import Path
from typing import Protocol

import structlog
from sqlalchemy import func, select
from sqlalchemy.engine import Engine

from .database import ApiTestExecution, build_session_factory, create_schema, session_scope
from .models import ExecutionRecord

LOGGER = structlog.get_logger("api_probe.recorder")


class ExecutionRecorder(Protocol):
    def record(self, record: ExecutionRecord) -> str:
        """Persist one record and return its id. Records are never updated."""


class SqlExecutionRecorder:
    """Writes api_test_executions rows through a privileged database connection."""

    def __init__(self, engine: Engine, *, create_tables: bool = False) -> None:
        self._engine = engine
        if create_tables:
            create_schema(engine)
        self._session_factory = build_session_factory(engine)

    def record(self, record: ExecutionRecord) -> str:
        payload = record.as_serializable()
        row = ApiTestExecution(
            id=record.id,
            endpoint_id=record.endpoint_id,
            test_plan_id=record.test_plan_id,
            executor_id=record.executor_id,
            method=record.method,
            url=record.url,
            request_headers=payload["request_headers"],
            request_body=record.request_body,
            response_status=record.response_status,
            response_headers=payload["response_headers"],
            response_body=record.response_body,
            response_time_ms=record.response_time_ms,
            status=record.status,
            assertions=payload["assertions"],
            assertion_results=payload["assertion_results"],
            executed_at=record.executed_at,
            notes=record.notes,
        )
        with session_scope(self._session_factory) as session:
            session.add(row)
        LOGGER.info(
            "execution_recorded",
            execution_id=record.id,
            endpoint_id=record.endpoint_id,
            status=record.status,
        )
        return record.id

    def count(self) -> int:
        with session_scope(self._session_factory) as session:
            return session.scalar(select(func.count()).select_from(ApiTestExecution)) or 0

    def get(self, execution_id: str) -> dict | None:
        with session_scope(self._session_factory) as session:
            row = session.get(ApiTestExecution, execution_id)
            return row.to_dict() if row else None


class JsonlExecutionRecorder:
    """Appends one JSON line per record; used for suite run artifacts."""

    def __init__(self, path: Path) -> None:
        self.path = path
        self._lock = threading.Lock()
        path.parent.mkdir(parents=True, exist_ok=True)

    def record(self, record: ExecutionRecord) -> str:
        line = json.dumps(record.as_serializable(), ensure_ascii=False)
        with self._lock, self.path.open("a", encoding="utf-8") as handle:
            handle.write(line + "\n")
        return record.id
