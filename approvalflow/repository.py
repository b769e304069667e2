"""
Repository Layer
Stores encoded workflow documents. Every save replaces the whole document;
nothing is merged or patched field by field.
"""

import json
import logging
from datetime import datetime, UTC
from typing import Any, Dict, List, Optional

from sqlalchemy import Engine
from sqlmodel import SQLModel, Session, select

from .models import StoredWorkflow, WorkflowRecord, WorkflowSummary
from .util.ids import new_id

logger = logging.getLogger(__name__)


def _now() -> str:
    return datetime.now(UTC).replace(microsecond=0).isoformat()


def _to_stored(record: WorkflowRecord) -> StoredWorkflow:
    return StoredWorkflow(
        id=record.id,
        name=record.name,
        version=record.version,
        created_at=record.created_at,
        updated_at=record.updated_at,
        document=json.loads(record.document),
    )


class WorkflowRepository:
    """Repository for workflow documents"""

    def __init__(self, engine: Engine):
        self.engine = engine

    def create_schema(self):
        """Create all database tables"""
        SQLModel.metadata.create_all(self.engine)

    def create(self, name: str, document: Dict[str, Any]) -> StoredWorkflow:
        workflow_id = new_id("wf_")
        now = _now()

        with Session(self.engine) as session:
            record = WorkflowRecord(
                id=workflow_id,
                name=name,
                version=document.get("version", 1),
                document=json.dumps(document),
                created_at=now,
                updated_at=now,
            )
            session.add(record)
            session.commit()
            session.refresh(record)
            logger.info("Created workflow %s (%s)", workflow_id, name)
            return _to_stored(record)

    def get(self, workflow_id: str) -> Optional[StoredWorkflow]:
        with Session(self.engine) as session:
            record = session.get(WorkflowRecord, workflow_id)
            if not record:
                return None
            return _to_stored(record)

    def list(self) -> List[WorkflowSummary]:
        with Session(self.engine) as session:
            records = session.exec(select(WorkflowRecord).order_by(WorkflowRecord.created_at)).all()
            return [
                WorkflowSummary(
                    id=r.id,
                    name=r.name,
                    version=r.version,
                    created_at=r.created_at,
                    updated_at=r.updated_at,
                )
                for r in records
            ]

    def replace_document(self, workflow_id: str, document: Dict[str, Any]) -> Optional[StoredWorkflow]:
        """Overwrite the stored document of an existing workflow"""
        with Session(self.engine) as session:
            record = session.get(WorkflowRecord, workflow_id)
            if not record:
                return None

            record.document = json.dumps(document)
            record.version = document.get("version", record.version)
            record.updated_at = _now()
            session.add(record)
            session.commit()
            session.refresh(record)
            logger.info("Replaced document of workflow %s", workflow_id)
            return _to_stored(record)

    def delete(self, workflow_id: str) -> bool:
        with Session(self.engine) as session:
            record = session.get(WorkflowRecord, workflow_id)
            if not record:
                return False
            session.delete(record)
            session.commit()
            logger.info("Deleted workflow %s", workflow_id)
            return True
