"""
Approval Workflow Builder API
Role lookup, template instantiation, validation and whole-document
persistence of workflow graphs for the editor.
"""

from dotenv import load_dotenv
load_dotenv()

import logging
from typing import Any, Dict, List, Optional

from fastapi import Body, Depends, FastAPI, HTTPException, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlmodel import create_engine

from .config import settings
from .converters import decode, decode_unchecked, encode
from .directory import RoleDirectory, get_role_directory
from .errors import (
    InvalidWorkflow,
    MalformedDocument,
    UnknownTemplate,
    UnsupportedVersion,
    WorkflowGraphError,
    WorkflowNotFound,
)
from .models import (
    CreateWorkflowDTO,
    RoleOption,
    TemplateInfo,
    ValidationReport,
    WorkflowDetailDTO,
    WorkflowSummary,
)
from .repository import WorkflowRepository
from .templates import available_templates, instantiate
from .validator import validate

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


# ============================================================================
# App Configuration
# ============================================================================

app = FastAPI(
    title="Approval Workflow Builder API",
    version="1.0.0",
    description="Persistence and validation of approval/fulfillment workflow graphs",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ============================================================================
# Database Configuration
# ============================================================================

_repo: Optional[WorkflowRepository] = None


def get_repository() -> WorkflowRepository:
    """Create the repository on first use so importing the app touches no database."""
    global _repo
    if _repo is None:
        connect_args = {"check_same_thread": False} if settings.database_url.startswith("sqlite") else {}
        engine = create_engine(settings.database_url, connect_args=connect_args, echo=False)
        _repo = WorkflowRepository(engine)
        _repo.create_schema()
        logger.info("Using database: %s", settings.database_url)
    return _repo


# ============================================================================
# Error Handling
# ============================================================================

_ERROR_STATUS = {
    WorkflowNotFound: 404,
    UnknownTemplate: 404,
    InvalidWorkflow: 422,
    UnsupportedVersion: 422,
    MalformedDocument: 422,
}


def _status_for(exc: WorkflowGraphError) -> int:
    for error_type, status_code in _ERROR_STATUS.items():
        if isinstance(exc, error_type):
            return status_code
    return 400


def _error_response(exc: WorkflowGraphError, phase: Optional[str] = None) -> JSONResponse:
    error: Dict[str, Any] = {"code": exc.code, "message": exc.message, "details": exc.details}
    if phase:
        error["phase"] = phase
    return JSONResponse(status_code=_status_for(exc), content={"error": error})


@app.exception_handler(WorkflowGraphError)
async def workflow_graph_error_handler(request: Request, exc: WorkflowGraphError):
    return _error_response(exc)


# ============================================================================
# Catalog Endpoints
# ============================================================================

@app.get("/roles", response_model=List[RoleOption], tags=["catalog"])
async def list_roles(directory: RoleDirectory = Depends(get_role_directory)) -> List[RoleOption]:
    """Roles available for approver/fulfiller selection"""
    return directory.list_roles()


@app.get("/templates", response_model=List[TemplateInfo], tags=["catalog"])
async def list_templates() -> List[TemplateInfo]:
    return available_templates()


# ============================================================================
# Workflow Endpoints
# ============================================================================

@app.post("/workflows", response_model=WorkflowDetailDTO, status_code=201, tags=["workflows"])
async def create_workflow(
    data: CreateWorkflowDTO,
    repo: WorkflowRepository = Depends(get_repository),
) -> WorkflowDetailDTO:
    """
    Create a workflow from a template.
    The new graph is valid on creation and stored in encoded form.
    """
    graph = instantiate(data.template, approver_role=data.approver_role, fulfiller_role=data.fulfiller_role)
    stored = repo.create(data.name, encode(graph))
    return WorkflowDetailDTO(id=stored.id, name=stored.name, document=stored.document)


@app.get("/workflows", response_model=List[WorkflowSummary], tags=["workflows"])
async def list_workflows(repo: WorkflowRepository = Depends(get_repository)) -> List[WorkflowSummary]:
    return repo.list()


@app.post("/workflows/validate", response_model=ValidationReport, tags=["workflows"])
async def validate_workflow(document: Dict[str, Any] = Body(...)) -> ValidationReport:
    """
    Validate a document without persisting it.
    Structural problems are reported as violations; an unreadable document is an error.
    """
    violations = validate(decode_unchecked(document))
    return ValidationReport(valid=not violations, violations=violations)


@app.get("/workflows/{id}", response_model=WorkflowDetailDTO, tags=["workflows"])
async def get_workflow(id: str, repo: WorkflowRepository = Depends(get_repository)):
    """Load a workflow. The stored document is decoded and validated before it is returned."""
    stored = repo.get(id)
    if not stored:
        raise HTTPException(status_code=404, detail="Workflow not found")
    try:
        graph = decode(stored.document)
    except WorkflowGraphError as exc:
        logger.warning("Stored workflow %s failed to load: %s", id, exc.message)
        return _error_response(exc, phase="load")
    return WorkflowDetailDTO(id=stored.id, name=stored.name, document=encode(graph))


@app.patch("/workflows/{id}", response_model=WorkflowDetailDTO, tags=["workflows"])
async def save_workflow(
    id: str,
    document: Dict[str, Any] = Body(...),
    repo: WorkflowRepository = Depends(get_repository),
):
    """
    Save a workflow.
    The body is the complete document and replaces the stored one; invalid
    graphs are refused with their violation list.
    """
    if not repo.get(id):
        raise HTTPException(status_code=404, detail="Workflow not found")
    try:
        graph = decode(document)
    except WorkflowGraphError as exc:
        logger.warning("Refused save of workflow %s: %s", id, exc.message)
        return _error_response(exc, phase="save")
    stored = repo.replace_document(id, encode(graph))
    return WorkflowDetailDTO(id=stored.id, name=stored.name, document=stored.document)


@app.delete("/workflows/{id}", status_code=204, tags=["workflows"])
async def delete_workflow(id: str, repo: WorkflowRepository = Depends(get_repository)):
    if not repo.delete(id):
        raise HTTPException(status_code=404, detail="Workflow not found")
    return Response(status_code=204)


# ============================================================================
# Health Check
# ============================================================================

@app.get("/health", tags=["health"])
async def health_check():
    return {"status": "healthy", "environment": settings.app_env}
