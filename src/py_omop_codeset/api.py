# Copyright (c) 2025-2026 Gowtham Adamane Rao. All Rights Reserved.
#
# Licensed under the Prosperity Public License 3.0.0 (the "License").
# You may not use this file except in compliance with the License.
# You may obtain a copy of the License in the LICENSE file at the root
# of this repository, or at: https://prosperitylicense.com/versions/3.0.0
#
# Commercial use beyond a 30-day trial requires a separate license.
"""
HTTP surface for search, hierarchy exploration and code set building.

Every endpoint answers with {"success": true, "data": [...]} or
{"success": false, "error": "..."}.
"""
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Callable, List, Optional

from fastapi import APIRouter, Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from rich.console import Console

from . import __version__
from .codeset import CodeSetBuilder
from .config import settings
from .exceptions import CodeSetError, InternalError
from .hierarchy import HierarchyResolver
from .search import ConceptSearcher
from .store import ConceptStore, close_store, get_store
from .umls import UMLSClient

console = Console()


# Request fields are typed loosely on purpose; the services validate them and
# report InvalidInputError with a readable message.
class SearchRequest(BaseModel):
    searchterm: Any = None
    domain_id: Any = None


class HierarchyRequest(BaseModel):
    concept_id: Any = None


class CodeSetRequest(BaseModel):
    concept_ids: Any = None
    combo_filter: Optional[str] = "ALL"
    build_type: Optional[str] = "hierarchical"


class LabTestSearchRequest(BaseModel):
    searchterm: Any = None


class LabTestPanelSearchRequest(BaseModel):
    labTestConceptIds: Any = None


class UMLSSearchRequest(BaseModel):
    searchTerm: Any = None
    vocabularies: Optional[List[str]] = None
    pageSize: int = 25


def success(data: List[BaseModel]) -> dict:
    return {"success": True, "data": [row.model_dump(mode="json") for row in data]}


def failure(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": message})


router = APIRouter(prefix="/api")


@router.get("/health")
def health_check():
    return {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "service": "py-omop-codeset",
        "version": __version__,
    }


@router.post("/search")
def search(request: SearchRequest, store: ConceptStore = Depends(get_store)):
    return success(ConceptSearcher(store).search(request.searchterm, request.domain_id))


@router.post("/hierarchy")
def hierarchy(request: HierarchyRequest, store: ConceptStore = Depends(get_store)):
    return success(HierarchyResolver(store).resolve(request.concept_id))


@router.post("/codeset")
def codeset(request: CodeSetRequest, store: ConceptStore = Depends(get_store)):
    rows = CodeSetBuilder(store).build(request.concept_ids, request.combo_filter, request.build_type)
    return success(rows)


@router.post("/labtest-search")
def labtest_search(request: LabTestSearchRequest, store: ConceptStore = Depends(get_store)):
    return success(ConceptSearcher(store).search_lab_tests(request.searchterm))


@router.post("/labtest-panel-search")
def labtest_panel_search(request: LabTestPanelSearchRequest, store: ConceptStore = Depends(get_store)):
    return success(ConceptSearcher(store).search_lab_test_panels(request.labTestConceptIds))


@router.post("/umls-search")
def umls_search(request: UMLSSearchRequest):
    return success(UMLSClient().search(request.searchTerm, request.vocabularies, request.pageSize))


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    # Release the process-wide store (and its Neo4j driver) on shutdown.
    close_store()


def create_app(store_provider: Optional[Callable[[], ConceptStore]] = None) -> FastAPI:
    """
    Builds the application. `store_provider` replaces the process-wide store,
    which is how tests inject an in-memory graph.
    """
    app = FastAPI(title="py-omop-codeset", version=__version__, lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
    )
    app.include_router(router)
    if store_provider is not None:
        app.dependency_overrides[get_store] = store_provider

    @app.exception_handler(CodeSetError)
    async def handle_codeset_error(request: Request, exc: CodeSetError):
        if exc.status_code >= 500:
            console.log(f"[bold red]{request.url.path} failed: {exc.message}[/bold red]")
        return failure(exc.status_code, exc.message)

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request: Request, exc: RequestValidationError):
        return failure(400, "Malformed request body")

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        console.log(f"[bold red]{request.url.path} failed unexpectedly: {exc!r}[/bold red]")
        return await handle_codeset_error(request, InternalError(str(exc) or "Internal server error"))

    return app
