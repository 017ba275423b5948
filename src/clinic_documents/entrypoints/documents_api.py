"""
Documents API Entrypoint - thin routes over the document service.

Every store call runs in a worker thread. If the request is cancelled the
thread is abandoned and its cancel event is set, so the service raises
OperationCancelled instead of finishing silently.
"""
import logging
import threading
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from functools import partial
from typing import Annotated, Callable

import anyio
from fastapi import APIRouter, Depends, FastAPI, File, HTTPException, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel
from starlette.background import BackgroundTask
from starlette.exceptions import HTTPException as StarletteHTTPException

from clinic_documents.domain.exceptions import DocumentError, NotFound, StoreUnavailable
from clinic_documents.domain.model import DEFAULT_CONTENT_TYPE
from clinic_documents.service_layer.document_service import DocumentService

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

INTERNAL_ERROR_MESSAGE = "Internal Server Error"


class DocumentResponse(BaseModel):
    """Response model for document uploads and deletions"""
    key: str
    message: str


def get_document_service(request: Request) -> DocumentService:
    """Get the DocumentService built at startup."""
    return request.app.state.documents


DocumentServiceDep = Annotated[DocumentService, Depends(get_document_service)]


async def run_store_call(func: Callable, *args, **kwargs):
    """Run a blocking document service call in a worker thread, propagating cancellation."""
    cancel = threading.Event()
    try:
        return await anyio.to_thread.run_sync(
            partial(func, *args, cancel=cancel, **kwargs), abandon_on_cancel=True
        )
    except anyio.get_cancelled_exc_class():
        cancel.set()
        raise


router = APIRouter()


@router.get("/health")
async def health_check():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "service": "clinic-documents-api",
        "timestamp": datetime.now(timezone.utc).isoformat()
    }


@router.get("/document/{key}")
async def get_document(key: str, documents: DocumentServiceDep):
    """Stream a stored document with the content type recorded at upload."""
    document = await run_store_call(documents.get, key)
    return StreamingResponse(
        document.iter_chunks(),
        media_type=document.content_type,
        background=BackgroundTask(document.close),
    )


@router.post("/document", response_model=DocumentResponse)
async def upload_document(documents: DocumentServiceDep, file: UploadFile = File(...)):
    """Upload a file under its own name, overwriting any document with the same key."""
    if not file.filename:
        raise HTTPException(status_code=400, detail="The uploaded file must have a name")

    key = file.filename
    logger.info(f"Received upload for document {key}")
    await run_store_call(
        documents.put,
        key,
        file.file,
        file.content_type or DEFAULT_CONTENT_TYPE,
        length=file.size if file.size is not None else -1,
    )
    return DocumentResponse(key=key, message="File uploaded")


@router.delete("/document/{key}", response_model=DocumentResponse)
async def delete_document(key: str, documents: DocumentServiceDep):
    """Delete a document that must exist."""
    await run_store_call(documents.delete, key)
    return DocumentResponse(key=key, message="File deleted")


def _error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"statusCode": status_code, "message": message},
    )


async def not_found_handler(request: Request, exc: NotFound):
    return _error_response(404, str(exc))


async def store_unavailable_handler(request: Request, exc: StoreUnavailable):
    logger.error(f"Store failure handling {request.method} {request.url.path}: {exc}")
    return _error_response(500, INTERNAL_ERROR_MESSAGE)


async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return _error_response(exc.status_code, str(exc.detail))


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    messages = "; ".join(
        f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}" for error in exc.errors()
    )
    return _error_response(422, messages)


async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled error for {request.method} {request.url.path}: {exc}", exc_info=exc)
    return _error_response(500, INTERNAL_ERROR_MESSAGE)


def create_app(document_service_factory: Callable[[], DocumentService] = DocumentService.from_environment) -> FastAPI:
    """
    Build the documents API.

    The document service is created during startup; a missing setting or an
    unreachable store aborts startup.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Starting Clinic Documents API")
        try:
            app.state.documents = document_service_factory()
        except DocumentError as e:
            logger.critical(f"Clinic Documents API startup failed: {e}")
            raise
        logger.info("Clinic Documents API startup complete")
        yield
        logger.info("Shutting down Clinic Documents API")

    app = FastAPI(
        title="Clinic Documents API",
        description="Store and retrieve clinic documents and appointment result reports",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.include_router(router)

    app.add_exception_handler(NotFound, not_found_handler)
    app.add_exception_handler(StoreUnavailable, store_unavailable_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
    return app


app = create_app()
