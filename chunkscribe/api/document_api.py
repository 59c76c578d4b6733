from typing import Optional

from fastapi import APIRouter, Request
from pydantic import BaseModel, Field

from ..document import DocumentStore
from ..logging_config import get_logger
from ..server.utils import error_response, handle_api_exception, not_found_response, success_response

logger = get_logger(__name__)

router = APIRouter()


class InsertRequest(BaseModel):
    text: str = Field(description="Text to insert")
    position: Optional[int] = Field(default=None, ge=0, description="Insert position; defaults to the cursor")


class PointRequest(BaseModel):
    position: int = Field(ge=0, description="New cursor position")


def _documents(request: Request) -> DocumentStore:
    return request.app.state.documents


@router.get("/api/documents")
async def list_documents(request: Request):
    return success_response("Documents retrieved", {"documents": _documents(request).names()})


@router.get("/api/documents/{name}")
async def get_document(request: Request, name: str):
    document = _documents(request).get(name)
    if document is None:
        return not_found_response("Document", name)
    return success_response("Document retrieved", {"document": document.to_dict()})


@router.post("/api/documents/{name}/insert")
async def insert_text(request: Request, name: str, body: InsertRequest):
    """Edit a document the way a user typing into it would."""
    try:
        document = _documents(request).get_or_create(name)
        if body.position is None:
            document.insert_at_point(body.text)
        else:
            document.insert(body.position, body.text)
        return success_response("Text inserted", {"document": document.to_dict()})
    except IndexError as e:
        return error_response(str(e), error=e, log_error=False)
    except Exception as e:
        return handle_api_exception("inserting text", e)


@router.put("/api/documents/{name}/point")
async def set_point(request: Request, name: str, body: PointRequest):
    document = _documents(request).get(name)
    if document is None:
        return not_found_response("Document", name)
    if body.position > len(document):
        return error_response(f"Position {body.position} is past the end of {name!r}", log_error=False)
    document.point = body.position
    return success_response("Cursor moved", {"document": document.to_dict()})


@router.delete("/api/documents/{name}")
async def kill_document(request: Request, name: str):
    """Destroy a document; a session writing into it stops inserting."""
    if not _documents(request).kill(name):
        return not_found_response("Document", name)
    return success_response(f"Document {name!r} killed")
