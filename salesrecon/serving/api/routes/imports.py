"""
Sales Import Endpoints

Upload or submit extracted sales, review unrecognized items, resolve them,
then confirm or cancel the import.
"""

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, File, Query, Response, UploadFile, status
from pydantic import BaseModel, Field
import structlog

from salesrecon.ingestion.extraction import parse_extraction_payload
from salesrecon.reconciliation.pipeline import ImportOutcome, ImportPipeline, ImportSessionView
from salesrecon.serving.dependencies import get_pipeline

router = APIRouter()
logger = structlog.get_logger(__name__)


class ExtractedImportRequest(BaseModel):
    """Output of the external extraction step for one source file"""
    source_name: str = Field(min_length=1)
    items: List[Dict[str, Any]]
    summary: Optional[Dict[str, Any]] = None


class ResolutionRequest(BaseModel):
    """Operator choice for one unrecognized key: CREATE_NEW_PRODUCT or a product id"""
    key: str
    choice: str


@router.post("", response_model=ImportSessionView, status_code=status.HTTP_201_CREATED)
async def upload_sales_file(
    file: UploadFile = File(...),
    pipeline: ImportPipeline = Depends(get_pipeline),
) -> ImportSessionView:
    """Analyze a marketplace spreadsheet and open an import session"""
    content = await file.read()
    logger.info("Sales file received", file=file.filename, size=len(content))
    session = await pipeline.analyze_file(content, file.filename or "upload")
    return pipeline.view(session)


@router.post("/extracted", response_model=ImportSessionView, status_code=status.HTTP_201_CREATED)
async def submit_extracted_sales(
    request: ExtractedImportRequest,
    pipeline: ImportPipeline = Depends(get_pipeline),
) -> ImportSessionView:
    """Open an import session from already extracted rows"""
    extraction = parse_extraction_payload(
        {"items": request.items, "summary": request.summary},
        request.source_name,
    )
    session = await pipeline.analyze(extraction)
    return pipeline.view(session)


@router.get("/{session_id}", response_model=ImportSessionView)
async def get_import(
    session_id: str,
    pipeline: ImportPipeline = Depends(get_pipeline),
) -> ImportSessionView:
    return pipeline.view(await pipeline.get(session_id))


@router.put("/{session_id}/resolutions", response_model=ImportSessionView)
async def resolve_item(
    session_id: str,
    request: ResolutionRequest,
    pipeline: ImportPipeline = Depends(get_pipeline),
) -> ImportSessionView:
    session = await pipeline.resolve(session_id, request.key, request.choice)
    return pipeline.view(session)


@router.post("/{session_id}/confirm", response_model=ImportOutcome)
async def confirm_import(
    session_id: str,
    user: Optional[str] = Query(default=None, description="Operator recorded in the activity log"),
    pipeline: ImportPipeline = Depends(get_pipeline),
) -> ImportOutcome:
    """
    Commit the import.

    Responds 409 while unrecognized items lack a resolution.
    """
    return await pipeline.confirm(session_id, user=user)


@router.delete("/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
async def cancel_import(
    session_id: str,
    pipeline: ImportPipeline = Depends(get_pipeline),
) -> Response:
    await pipeline.cancel(session_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
