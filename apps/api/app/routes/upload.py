import logging

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.orm import Session

from apps.api.app.db import get_db
from apps.api.app.deps import get_pipeline
from jobs.ingest.csv_stream import IngestParseError, IngestStreamError
from jobs.persist.writer import StorageUnavailableError
from jobs.pipeline import UploadPipeline

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/api/upload-csv")
async def upload_csv(
    request: Request,
    platform: str = Query("CSV", max_length=128),
    pipeline: UploadPipeline = Depends(get_pipeline),
    db: Session = Depends(get_db),
):
    """
    Raw CSV request body, read as a stream. Classification faults degrade
    rows to neutral/General and never fail the upload; only an unreadable
    stream or an unreachable store does.
    """
    platform = platform.strip() or "CSV"
    logger.info("Received CSV upload request (streaming). platform=%s", platform)

    try:
        report = await pipeline.run(request.stream(), platform, db)
    except IngestParseError as e:
        raise HTTPException(status_code=400, detail=f"Failed to parse CSV stream: {e}")
    except IngestStreamError as e:
        logger.error("Request stream error: %s", e)
        raise HTTPException(status_code=500, detail="An error occurred with the request stream.")
    except StorageUnavailableError as e:
        logger.error("%s", e)
        raise HTTPException(status_code=500, detail="Storage unavailable")

    return {
        "message": f"Successfully analyzed and stored {report.stored} reviews.",
        "platform": report.platform,
        "parsed": report.rows,
        "stored": report.stored,
    }
