"""GitHub webhook endpoint"""
from fastapi import APIRouter, Depends, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from reposync.models.base import get_db
from reposync.services.webhook_ingestor import WebhookIngestor

router = APIRouter(prefix="/api/webhooks", tags=["webhooks"])

_REJECTION_CODES = {"invalid_json": 400, "invalid_signature": 401}


@router.post("/github")
async def github_webhook(request: Request, db: Session = Depends(get_db)):
    """Receive a GitHub delivery.

    Authenticated by its X-Hub-Signature-256 header, not by Basic auth.
    Answers 2xx for everything except bad signatures (401) and non-JSON bodies (400).
    """
    body = await request.body()
    result = await run_in_threadpool(
        WebhookIngestor(db).ingest,
        request.headers.get("X-GitHub-Event", ""),
        request.headers.get("X-Hub-Signature-256"),
        body,
        request.headers.get("X-GitHub-Delivery"),
    )
    if result["status"] == "rejected":
        return JSONResponse(status_code=_REJECTION_CODES.get(result.get("reason"), 400), content=result)
    return result
