"""Bulk AI tagging of untagged feedback"""

import json
import logging
import re
from typing import Any, Callable, Dict, List, Literal, Optional, Sequence

import httpx
from pydantic import BaseModel, ValidationError
from sqlalchemy.orm import Session

from reposync.config import settings
from reposync.models import Feedback, FeedbackTag, Tag
from reposync.models.base import SessionLocal, utcnow
from reposync.models.sync_job import JobKind
from reposync.services.job_tracker import BatchRunner, JobTracker

logger = logging.getLogger(__name__)


class TaggingModelError(RuntimeError):
    """The text-generation model could not produce a usable answer."""


class TaggingSuggestion(BaseModel):
    selected_tag_ids: List[int] = []
    reasoning: str = ""
    priority: Optional[Literal["critical", "high", "medium", "low", "none"]] = None
    priority_reasoning: Optional[str] = None
    complexity: Optional[Literal["trivial", "simple", "moderate", "complex", "very_complex"]] = None
    complexity_reasoning: Optional[str] = None
    time_estimate: Optional[str] = None


_JSON_OBJECT_RE = re.compile(r"\{.*\}", re.DOTALL)


def parse_suggestion(text: str) -> TaggingSuggestion:
    """Pull the JSON object out of a model reply (code fences and chatter allowed)."""
    match = _JSON_OBJECT_RE.search(text or "")
    if not match:
        raise TaggingModelError("Model reply contains no JSON object")
    try:
        data = json.loads(match.group(0))
    except json.JSONDecodeError as e:
        raise TaggingModelError(f"Model reply is not valid JSON: {e}") from e
    try:
        return TaggingSuggestion.model_validate(data)
    except ValidationError as e:
        raise TaggingModelError(f"Model reply has the wrong shape: {e}") from e


def build_tagging_prompt(feedback: Feedback, tags: Sequence[Tag]) -> str:
    tag_lines = "\n".join(
        f"- id={t.id} name={t.name}" + (f" ({t.description})" if t.description else "") for t in tags
    )
    return (
        "You triage product feedback. Pick the tags that fit the feedback below, "
        "then estimate priority, implementation complexity and time.\n\n"
        f"Available tags:\n{tag_lines}\n\n"
        f"Feedback title: {feedback.title}\n"
        f"Feedback description:\n{feedback.description or '(none)'}\n\n"
        "Reply with a single JSON object:\n"
        '{"selected_tag_ids": [<tag ids>], "reasoning": "...", '
        '"priority": "critical|high|medium|low|none", "priority_reasoning": "...", '
        '"complexity": "trivial|simple|moderate|complex|very_complex", "complexity_reasoning": "...", '
        '"time_estimate": "e.g. 2 days"}'
    )


class OpenRouterTaggingModel:
    """OpenRouter chat completions, trying each configured model in order."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        models: Optional[Sequence[str]] = None,
        timeout: Optional[float] = None,
        http_client: Optional[httpx.Client] = None,
    ):
        self.api_key = api_key or settings.openrouter_api_key
        self.base_url = (base_url or settings.openrouter_base_url).rstrip("/")
        self.models = list(models or [m.strip() for m in settings.auto_tagging_models.split(",") if m.strip()])
        self._client = http_client or httpx.Client(
            timeout=timeout or settings.auto_tagging_timeout_seconds,
            headers={
                "Authorization": f"Bearer {self.api_key}",
                "Content-Type": "application/json",
                "X-Title": "RepoSync",
            },
        )

    def is_available(self) -> bool:
        return bool(self.api_key) and bool(self.models)

    def suggest(self, prompt: str) -> TaggingSuggestion:
        if not self.api_key:
            raise TaggingModelError("OpenRouter API key not configured")

        last_error: Optional[Exception] = None
        for model in self.models:
            try:
                response = self._client.post(
                    f"{self.base_url}/chat/completions",
                    json={
                        "model": model,
                        "messages": [{"role": "user", "content": prompt}],
                        "temperature": 0.2,
                    },
                )
                response.raise_for_status()
                text = response.json()["choices"][0]["message"]["content"]
                return parse_suggestion(text)
            except (httpx.HTTPError, KeyError, IndexError, ValueError, TaggingModelError) as e:
                last_error = e
                logger.warning(f"Tagging model {model} failed: {e}")
        raise TaggingModelError(f"All tagging models failed: {last_error}")

    def close(self):
        self._client.close()


class AutoTaggingService:
    """Run AI tagging over an organization's untagged feedback as a tracked job."""

    def __init__(
        self,
        db: Session,
        *,
        model: Optional[Any] = None,
        session_factory: Callable[[], Session] = SessionLocal,
        max_workers: Optional[int] = None,
    ):
        self.db = db
        self.model = model or OpenRouterTaggingModel()
        self.session_factory = session_factory
        self.max_workers = max_workers
        self.tracker = JobTracker(db)

    def _untagged_feedback_ids(self, organization_id: str) -> List[int]:
        rows = (
            self.db.query(Feedback.id)
            .filter(Feedback.organization_id == organization_id, ~Feedback.tags.any())
            .order_by(Feedback.id)
            .all()
        )
        return [r[0] for r in rows]

    def start_bulk_auto_tagging(self, organization_id: str) -> Dict[str, Any]:
        active = self.tracker.get_active_job(JobKind.AUTO_TAGGING, organization_id=organization_id)
        if active is not None:
            return {"status": "rejected", "message": "Auto-tagging is already running", "job_id": active.id}
        if not self.model.is_available():
            return {"status": "rejected", "message": "AI tagging is not configured"}
        if not self.db.query(Tag).filter(Tag.organization_id == organization_id).first():
            return {"status": "skipped", "message": "No tags to choose from"}

        ids = self._untagged_feedback_ids(organization_id)
        if not ids:
            return {"status": "skipped", "message": "No untagged feedback"}

        job = self.tracker.create_job(JobKind.AUTO_TAGGING, len(ids), organization_id)
        return {"status": "started", "job_id": job.id, "total": len(ids)}

    def run_bulk_auto_tagging(self, job_id: int) -> Dict[str, Any]:
        job = self.tracker.get_job(job_id)
        if not job:
            raise ValueError(f"Job {job_id} not found")
        ids = self._untagged_feedback_ids(job.organization_id)
        self.tracker.set_total(job_id, len(ids))

        runner = BatchRunner(self.tracker, max_workers=self.max_workers, session_factory=self.session_factory)
        outcome = runner.run(job_id, ids, self.process_item, item_id=str)
        logger.info(f"Auto-tagging job {job_id} {outcome['status']}: {outcome['stats']}")
        return {"status": outcome["status"], "job_id": job_id, "stats": outcome["stats"]}

    def process_item(self, db: Session, feedback_id: int) -> List[int]:
        """Tag one feedback item; raises on any failure."""
        feedback = db.query(Feedback).filter(Feedback.id == feedback_id).first()
        if feedback is None:
            raise ValueError(f"Feedback {feedback_id} not found")
        tags = db.query(Tag).filter(Tag.organization_id == feedback.organization_id).order_by(Tag.id).all()

        suggestion = self.model.suggest(build_tagging_prompt(feedback, tags))

        known = {t.id for t in tags}
        present = {ft.tag_id for ft in feedback.tags}
        selected: List[int] = []
        for tag_id in suggestion.selected_tag_ids:
            if tag_id in known and tag_id not in selected:
                selected.append(tag_id)
        for tag_id in selected:
            if tag_id not in present:
                feedback.tags.append(FeedbackTag(tag_id=tag_id, source="ai"))

        feedback.ai_priority = suggestion.priority
        feedback.ai_priority_reasoning = suggestion.priority_reasoning or suggestion.reasoning or None
        feedback.ai_complexity = suggestion.complexity
        feedback.ai_complexity_reasoning = suggestion.complexity_reasoning
        feedback.ai_time_estimate = suggestion.time_estimate
        feedback.ai_analyzed_at = utcnow()
        db.commit()
        return selected
