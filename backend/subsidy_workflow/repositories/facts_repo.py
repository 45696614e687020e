"""Facts Repository - Guard facts derived from the document and task stores"""
from typing import Any, Dict, List, Optional
from pymongo import DESCENDING
from pymongo.database import Database
from pymongo.errors import PyMongoError

from .base import FactsProvider
from .mongo_client import get_database
from ..domain.enums import (
    DocumentStatus, ControlVisitStatus, REQUIRED_PHOTO_CATEGORIES
)
from ..domain.errors import StoreUnavailableError
from ..utils.logger import get_logger

logger = get_logger(__name__)


def _filled(value: Any) -> bool:
    return value is not None and str(value).strip() != ""


def compile_facts(
    documents: List[Dict[str, Any]],
    control_visit: Optional[Dict[str, Any]],
    photos: List[Dict[str, Any]],
    technical_report: Optional[Dict[str, Any]],
    social_report: Optional[Dict[str, Any]],
    director_review: Optional[Dict[str, Any]]
) -> Dict[str, Any]:
    """
    Reduce raw store documents to the flat facts the guards read

    A case with no required documents registered counts as neither
    uploaded nor verified.
    """
    required = [d for d in documents if d.get("is_required", True)]
    uploaded = bool(required) and all(_filled(d.get("file_path")) for d in required)
    unverified = [
        d.get("document_name") or d.get("document_type") or "unnamed"
        for d in required
        if d.get("verification_status") != DocumentStatus.VERIFIED.value
    ]

    categories = {p.get("photo_category") for p in photos}
    missing_categories = [c.value for c in REQUIRED_PHOTO_CATEGORIES if c.value not in categories]

    visit = control_visit or {}
    technical = technical_report or {}
    social = social_report or {}
    director = director_review or {}

    return {
        "documents.uploaded": uploaded,
        "documents.verified": bool(required) and not unverified,
        "documents.unverified": unverified,
        "control_visit.status": visit.get("visit_status"),
        "control_visit.outcome_recorded": (
            visit.get("visit_status") == ControlVisitStatus.COMPLETED.value
            or _filled(visit.get("outcome"))
        ),
        "control_photos.count": len(photos),
        "control_photos.missing_categories": missing_categories,
        "technical_report.complete": (
            _filled(technical.get("technical_conclusion")) and _filled(technical.get("recommendations"))
        ),
        "social_report.complete": (
            _filled(social.get("social_conclusion")) and _filled(social.get("recommendations"))
        ),
        "director_review.recommendation_recorded": _filled(director.get("director_recommendation")),
    }


class FactsRepository(FactsProvider):
    """Reads guard facts from the documents, control and review collections"""

    def __init__(self, database: Optional[Database] = None):
        self._db: Database = database if database is not None else get_database()

    def _latest(self, collection: str, application_id: str) -> Optional[Dict[str, Any]]:
        return self._db[collection].find_one(
            {"application_id": application_id},
            sort=[("created_at", DESCENDING)]
        )

    def get_facts(self, application_id: str) -> Dict[str, Any]:
        query = {"application_id": application_id}
        try:
            facts = compile_facts(
                documents=list(self._db["documents"].find(query)),
                control_visit=self._latest("control_visits", application_id),
                photos=list(self._db["control_photos"].find(query, {"photo_category": 1})),
                technical_report=self._latest("technical_reports", application_id),
                social_report=self._latest("social_reports", application_id),
                director_review=self._latest("director_reviews", application_id),
            )
        except PyMongoError as e:
            raise StoreUnavailableError(f"Could not load facts for {application_id}: {e}")

        logger.debug(f"Loaded facts for {application_id}", extra={"application_id": application_id})
        return facts
