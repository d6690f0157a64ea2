"""
routes.py — persona classification endpoint.

POST /api/persona/classify — {sessionId, useAI?} → cached or fresh persona label.

app.state resources (redis, mistral, classify_semaphore) are set in main.py lifespan.
"""
import logging

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from persona_pipeline.database import get_session_factory
from persona_pipeline.persona.centroids import centroid_classifier
from persona_pipeline.persona.gate import SOURCE_UNAVAILABLE, request_classification
from persona_pipeline.persona.llm_classifier import HybridClassifier, MistralClassifier
from persona_pipeline.persona.schemas import Classifier, ClassifyRequest, ClassifyResponse

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/persona", tags=["Persona"])


def select_classifier(request: Request, use_ai: bool) -> Classifier:
    """Hybrid (centroid + Mistral) when requested and configured, else centroid only."""
    mistral = getattr(request.app.state, "mistral", None)
    if not use_ai or mistral is None:
        return centroid_classifier
    return HybridClassifier(MistralClassifier(mistral, request.app.state.classify_semaphore))


@router.post("/classify")
async def classify_endpoint(
    request: Request,
    body: ClassifyRequest,
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> dict:
    """
    Returns:
        200: {success, classification, source}
             source ∈ new-visitor | insufficient-data | cooldown | classified |
                      retained | classifier-failed | unavailable
        422: body missing sessionId
    """
    result = await request_classification(
        session_factory,
        request.app.state.redis,
        body.session_id,
        select_classifier(request, body.use_ai),
    )
    response = ClassifyResponse(
        success=result.source != SOURCE_UNAVAILABLE or result.classification is not None,
        classification=result.classification,
        source=result.source,
    )
    return response.model_dump(mode="json", by_alias=True, exclude_none=True)
