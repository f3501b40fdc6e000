"""FastAPI dependencies.

The LLM client and the persona service are built once in the app
lifespan and kept on ``app.state``. They are built lazily here when the
lifespan did not run (e.g. a TestClient used without a context manager).
"""

from typing import Annotated

from fastapi import Depends, Request

from personalens.llm import LLMClient
from personalens.services import EnrichmentService, PersonaGenerationService, QlooClient


def build_llm_client() -> LLMClient:
    return LLMClient()


def build_persona_service(llm: LLMClient) -> PersonaGenerationService:
    """Wire the pipeline; enrichment is only enabled when a Qloo key is set."""
    qloo = QlooClient()
    enrichment = EnrichmentService(qloo) if qloo.is_configured else None
    return PersonaGenerationService(llm, enrichment)


def get_llm_client(request: Request) -> LLMClient:
    state = request.app.state
    if getattr(state, "llm_client", None) is None:
        state.llm_client = build_llm_client()
    return state.llm_client


def get_persona_service(
    request: Request,
    llm: Annotated[LLMClient, Depends(get_llm_client)],
) -> PersonaGenerationService:
    state = request.app.state
    if getattr(state, "persona_service", None) is None:
        state.persona_service = build_persona_service(llm)
    return state.persona_service


LLMClientDep = Annotated[LLMClient, Depends(get_llm_client)]
PersonaServiceDep = Annotated[PersonaGenerationService, Depends(get_persona_service)]
