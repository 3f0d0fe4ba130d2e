# FastAPI application entry point for the KimbleAI backend.
# Serves the D&D facts widget and the retrieval-augmented family chat.

import json
from functools import lru_cache
from typing import Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Query, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field

from kimble.chat import ask, stream_ask
from kimble.config import ALLOWED_ORIGINS, FACT_GENERATION_ENABLED, RAG_TOP_K, USERS
from kimble.embeddings import EmbeddingError, embedding_stats
from kimble.facts_service import FactService
from kimble.generator import FactGenerator
from kimble.knowledge import KnowledgeRetriever, KnowledgeStore, SourceType
from kimble.llm import get_claude

app = FastAPI(title="KimbleAI API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Session-Id"],
)


# ─────────────────────────────────────────
# SHARED SERVICES
# ─────────────────────────────────────────

@lru_cache(maxsize=1)
def get_fact_service() -> FactService:
    generator = FactGenerator() if FACT_GENERATION_ENABLED else None
    return FactService(generator=generator)


@lru_cache(maxsize=1)
def get_retriever() -> KnowledgeRetriever:
    return KnowledgeRetriever(KnowledgeStore())


def get_llm_client():
    return get_claude()


def _require_user(user_id: str) -> str:
    if user_id not in USERS:
        raise HTTPException(status_code=404, detail=f"Unknown user: {user_id}")
    return user_id


# ─────────────────────────────────────────
# REQUEST / RESPONSE MODELS
# ─────────────────────────────────────────

class AskRequest(BaseModel):
    user_id: str
    question: str
    chat_history: Optional[list] = None

class AskResponse(BaseModel):
    answer: str
    sources: list = []

class IngestRequest(BaseModel):
    user_id: str
    content: str
    source_type: SourceType = SourceType.MANUAL
    importance: float = Field(0.5, ge=0.0, le=1.0)
    title: Optional[str] = None

class SearchRequest(BaseModel):
    user_id: str
    query: str
    top_k: int = Field(RAG_TOP_K, ge=1, le=50)


# ─────────────────────────────────────────
# ROUTES
# ─────────────────────────────────────────

@app.get("/health")
def health():
    return {"status": "ok", "message": "KimbleAI is ready."}


@app.get("/facts/next")
def next_fact(
    response: Response,
    x_session_id: Optional[str] = Header(default=None),
    service: FactService = Depends(get_fact_service),
):
    """
    Next D&D fact for the caller's session. The session id travels in the
    X-Session-Id header; a missing or malformed id starts a new session and the
    id in use is always echoed back.
    """
    session_id, payload = service.next_fact(x_session_id)
    response.headers["X-Session-Id"] = session_id
    return payload


@app.post("/facts/reset")
def reset_facts_session(
    response: Response,
    x_session_id: Optional[str] = Header(default=None),
    service: FactService = Depends(get_fact_service),
):
    session_id = service.reset_session(x_session_id)
    response.headers["X-Session-Id"] = session_id
    return {"status": "reset"}


@app.get("/facts/stats")
def facts_stats(service: FactService = Depends(get_fact_service)):
    return service.stats()


@app.post("/ask", response_model=AskResponse)
def ask_question(
    request: AskRequest,
    retriever: KnowledgeRetriever = Depends(get_retriever),
    client=Depends(get_llm_client),
):
    """
    Main chat endpoint. Stored knowledge for the user is retrieved and injected
    into the prompt; if retrieval fails the question is answered without it.
    """
    _require_user(request.user_id)
    if not request.question.strip():
        raise HTTPException(status_code=400, detail="Question is required")

    try:
        result = ask(retriever, request.user_id, request.question, request.chat_history, client=client)
        return AskResponse(**result)
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))


@app.post("/ask-stream")
def ask_question_stream(
    request: AskRequest,
    retriever: KnowledgeRetriever = Depends(get_retriever),
    client=Depends(get_llm_client),
):
    """Streaming chat endpoint. Returns Server-Sent Events with text chunks."""
    _require_user(request.user_id)
    if not request.question.strip():
        raise HTTPException(status_code=400, detail="Question is required")

    def generate():
        for chunk in stream_ask(retriever, request.user_id, request.question, request.chat_history, client=client):
            yield f"data: {json.dumps(chunk)}\n\n"

    return StreamingResponse(generate(), media_type="text/event-stream")


@app.post("/knowledge/ingest")
def ingest_knowledge(request: IngestRequest, retriever: KnowledgeRetriever = Depends(get_retriever)):
    _require_user(request.user_id)
    if not request.content.strip():
        raise HTTPException(status_code=400, detail="Content is required")

    try:
        chunks = retriever.store.ingest(
            request.user_id,
            request.content,
            request.source_type,
            importance=request.importance,
            title=request.title,
        )
    except EmbeddingError as e:
        raise HTTPException(status_code=503, detail=str(e))
    return {"chunks": [c.to_dict(preview_chars=200) for c in chunks]}


@app.post("/knowledge/search")
def search_knowledge(request: SearchRequest, retriever: KnowledgeRetriever = Depends(get_retriever)):
    _require_user(request.user_id)
    if not request.query.strip():
        raise HTTPException(status_code=400, detail="Query is required")

    chunks = retriever.retrieve(request.user_id, request.query, request.top_k)
    return {
        "query": request.query,
        "resultsCount": len(chunks),
        "results": [c.to_dict(preview_chars=200) for c in chunks],
    }


@app.delete("/knowledge/{chunk_id}")
def deactivate_knowledge(
    chunk_id: str,
    user_id: str = Query(...),
    retriever: KnowledgeRetriever = Depends(get_retriever),
):
    _require_user(user_id)
    if not retriever.store.deactivate(chunk_id, user_id):
        raise HTTPException(status_code=404, detail="Chunk not found")
    return {"id": chunk_id, "is_active": False}


@app.get("/knowledge/stats")
def knowledge_stats(user_id: str = Query(...), retriever: KnowledgeRetriever = Depends(get_retriever)):
    _require_user(user_id)
    return {
        "user_id": user_id,
        "active_chunks": retriever.store.count(user_id),
        "embedding_cache": embedding_stats(),
    }


# ─────────────────────────────────────────
# RUN
# ─────────────────────────────────────────

if __name__ == "__main__":
    import uvicorn
    uvicorn.run("kimble.main:app", host="0.0.0.0", port=8001, reload=True)
