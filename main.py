"""
KGQA - Knowledge-Graph Question Answering
Run with: uvicorn main:app --reload --port 8000

Supports two modes:
- LITE MODE: No LLM key - template and NLP stages only
- FULL MODE: With ANTHROPIC_API_KEY or OPENAI_API_KEY - direct translation and schema QA
"""

import logging
from contextlib import asynccontextmanager

from dotenv import load_dotenv
load_dotenv()  # Must be before importing config

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from kgqa.config import Config
from kgqa.graph import Neo4jGraph
from kgqa.llm import BaseLLMClient, create_llm_client
from kgqa.pipeline import QueryOptions, QueryOrchestrator, create_query_orchestrator

cfg = Config()  # Fresh instance after dotenv loaded

logging.basicConfig(
    level=getattr(logging, cfg.log_level.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)

# Globals
_graph: Neo4jGraph = None
_llm: BaseLLMClient = None
_orchestrator: QueryOrchestrator = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    global _graph, _llm, _orchestrator

    print("\n" + "="*50)
    print("  KGQA Startup")
    print("="*50 + "\n")

    _graph = Neo4jGraph(cfg.neo4j_uri, cfg.neo4j_username, cfg.neo4j_password, cfg.neo4j_database)
    if cfg.is_graph_configured():
        await _graph.connect()
    if _graph.available:
        print(f"  Neo4j: connected ({cfg.neo4j_uri})")
    elif cfg.is_graph_configured():
        print(f"  Neo4j: unavailable at {cfg.neo4j_uri}")
    else:
        print("  Neo4j: not configured (set NEO4J_PASSWORD in .env)")

    api_key = cfg.anthropic_api_key if cfg.llm_provider == "claude" else (
        cfg.openai_api_key if cfg.llm_provider == "openai" else None
    )
    _llm = create_llm_client(
        provider=cfg.llm_provider,
        api_key=api_key or None,
        model=cfg.llm_model or None,
        temperature=cfg.llm_temperature,
    )
    if _llm.available:
        print(f"  LLM: {_llm.provider} ({_llm.config.model})")
    else:
        print("  LLM: disabled (no provider key)")

    _orchestrator = create_query_orchestrator(_graph, llm=_llm, config=cfg)
    stages = _orchestrator.get_stats()["stages"]
    for name, enabled in stages.items():
        print(f"    - {name}: {'enabled' if enabled else 'disabled'}")

    mode = "FULL" if _llm.available else "LITE"
    print("\n" + "="*50)
    print(f"  KGQA Running in {mode} MODE")
    print("="*50)
    if mode == "LITE":
        print("  (Add ANTHROPIC_API_KEY or OPENAI_API_KEY to .env for LLM stages)")
    print(f"\n  API: http://localhost:8000")
    print(f"  Docs: http://localhost:8000/docs\n")

    yield

    # Shutdown
    await _orchestrator.aclose()
    await _llm.close()
    await _graph.close()


app = FastAPI(title="KGQA", version="0.1.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Sanitized global exception handler - never exposes internal details."""
    logger.error(f"Unhandled exception: {exc}", exc_info=True)

    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error": {
                "code": "INTERNAL_SERVER_ERROR",
                "message": "An unexpected error occurred. Please try again later."
            }
        },
        headers={"Access-Control-Allow-Origin": "*"}
    )


def _not_ready() -> JSONResponse:
    return JSONResponse(
        status_code=503,
        content={"success": False, "error": "Query orchestrator not initialized"},
    )


class QueryOptionsModel(BaseModel):
    skip_cache: bool = False
    skip_templates: bool = False
    skip_nlp: bool = False
    skip_direct_translate: bool = False
    skip_schema_qa: bool = False
    max_retries: int | None = Field(default=None, ge=0, le=5)
    domain: str | None = None  # recipe, technical, process


class QueryRequest(BaseModel):
    query: str = Field(..., min_length=1, max_length=500)
    strategy: str | None = None  # template-first, progressive, hybrid-parallel, direct-external
    options: QueryOptionsModel | None = None


@app.post("/api/graphrag/query")
async def graphrag_query(req: QueryRequest):
    if _orchestrator is None:
        return _not_ready()
    opts = req.options or QueryOptionsModel()
    options = QueryOptions(force_strategy=req.strategy, **opts.model_dump())
    result = await _orchestrator.process_query(req.query, options)
    return result.to_dict()


@app.get("/api/graphrag/metrics")
async def graphrag_metrics():
    if _orchestrator is None:
        return _not_ready()
    return _orchestrator.get_metrics()


@app.delete("/api/graphrag/cache")
async def graphrag_clear_cache():
    if _orchestrator is None:
        return _not_ready()
    _orchestrator.clear_cache()
    return {"status": "cleared"}


@app.get("/api/graphrag/patterns")
async def graphrag_patterns():
    if _orchestrator is None:
        return _not_ready()
    return {"patterns": _orchestrator.available_patterns()}


@app.get("/api/health")
async def health():
    """Health check with mode status"""
    llm_ok = _llm.available if _llm else False
    return {
        "status": "healthy",
        "mode": "FULL" if llm_ok else "LITE",
        "neo4j": _graph.available if _graph else False,
        "llm": _llm.get_info() if _llm else None,
        "orchestrator": _orchestrator.get_stats() if _orchestrator else None,
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
