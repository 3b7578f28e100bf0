import fastapi
from fastapi import FastAPI, HTTPException, Query
from fastapi.concurrency import asynccontextmanager
from pydantic import BaseModel, Field
import logging
import uvicorn

from config import DEFAULT_CONCURRENCY, DEFAULT_DURATION_S
from database import init_database
from netbench.engine import compare_sessions, run_benchmark
from netbench.errors import PersistenceError, SessionLaunchError, SessionNotFoundError
from netbench.store import SessionStore

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_database()
    yield

app = fastapi.FastAPI(lifespan=lifespan)


class RunRequest(BaseModel):
    duration_s: float = Field(DEFAULT_DURATION_S, gt=0)  # session time budget
    concurrency: int = Field(DEFAULT_CONCURRENCY, ge=1)  # parallel bandwidth streams
    comprehensive: bool = True  # also collect upload and interface stats


# Plain def: runs in the threadpool since a session blocks for its whole budget
@app.post("/sessions")
def create_session(req: RunRequest):
    try:
        report = run_benchmark(req.duration_s, req.concurrency, req.comprehensive)
    except SessionLaunchError as e:
        raise HTTPException(status_code=503, detail=str(e))
    except PersistenceError as e:
        if e.report is None:
            raise HTTPException(status_code=500, detail=str(e))
        return {"report": e.report.to_dict(), "persisted": False}
    return {"report": report.to_dict(), "persisted": True}


@app.get("/sessions")
def list_sessions(limit: int = Query(20, ge=1, le=500)):
    return {"sessions": SessionStore().list_sessions(limit)}


@app.get("/sessions/{session_id}")
def get_session(session_id: str):
    try:
        return SessionStore().load(session_id).to_dict()
    except SessionNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@app.get("/compare")
def compare(before: str, after: str):
    try:
        return {"performance_comparison": compare_sessions(before, after).to_dict()}
    except SessionNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=8000)
