import asyncio
import logging
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import AUTOSAVE_INTERVAL, COLLECTIONS, DATA_DIR, LOG_LEVEL, NODE_ID, PORT
from .errors import Expired, Forbidden, NotFound, PersistenceFailure, StoreError, ValidationError
from .lifecycle import Autosaver
from .models import CommentIn, LikeIn, PollIn, PostIn, PostUpdateIn, ProfileIn, VoteIn
from .snapshots import SnapshotBackend
from .state import ContentStore

logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s %(message)s")
log = logging.getLogger("contentstore")

store = ContentStore(SnapshotBackend(DATA_DIR))
autosaver = Autosaver(store, AUTOSAVE_INTERVAL)
started_at = time.monotonic()

STATUS_CODES = {
    ValidationError: 400,
    Expired: 400,
    NotFound: 404,
    Forbidden: 403,
    PersistenceFailure: 500,
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: load snapshots, start autosave
    store.load()
    task = asyncio.create_task(autosaver.run())
    log.info("Content store %s ready, data in %s, autosave every %ss", NODE_ID, DATA_DIR, AUTOSAVE_INTERVAL)
    yield
    # Shutdown (uvicorn runs this on SIGINT/SIGTERM): one last flush
    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        pass
    autosaver.shutdown()


app = FastAPI(
    title=f"Social Content Store ({NODE_ID})",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(StoreError)
async def store_error_handler(request: Request, exc: StoreError):
    status_code = STATUS_CODES.get(type(exc), 500)
    return JSONResponse(status_code=status_code, content={"error": str(exc)})


@app.exception_handler(RequestValidationError)
async def request_error_handler(request: Request, exc: RequestValidationError):
    # same shape as ValidationError raised by the store
    problems = "; ".join(
        f"{'.'.join(str(part) for part in err['loc'][1:]) or 'body'}: {err['msg']}" for err in exc.errors()
    )
    return JSONResponse(status_code=400, content={"error": f"Invalid request: {problems}"})


# ----------- profiles -----------

@app.get("/profiles")
def list_profiles():
    return [p.model_dump() for p in store.list_profiles()]


@app.get("/profiles/{address}")
def get_profile(address: str):
    return store.get_profile(address).model_dump()


@app.post("/profiles/{address}")
def upsert_profile(address: str, body: ProfileIn):
    profile = store.upsert_profile(address, **body.model_dump())
    return {"success": True, "profile": profile.model_dump()}


# ----------- posts -----------

@app.get("/posts")
def get_posts():
    return [p.model_dump() for p in store.get_posts()]


@app.post("/posts")
def create_post(body: PostIn):
    post = store.create_post(
        body.id,
        body.content,
        body.author,
        photo=body.photo,
        timestamp=body.timestamp,
        tx_hash=body.tx_hash,
        block_number=body.block_number,
    )
    return {"success": True, "post": post.model_dump()}


@app.get("/posts/{post_id}")
def get_post(post_id: str):
    return store.get_post(post_id).model_dump()


@app.patch("/posts/{post_id}")
def update_post(post_id: str, body: PostUpdateIn):
    post = store.update_post(post_id, body.user, body.content)
    return {"success": True, "message": "Post updated successfully", "post": post.model_dump()}


@app.delete("/posts/{post_id}")
def delete_post(post_id: str, user: str = ""):
    store.delete_post(post_id, user)
    return {"success": True}


@app.post("/posts/{post_id}/like")
def toggle_like(post_id: str, body: LikeIn):
    result = store.toggle_like(post_id, body.user)
    return {"success": True, "likes": result.likes, "user_has_liked": result.liked}


@app.get("/posts/{post_id}/comments")
def get_comments(post_id: str):
    return [c.model_dump() for c in store.get_comments(post_id)]


@app.post("/posts/{post_id}/comments")
def add_comment(post_id: str, body: CommentIn):
    comment = store.add_comment(
        post_id,
        body.author,
        body.text,
        comment_id=body.id,
        timestamp=body.timestamp,
    )
    return {"success": True, "comment": comment.model_dump()}


# ----------- polls -----------

@app.get("/polls")
def get_polls():
    return [p.model_dump() for p in store.get_polls()]


@app.post("/polls")
def create_poll(body: PollIn):
    poll = store.create_poll(
        body.question,
        body.options,
        body.author,
        duration_hours=body.duration,
        poll_id=body.id,
        end_time=body.end_time,
        timestamp=body.timestamp,
        tx_hash=body.tx_hash,
    )
    return {"success": True, "poll": poll.model_dump()}


@app.get("/polls/{poll_id}")
def get_poll(poll_id: str):
    return store.get_poll(poll_id).model_dump()


@app.post("/polls/{poll_id}/vote")
def vote(poll_id: str, body: VoteIn):
    poll = store.vote(poll_id, body.user, body.option_id)
    return {"success": True, "poll": poll.model_dump(), "message": "Vote recorded successfully"}


@app.delete("/polls/{poll_id}")
def delete_poll(poll_id: str, user: str = ""):
    store.delete_poll(poll_id, user)
    return {"success": True}


# ----------- utilities -----------

@app.get("/health")
def health():
    return {
        "status": "healthy",
        "node": NODE_ID,
        "timestamp": time.time(),
        "uptime": round(time.monotonic() - started_at, 2),
        "data": store.counts(),
        "storage": {
            "directory": str(store.backend.data_dir),
            "files": store.backend.describe(COLLECTIONS),
        },
    }


@app.get("/stats")
def stats():
    return store.stats()


@app.post("/backup")
def backup():
    path = store.backup()
    return {"success": True, "backup_file": str(path), "total_data": store.counts()}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("contentstore.main:app", host="0.0.0.0", port=PORT, log_level=LOG_LEVEL.lower())
