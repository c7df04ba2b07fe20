from fastapi import FastAPI, HTTPException, Depends, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from starlette.concurrency import run_in_threadpool
from pydantic import BaseModel
import logging
import uvicorn

from config import (
    WIKI_DATA_DIR,
    WIKI_ORIGIN_URI,
    WIKI_USER_NAME,
    WIKI_USER_EMAIL,
    WIKI_BRANCH,
    WIKI_SYNC_INTERVAL,
    WIKI_PUSH_ENABLED,
    WIKI_FETCH_TIMEOUT,
    WIKI_ENV,
    WIKI_LOG_LEVEL,
)
from storage import (
    ContentStore,
    Repository,
    Page,
    Upload,
    Outcome,
    InvalidNameException,
    ContentNotFoundException,
)
from sync import SyncManager

logger = logging.getLogger(__name__)


# Pydantic models for request/response
class PageUpdate(BaseModel):
    content: str = ""

class PageRename(BaseModel):
    new_name: str


# Create FastAPI app
app = FastAPI(
    title="Satellite Wiki Backend",
    description="Wiki whose pages and uploads live in a git working copy mirrored from a master repository",
    version="1.0.0"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # In production, specify actual frontend URLs
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def get_store(request: Request) -> ContentStore:
    store = getattr(request.app.state, "store", None)
    if store is None:
        raise HTTPException(status_code=503, detail="Content store not initialized")
    return store


# Startup event
@app.on_event("startup")
async def startup_event():
    """Open the working copy, sync once, then start the background sync loop"""
    repository = await run_in_threadpool(
        Repository.open_or_create,
        WIKI_DATA_DIR,
        WIKI_ORIGIN_URI,
        WIKI_USER_NAME,
        WIKI_USER_EMAIL,
        branch=WIKI_BRANCH,
        fetch_timeout=WIKI_FETCH_TIMEOUT,
    )
    store = ContentStore(repository, push_enabled=WIKI_PUSH_ENABLED)
    app.state.store = store
    logger.info(f"Wiki working copy loaded ({WIKI_DATA_DIR}, env={WIKI_ENV})")

    # First-served content reflects the latest remote state
    sync_manager = SyncManager(store, interval=WIKI_SYNC_INTERVAL)
    await run_in_threadpool(sync_manager.sync_once)
    await sync_manager.start()
    app.state.sync_manager = sync_manager

    logger.info(f"Found {len(store.list(Page))} pages, {len(store.list(Upload))} uploads")


@app.on_event("shutdown")
async def shutdown_event():
    """Stop the background sync loop"""
    sync_manager = getattr(app.state, "sync_manager", None)
    if sync_manager:
        await sync_manager.stop()


# Health check endpoint
@app.get("/health")
def health_check():
    """Health check endpoint"""
    return {"status": "healthy", "service": "satellite-wiki", "storage": "git"}


# API endpoints for pages
@app.get("/api/pages")
def list_pages(store: ContentStore = Depends(get_store)):
    """List page names, Home first"""
    return {"pages": [page.name for page in store.list(Page)]}

@app.get("/api/pages/{name}/history")
def get_page_history(name: str, limit: int = 50, store: ContentStore = Depends(get_store)):
    """Get commit history for a page"""
    try:
        return {"name": name, "history": store.history(Page, name, limit)}
    except ContentNotFoundException:
        raise HTTPException(status_code=404, detail=f"Page '{name}' not found")

@app.get("/api/pages/{name}")
def get_page(name: str, store: ContentStore = Depends(get_store)):
    """Get raw page content"""
    try:
        page = store.load(Page, name)
    except ContentNotFoundException:
        raise HTTPException(status_code=404, detail=f"Page '{name}' not found")
    return {"name": page.name, "content": page.body}

@app.put("/api/pages/{name}")
def save_page(name: str, page_data: PageUpdate, store: ContentStore = Depends(get_store)):
    """Create or update a page"""
    try:
        outcome = store.save(Page(name, page_data.content))
    except InvalidNameException as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"name": name, "modified": outcome is not Outcome.CONTENT_NOT_MODIFIED}

@app.post("/api/pages/{name}/rename")
def rename_page(name: str, data: PageRename, store: ContentStore = Depends(get_store)):
    """Rename a page"""
    try:
        page = store.rename(Page, name, data.new_name)
    except ContentNotFoundException:
        raise HTTPException(status_code=404, detail=f"Page '{name}' not found")
    except InvalidNameException as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"name": page.name}

@app.delete("/api/pages/{name}")
def delete_page(name: str, store: ContentStore = Depends(get_store)):
    """Delete a page"""
    try:
        store.delete(Page, name)
    except ContentNotFoundException:
        raise HTTPException(status_code=404, detail=f"Page '{name}' not found")
    return {"success": True, "name": name}


# API endpoints for uploads
@app.get("/api/uploads")
def list_uploads(store: ContentStore = Depends(get_store)):
    """List upload names"""
    return {"uploads": [upload.name for upload in store.list(Upload)]}

@app.get("/api/uploads/{name}")
def get_upload(name: str, store: ContentStore = Depends(get_store)):
    """Download an upload's raw bytes"""
    try:
        upload = store.load(Upload, name)
    except ContentNotFoundException:
        raise HTTPException(status_code=404, detail=f"Upload '{name}' not found")
    return Response(content=upload.body, media_type="application/octet-stream")

@app.put("/api/uploads/{name}")
async def save_upload(name: str, request: Request, store: ContentStore = Depends(get_store)):
    """Store the raw request body as an upload"""
    data = await request.body()
    try:
        outcome = await run_in_threadpool(store.save, Upload(name, data))
    except InvalidNameException as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"name": name, "modified": outcome is not Outcome.CONTENT_NOT_MODIFIED}

@app.delete("/api/uploads/{name}")
def delete_upload(name: str, store: ContentStore = Depends(get_store)):
    """Delete an upload"""
    try:
        store.delete(Upload, name)
    except ContentNotFoundException:
        raise HTTPException(status_code=404, detail=f"Upload '{name}' not found")
    return {"success": True, "name": name}


# Search and sync status
@app.get("/api/search")
def search_pages(q: str, store: ContentStore = Depends(get_store)):
    """Full-text search over pages"""
    results = store.search(q)
    return {
        "query": q,
        "results": [
            {"name": page.name, "matches": [{"line": num, "text": text} for num, text in hits]}
            for page, hits in results.items()
        ]
    }

@app.get("/api/conflicts")
def list_conflicts(store: ContentStore = Depends(get_store)):
    """Items still containing merge conflict markers"""
    return {"conflicts": [{"namespace": item.namespace, "name": item.name} for item in store.conflicts()]}

@app.get("/api/sync")
def sync_status(request: Request):
    """State and last outcome of the background sync"""
    sync_manager = getattr(request.app.state, "sync_manager", None)
    if sync_manager is None:
        return {"state": None, "last_outcome": None}
    last = sync_manager.last_result
    return {
        "state": sync_manager.state.value,
        "last_outcome": last.outcome.value if last else None,
        "message": last.message if last else None,
    }


if __name__ == "__main__":
    logging.basicConfig(
        level=WIKI_LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s"
    )
    uvicorn.run(app, host="0.0.0.0", port=8000)
