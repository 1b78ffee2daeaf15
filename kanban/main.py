from datetime import datetime, timezone
from typing import Any, Optional

from fastapi import Body, Depends, FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from .config import Settings, configure_logging
from .errors import Invalid, NotFound, StorageError
from .store import TreeStore, open_store
from .validation import parse_create


# === Helpers ===


def get_store(request: Request) -> TreeStore:
    return request.app.state.store


def not_found() -> JSONResponse:
    return JSONResponse(status_code=404, content={"error": "Board not found"})


def invalid(result: Invalid) -> JSONResponse:
    return JSONResponse(
        status_code=400,
        content={"error": "Invalid request data", "details": result.as_dict()},
    )


def create_app(store: Optional[TreeStore] = None, settings: Optional[Settings] = None) -> FastAPI:
    """Build the API around ``store``.

    Without an explicit store one is opened from ``settings`` (or the
    environment), e.g. ``uvicorn --factory kanban.main:create_app``.
    """
    if store is None:
        settings = settings or Settings.from_env()
        configure_logging(settings.log_level)
        store = open_store(settings.database_url, echo=settings.sql_echo)

    app = FastAPI(title="Kanban API", version="1.0.0")
    app.state.store = store

    @app.exception_handler(RequestValidationError)
    def request_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"error": "Invalid request data"})

    @app.exception_handler(StorageError)
    def storage_error(request: Request, exc: StorageError) -> JSONResponse:
        return JSONResponse(status_code=500, content={"error": "Internal server error"})

    # === Health ===

    @app.get("/health")
    def health() -> dict:
        return {"status": "ok", "timestamp": datetime.now(timezone.utc).isoformat()}

    # === Board endpoints ===

    @app.post("/api/boards", status_code=201)
    def create_board(payload: Any = Body(default=None), store: TreeStore = Depends(get_store)):
        parsed = parse_create(payload)
        if isinstance(parsed, Invalid):
            return invalid(parsed)
        board = store.create_board(parsed.value.title)
        if isinstance(board, Invalid):
            return invalid(board)
        return {"data": board}

    @app.get("/api/boards/{board_id}")
    def get_board(board_id: str, store: TreeStore = Depends(get_store)):
        tree = store.fetch_full_tree(board_id)
        if tree is None:
            return not_found()
        return {"data": tree}

    @app.put("/api/boards/{board_id}", status_code=204)
    def replace_board(
        board_id: str,
        payload: Any = Body(default=None),
        store: TreeStore = Depends(get_store),
    ):
        # unknown boards answer 404 whatever the body looks like
        if not store.board_exists(board_id):
            return not_found()
        result = store.replace_full_tree(board_id, payload)
        if isinstance(result, NotFound):
            return not_found()
        if isinstance(result, Invalid):
            return invalid(result)
        return Response(status_code=204)

    @app.delete("/api/boards/{board_id}", status_code=204)
    def delete_board(board_id: str, store: TreeStore = Depends(get_store)):
        if not store.delete_board(board_id):
            return not_found()
        return Response(status_code=204)

    return app
