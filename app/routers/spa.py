from pathlib import Path

from fastapi import APIRouter, HTTPException, Request, status
from fastapi.responses import FileResponse

router = APIRouter(include_in_schema=False)


def _api_not_found() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail="API endpoint not found"
    )


@router.api_route("/api", methods=["GET", "POST", "PUT", "PATCH", "DELETE"])
@router.api_route("/api/{rest:path}", methods=["GET", "POST", "PUT", "PATCH", "DELETE"])
async def api_fallback(rest: str = ""):
    """
    Unknown API paths get a JSON 404 instead of the client application
    """
    raise _api_not_found()


@router.get("/{full_path:path}")
async def serve_client(full_path: str, request: Request):
    """
    Serves files of the built client, and its entry document for any other path
    so client-side routes survive a reload
    """
    dist = Path(request.app.state.settings.client_dist_dir).resolve()

    if full_path:
        candidate = (dist / full_path).resolve()
        if candidate.is_relative_to(dist) and candidate.is_file():
            return FileResponse(candidate)

    index = dist / "index.html"
    if index.is_file():
        return FileResponse(index)

    raise HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail="Client application not built"
    )
