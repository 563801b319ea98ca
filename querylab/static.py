"""Hosting for the two prebuilt single-page lab front ends."""
from pathlib import Path

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import FileResponse, RedirectResponse

router = APIRouter()

SEARCH_LAB = "search-lab"
SQL_LAB = "sql-to-query-api-lab"


def _build_dir(request: Request, lab: str) -> Path:
    settings = request.app.state.settings
    return Path(settings.search_lab_build if lab == SEARCH_LAB else settings.sql_lab_build)


def resolve_asset(build_dir: Path, path: str) -> Path:
    """File under build_dir for `path`, falling back to index.html (SPA routing)."""
    root = build_dir.resolve()
    relative = path.lstrip("/")
    if relative:
        candidate = (root / relative).resolve()
        if candidate.is_file() and root in candidate.parents:
            return candidate
    index = root / "index.html"
    if not index.is_file():
        raise HTTPException(status_code=404, detail="Not Found")
    return index


@router.get("/")
async def root():
    return RedirectResponse(url=f"/{SEARCH_LAB}")


@router.get("/search-lab{path:path}")
async def search_lab(request: Request, path: str = ""):
    return FileResponse(resolve_asset(_build_dir(request, SEARCH_LAB), path))


@router.get("/sql-to-query-api-lab{path:path}")
async def sql_lab(request: Request, path: str = ""):
    return FileResponse(resolve_asset(_build_dir(request, SQL_LAB), path))


@router.get("/{path:path}")
async def fallback(request: Request, path: str):
    return FileResponse(resolve_asset(_build_dir(request, SEARCH_LAB), ""))
