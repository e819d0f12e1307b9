"""
Sheets Router — read, save and delete entry sheets.

Save and delete respond as soon as the database transaction settles;
blobs the change left unreferenced are reclaimed in a background task.
"""

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Path, Query

from api.deps import get_current_user, get_reclaimer, get_sheet_service
from media.blob_store import BlobStoreError
from media.reclaimer import OrphanBlobReclaimer
from media.validation import MediaValidationError
from sheets.repository import SheetPersistenceError
from sheets.schemas import SaveSheetRequest, Sheet, SheetListResponse
from sheets.service import (
    SheetAccessDenied,
    SheetNotFound,
    SheetSaveRejected,
    SheetService,
    can_access_manufacturer,
    is_admin,
)

router = APIRouter(prefix="/api/v1/sheets", tags=["sheets"])


# ─── Endpoints ──────────────────────────────────────────────────────────────


@router.get("/", response_model=SheetListResponse)
async def list_sheets(
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    service: SheetService = Depends(get_sheet_service),
    user: dict = Depends(get_current_user),
):
    """List sheets: every sheet for admins, own manufacturer for staff."""
    if is_admin(user):
        page = await service.repository.find_all(limit=limit, offset=offset)
    else:
        page = await service.repository.find_by_manufacturer(
            user.get("manufacturer_name", ""), limit=limit, offset=offset
        )
    return SheetListResponse(items=page.sheets, has_more=page.has_more)


@router.get("/{sheet_id}", response_model=Sheet)
async def get_sheet(
    sheet_id: str,
    service: SheetService = Depends(get_sheet_service),
    user: dict = Depends(get_current_user),
):
    """Get a single sheet by ID."""
    sheet = await service.repository.find_by_id(sheet_id)
    if sheet is None or not can_access_manufacturer(user, sheet.manufacturer_name):
        raise HTTPException(status_code=404, detail="Sheet not found")
    return sheet


@router.put("/{sheet_id}", response_model=Sheet)
async def save_sheet(
    body: SaveSheetRequest,
    background_tasks: BackgroundTasks,
    sheet_id: str = Path(..., max_length=64),
    service: SheetService = Depends(get_sheet_service),
    reclaimer: OrphanBlobReclaimer = Depends(get_reclaimer),
    user: dict = Depends(get_current_user),
):
    """Create or fully replace a sheet."""
    if body.sheet is None:
        raise HTTPException(status_code=400, detail="sheet is required")

    try:
        result = await service.save(sheet_id, body.sheet, user)
    except MediaValidationError as exc:
        raise HTTPException(status_code=400, detail={"reason": exc.reason.value, "message": str(exc)})
    except SheetSaveRejected as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    except SheetAccessDenied as exc:
        raise HTTPException(status_code=403, detail=str(exc))
    except BlobStoreError:
        raise HTTPException(status_code=502, detail="Media upload failed")
    except SheetPersistenceError:
        raise HTTPException(status_code=500, detail="Failed to save sheet")

    previous = [result.previous] if result.previous else []
    background_tasks.add_task(reclaimer.reclaim, previous, [result.sheet])
    return result.sheet


@router.delete("/{sheet_id}", status_code=204)
async def delete_sheet(
    sheet_id: str,
    background_tasks: BackgroundTasks,
    service: SheetService = Depends(get_sheet_service),
    reclaimer: OrphanBlobReclaimer = Depends(get_reclaimer),
    user: dict = Depends(get_current_user),
):
    """Delete a sheet and, afterwards, its managed blobs."""
    try:
        deleted = await service.delete(sheet_id, user)
    except SheetNotFound:
        raise HTTPException(status_code=404, detail="Sheet not found")
    except SheetAccessDenied as exc:
        raise HTTPException(status_code=403, detail=str(exc))
    except SheetPersistenceError:
        raise HTTPException(status_code=500, detail="Failed to delete sheet")

    background_tasks.add_task(reclaimer.reclaim, [deleted], [])
