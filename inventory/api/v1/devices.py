from urllib.parse import quote

from fastapi import APIRouter, Depends, HTTPException, Response
from sqlalchemy.ext.asyncio import AsyncSession

from inventory.core.config import settings
from inventory.core.database import get_db
from inventory.core.security import get_current_user_id
from inventory.schemas.device import DeviceSubmission, DeviceUpsertResponse
from inventory.services.change_log import list_changes
from inventory.services.device_queries import (
    get_attachment_file,
    get_device_info,
    list_column_definitions,
    list_recent_devices,
)
from inventory.services.device_upsert import set_device_deleted, upsert_device

router = APIRouter(prefix="/devices", tags=["devices"], dependencies=[Depends(get_current_user_id)])


@router.get("/columns")
async def get_columns(db: AsyncSession = Depends(get_db)):
    return await list_column_definitions(db)


@router.get("/recent/{count}")
async def get_recent_entries(count: int, db: AsyncSession = Depends(get_db)):
    if count < 1 or count > settings.RECENT_DEVICES_MAX:
        raise HTTPException(status_code=400, detail="The count is out of range.")
    return {
        "columnDefinitions": await list_column_definitions(db),
        "deviceResults": await list_recent_devices(db, count),
    }


@router.post("/add", response_model=DeviceUpsertResponse, response_model_by_alias=True)
async def create_device(
    submission: DeviceSubmission,
    db: AsyncSession = Depends(get_db),
    user_id: int = Depends(get_current_user_id),
):
    device_id = await upsert_device(db, None, submission, user_id)
    return DeviceUpsertResponse(device_id=device_id)


@router.get("/{device_id}")
async def get_device(device_id: str, db: AsyncSession = Depends(get_db)):
    return await get_device_info(db, device_id)


@router.post("/{device_id}", response_model=DeviceUpsertResponse, response_model_by_alias=True)
async def update_device(
    device_id: str,
    submission: DeviceSubmission,
    db: AsyncSession = Depends(get_db),
    user_id: int = Depends(get_current_user_id),
):
    device_id = await upsert_device(db, device_id, submission, user_id)
    return DeviceUpsertResponse(device_id=device_id)


@router.post("/{device_id}/delete")
async def delete_device(
    device_id: str,
    db: AsyncSession = Depends(get_db),
    user_id: int = Depends(get_current_user_id),
):
    await set_device_deleted(db, device_id, True, user_id)
    return {"status": "ok"}


@router.post("/{device_id}/restore")
async def restore_device(
    device_id: str,
    db: AsyncSession = Depends(get_db),
    user_id: int = Depends(get_current_user_id),
):
    diff = await set_device_deleted(db, device_id, False, user_id)
    return {"status": "ok" if diff is not None else "unchanged"}


@router.get("/{device_id}/changes")
async def get_device_changes(device_id: str, db: AsyncSession = Depends(get_db)):
    entries = await list_changes(db, device_id)
    return {"total": len(entries), "items": [entry.to_dict() for entry in entries]}


@router.get("/{device_id}/attachments/{attachment_id:path}")
async def download_attachment(device_id: str, attachment_id: str, db: AsyncSession = Depends(get_db)):
    file_name, file_data = await get_attachment_file(db, device_id, attachment_id)
    return Response(
        content=file_data,
        media_type="application/octet-stream",
        headers={"Content-Disposition": f"attachment; filename*=UTF-8''{quote(file_name)}"},
    )
