from __future__ import annotations

from typing import Annotated, Any

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field

from portal.api.dependencies import cached_service, require_session, require_user_type
from portal.services.resources import FeatureFlagService

router = APIRouter(tags=["feature-flags"])

Flags = Annotated[FeatureFlagService, Depends(cached_service(FeatureFlagService))]

_admin = [Depends(require_user_type("admin"))]


class FeatureFlagIn(BaseModel):
    key: str = Field(min_length=2, pattern=r"^[a-zA-Z0-9_.-]+$")
    value: bool = False
    description: str = ""


class ToggleIn(BaseModel):
    value: bool


@router.get("/admin/feature-flags", dependencies=_admin)
async def list_flags(flags: Flags) -> list[dict]:
    return await flags.list({"type": "system"})


@router.post("/admin/feature-flags", status_code=status.HTTP_201_CREATED, dependencies=_admin)
async def create_flag(payload: FeatureFlagIn, flags: Flags) -> dict:
    return await flags.create(payload.model_dump())


@router.get("/admin/feature-flags/{flag_id}", dependencies=_admin)
async def get_flag(flag_id: str, flags: Flags) -> dict:
    return await flags.get(flag_id)


@router.put("/admin/feature-flags/{flag_id}", dependencies=_admin)
async def update_flag(flag_id: str, payload: FeatureFlagIn, flags: Flags) -> dict:
    return await flags.update(flag_id, payload.model_dump())


@router.patch("/admin/feature-flags/{flag_id}/toggle", dependencies=_admin)
async def toggle_flag(flag_id: str, payload: ToggleIn, flags: Flags) -> dict:
    return await flags.toggle(flag_id, payload.value)


@router.delete("/admin/feature-flags/{flag_id}", dependencies=_admin)
async def delete_flag(flag_id: str, flags: Flags) -> Any:
    return await flags.delete(flag_id)


@router.get("/feature-flags/enabled", dependencies=[Depends(require_session)])
async def enabled_flags(flags: Flags) -> list[dict]:
    return await flags.client_enabled()
