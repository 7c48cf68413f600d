"""
REST API routes for submissions.

Endpoints:
    GET  /api/items/            — List all items, newest first
    POST /api/items/            — Register items and append them to the queue
    PUT  /api/items/{item_id}   — Rename an item
"""

from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field, field_validator
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_session
from services import show_service

item_router = APIRouter()


# ---------------------------------------------------------------------------
# Request / Response Models
# ---------------------------------------------------------------------------

def _non_blank(name: str) -> str:
    if not name.strip():
        raise ValueError("name must not be blank")
    return name.strip()


class ItemCreateRequest(BaseModel):
    names: List[str] = Field(..., min_length=1)

    @field_validator("names")
    @classmethod
    def names_not_blank(cls, names: List[str]) -> List[str]:
        return [_non_blank(n) for n in names]


class ItemRenameRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, name: str) -> str:
        return _non_blank(name)


class ItemResponse(BaseModel):
    id: str
    name: str
    status: str
    created_at: Optional[str] = None


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@item_router.get("/items/", response_model=List[ItemResponse])
async def list_items(session: AsyncSession = Depends(get_session)):
    items = await show_service.list_items(session)
    return [item.to_dict() for item in items]


@item_router.post("/items/", response_model=List[ItemResponse], status_code=201)
async def register_items(
    request: ItemCreateRequest,
    session: AsyncSession = Depends(get_session),
):
    """Stand-in for the upload pipeline: one queued item per name."""
    items = await show_service.register_items(session, request.names)
    return [item.to_dict() for item in items]


@item_router.put("/items/{item_id}", response_model=ItemResponse)
async def rename_item(
    item_id: str,
    request: ItemRenameRequest,
    session: AsyncSession = Depends(get_session),
):
    item = await show_service.rename_item(session, item_id, request.name)
    return item.to_dict()
