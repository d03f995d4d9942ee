"""Intent parsing and contact book endpoints."""

from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, HTTPException, Path as PathParam
from pydantic import BaseModel, Field

from api.services import get_contacts, get_intent

router = APIRouter(prefix="/api/intent", tags=["intent"])


class ParseRequest(BaseModel):
    message: str = Field(..., min_length=1)
    userId: Optional[str] = None


class ContactRequest(BaseModel):
    key: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    address: str = Field(..., pattern=r"^0x[a-fA-F0-9]{40}$")
    type: str = "friend"
    category: str = "personal"


class ContactUpdate(BaseModel):
    name: Optional[str] = None
    address: Optional[str] = Field(None, pattern=r"^0x[a-fA-F0-9]{40}$")
    type: Optional[str] = None
    category: Optional[str] = None


@router.post("/parse")
async def parse_intent(request: ParseRequest) -> dict[str, Any]:
    return {"success": True, "data": await get_intent().parse_intent(request.message, request.userId)}


@router.get("/contacts-tokens")
async def contacts_and_tokens() -> dict[str, Any]:
    return {"success": True, "data": get_intent().get_contacts_and_tokens_data()}


@router.post("/contacts", status_code=201)
async def add_contact(request: ContactRequest) -> dict[str, Any]:
    contact = request.model_dump(exclude={"key"})
    if not get_contacts().add_contact(request.key, contact):
        raise HTTPException(status_code=500, detail="Failed to save contact")
    return {"success": True, "data": {"key": request.key.lower(), **contact}}


@router.put("/contacts/{key}")
async def update_contact(request: ContactUpdate, key: str = PathParam(..., min_length=1)) -> dict[str, Any]:
    contacts = get_contacts()
    if not contacts.update_contact(key, request.model_dump()):
        raise HTTPException(status_code=404, detail=f"Contact {key} not found")
    return {"success": True, "data": contacts.resolve_contact(key)}


@router.delete("/contacts/{key}")
async def delete_contact(key: str = PathParam(..., min_length=1)) -> dict[str, Any]:
    if not get_contacts().delete_contact(key):
        raise HTTPException(status_code=404, detail=f"Contact {key} not found")
    return {"success": True, "deleted": key.lower()}
