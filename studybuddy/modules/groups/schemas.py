from pydantic import BaseModel
from typing import Optional
from datetime import datetime


class GroupCreate(BaseModel):
    name: str


class GroupJoin(BaseModel):
    code: str


class GroupResponse(BaseModel):
    id: str
    name: str
    code: str
    created_by: str
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True

