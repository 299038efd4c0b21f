from pydantic import BaseModel, Field, ConfigDict
from datetime import datetime
from typing import Optional, List

class ClipBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    is_public: bool = False
    description: Optional[str] = Field(default=None, max_length=2048)

class ClipCreate(ClipBase):
    pass

class ClipUpdate(BaseModel):
    # Fields left out of the request body are not touched
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    is_public: Optional[bool] = None
    description: Optional[str] = Field(default=None, max_length=2048)

class Clip(ClipBase):
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    created_at: datetime
    last_clipped_at: Optional[datetime] = None

class ClipNoteAdd(BaseModel):
    note_id: str = Field(..., min_length=1, max_length=32)

class ClipNotes(BaseModel):
    clip_id: str
    note_ids: List[str]

class ErrorDetail(BaseModel):
    code: str
    message: str

class ErrorResponse(BaseModel):
    error: ErrorDetail
