from typing import Optional

from pydantic import BaseModel


class OpenViewRequest(BaseModel):
    view: str


class SessionRequest(BaseModel):
    session_id: str


class RenderRequest(BaseModel):
    session_id: str
    search: Optional[str] = None
    status: Optional[str] = None


class SelectRequest(BaseModel):
    session_id: str
    record_id: str
