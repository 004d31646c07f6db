"""Schemas for the one-off send endpoint."""

from typing import Optional

from app.schemas.base import BaseSchema


class SendRequest(BaseSchema):
    # checked by the endpoint, which reports every missing field in one 400
    instance_id: Optional[str] = None
    phone: Optional[str] = None
    text: Optional[str] = None

    def missing_fields(self) -> bool:
        return not (self.instance_id and self.phone and self.text)


class SendResponse(BaseSchema):
    ok: bool = True
    message: str = "Message sent successfully"
    to: str
    instance_id: str
