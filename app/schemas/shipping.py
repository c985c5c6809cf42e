"""
Shipping Schemas

Request bodies for the fulfillment endpoints. Responses use the
{"ok": ..., "data" | "error": ...} envelope built in the routes.
"""
from typing import Optional
from pydantic import BaseModel, Field


class AssignAwbRequest(BaseModel):
    """Optional courier pin; Shiprocket picks the recommended courier when omitted."""
    courier_id: Optional[int] = Field(None, gt=0)
