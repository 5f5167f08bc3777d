"""Reference data models (read-only lookups)."""

from typing import Optional
from pydantic import BaseModel, Field


class Tag(BaseModel):
    """Activity tag."""
    id: str = Field(..., description="Tag ID")
    name: str = Field(..., description="Unique tag name")
    color: Optional[str] = Field(None, description="Display color, e.g. #65FF81")


class Category(BaseModel):
    """Activity category."""
    id: str = Field(..., description="Category ID")
    name: str = Field(..., description="Unique category name")
    icon: Optional[str] = Field(None, description="Emoji or icon URL")
    description: Optional[str] = None
