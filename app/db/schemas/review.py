from pydantic import BaseModel, ConfigDict, Field as PydanticField
from datetime import datetime
from typing import Optional


class ReviewBase(BaseModel):
    rating: int = PydanticField(..., ge=1, le=5)
    first_name: Optional[str] = PydanticField(None, max_length=255)
    last_name: Optional[str] = PydanticField(None, max_length=255)
    comment: Optional[str] = None


class ReviewCreate(ReviewBase):
    pass


class ReviewUpdate(ReviewBase):
    pass


class ReviewResponse(BaseModel):
    id: int
    product_id: int
    rating: int
    first_name: str = ""
    last_name: str = ""
    comment: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)
