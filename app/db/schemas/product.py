from pydantic import BaseModel, ConfigDict, Field as PydanticField
from datetime import datetime
from typing import Optional


class ProductBase(BaseModel):
    name: str = PydanticField(..., min_length=1, max_length=255)
    description: Optional[str] = None
    price: float = PydanticField(..., gt=0)


class ProductCreate(ProductBase):
    pass


class ProductUpdate(ProductBase):
    pass


class ProductResponse(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    price: float
    average_rating: Optional[float] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)
