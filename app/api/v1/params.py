from typing import Annotated

from fastapi import Path

# Primary keys are 32-bit INTEGER columns; larger ids are rejected as invalid.
MAX_ID = 2**31 - 1

ProductId = Annotated[int, Path(le=MAX_ID)]
ReviewId = Annotated[int, Path(le=MAX_ID)]
