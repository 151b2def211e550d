from typing import Any

from pydantic import BaseModel, Field


class OptionValue(BaseModel):
    value: Any = None


class OptionOut(BaseModel):
    key: str = Field(..., min_length=1, max_length=100)
    value: Any = None
    stored: bool = True
