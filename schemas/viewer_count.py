"""
Viewer Count Schemas

Request/response models for the local viewer-count endpoint that the
browser extension posts to and reads from.
"""

from datetime import datetime
from typing import Annotated, Optional, Union

from pydantic import AllowInfNan, BaseModel, ConfigDict, Field, StrictFloat, StrictInt

FiniteFloat = Annotated[StrictFloat, AllowInfNan(False)]


class ViewerCountUpdate(BaseModel):
    """
    Body of ``POST /api/viewer-count``

    ``viewerCount`` must be a JSON number; strings, booleans and
    non-finite floats are rejected.
    """

    model_config = ConfigDict(populate_by_name=True)

    viewer_count: Union[StrictInt, FiniteFloat] = Field(
        ..., alias="viewerCount", description="Current concurrent viewers"
    )


class ViewerCountResponse(BaseModel):
    """Body of ``GET /api/viewer-count``. Both fields are null until the first update."""

    model_config = ConfigDict(populate_by_name=True)

    viewer_count: Optional[Union[StrictInt, StrictFloat]] = Field(None, alias="viewerCount")
    updated_at: Optional[datetime] = Field(None, alias="updatedAt")


class ErrorResponse(BaseModel):
    error: str
