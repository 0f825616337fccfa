"""
API models and schemas for the FastAPI application.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


# Fields persisted by a book update; anything else in the body is dropped.
BOOK_FIELDS = (
    "book_name",
    "book_quantity",
    "author_name",
    "category",
    "rating",
    "description",
    "photo",
)


class BookUpdate(BaseModel):
    """Request body for replacing a book's fields."""
    model_config = ConfigDict(extra="ignore")

    book_name: Optional[str] = Field(None, description="Book title")
    book_quantity: Optional[int] = Field(None, description="Copies held")
    author_name: Optional[str] = Field(None, description="Author name")
    category: Optional[str] = Field(None, description="Category name, free form")
    rating: Optional[Union[int, float]] = Field(None, description="Book rating")
    description: Optional[str] = Field(None, description="Book description")
    photo: Optional[str] = Field(None, description="Cover image URL")

    def to_document(self) -> Dict[str, Any]:
        """Return all seven fields, absent ones as None."""
        return {name: getattr(self, name) for name in BOOK_FIELDS}


class InsertResponse(BaseModel):
    """Acknowledgment of an insert."""
    model_config = ConfigDict(populate_by_name=True)

    acknowledged: bool = Field(..., description="Whether the write was acknowledged")
    inserted_id: str = Field(..., alias="insertedId", description="Identifier of the new document")


class UpdateResponse(BaseModel):
    """Acknowledgment of an update with upsert."""
    model_config = ConfigDict(populate_by_name=True)

    acknowledged: bool = Field(..., description="Whether the write was acknowledged")
    matched_count: int = Field(..., alias="matchedCount", description="Documents matched by the filter")
    modified_count: int = Field(..., alias="modifiedCount", description="Documents modified")
    upserted_count: int = Field(..., alias="upsertedCount", description="Documents created by the upsert")
    upserted_id: Optional[str] = Field(None, alias="upsertedId", description="Identifier of the created document")


class DeleteResponse(BaseModel):
    """Acknowledgment of a delete."""
    model_config = ConfigDict(populate_by_name=True)

    acknowledged: bool = Field(..., description="Whether the write was acknowledged")
    deleted_count: int = Field(..., alias="deletedCount", description="Documents deleted")


class SuccessResponse(BaseModel):
    """Plain success flag."""
    success: bool = Field(True, description="Whether the operation succeeded")


class ErrorResponse(BaseModel):
    """Error response model."""
    error: str = Field(..., description="Error message")
    detail: Optional[str] = Field(None, description="Additional error details")
    status_code: int = Field(..., description="HTTP status code")
    errors: Optional[List[Dict[str, Any]]] = Field(None, description="Field-level validation errors")


class HealthResponse(BaseModel):
    """Health check response model."""
    status: str = Field(..., description="Service status")
    timestamp: datetime = Field(..., description="Current timestamp")
    version: str = Field(..., description="API version")
    database_status: str = Field(..., description="Database connection status")
