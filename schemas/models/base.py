"""
Shared base for the gateway's MongoDB documents.

Documents are plain pydantic models: ``from_mongo`` validates what pymongo
returns, ``to_mongo`` produces the dict handed to insert_one. ``_id`` lives on
the model as ``id``.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from bson import ObjectId
from pydantic import BaseModel, ConfigDict, Field, GetCoreSchemaHandler, field_validator
from pydantic_core import core_schema

from shared.datetime_utils import ensure_utc


class PyObjectId(ObjectId):
    """ObjectId field type; accepts an ObjectId or its 24-char hex form, dumps as str."""

    @classmethod
    def __get_pydantic_core_schema__(
        cls, source_type: Any, handler: GetCoreSchemaHandler
    ) -> core_schema.CoreSchema:
        return core_schema.no_info_plain_validator_function(
            cls._validate,
            serialization=core_schema.to_string_ser_schema(when_used="json"),
        )

    @classmethod
    def _validate(cls, v: Any) -> ObjectId:
        if isinstance(v, ObjectId):
            return v
        if isinstance(v, str) and ObjectId.is_valid(v):
            return ObjectId(v)
        raise ValueError(f"Invalid ObjectId: {v!r}")


class MongoBaseModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, arbitrary_types_allowed=True)

    id: Optional[PyObjectId] = Field(default=None, alias="_id")

    @field_validator("*", mode="after")
    @classmethod
    def _datetimes_to_utc(cls, v: Any) -> Any:
        # Naive values come back from clients opened without tz_aware
        if isinstance(v, datetime):
            return ensure_utc(v)
        return v

    def to_mongo(self, *, exclude_none: bool = False) -> dict:
        """Dump for insert_one. An unset ``_id`` is left out so the server assigns one."""
        data = self.model_dump(by_alias=True, exclude_none=exclude_none)
        if data.get("_id") is None:
            data.pop("_id", None)
        return data

    @classmethod
    def from_mongo(cls, data: Optional[dict]) -> Optional["MongoBaseModel"]:
        """Validate a raw document; ``None`` (a find_one miss) passes through."""
        if data is None:
            return None
        return cls.model_validate(data)
