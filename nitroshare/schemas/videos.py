from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class UploadOut(_CamelModel):
    message: str = "Video uploaded successfully"
    filename: str = Field(..., description="Stored, timestamp-derived file name.")
    size: int = Field(..., ge=0, description="Stored size in bytes.")
    video_url: str = Field(..., alias="videoUrl", description="Direct URL of the raw video.")
    share_url: str = Field(..., alias="shareUrl", description="Public share page URL.")
    upload_time: datetime = Field(..., alias="uploadTime")


class VideoOut(_CamelModel):
    filename: str
    upload_time: datetime = Field(..., alias="uploadTime", description="Canonical upload time (retention clock).")
    size: int = Field(..., ge=0)
    media_type: str = Field(..., alias="mediaType")
    video_url: str = Field(..., alias="videoUrl")
    share_url: str = Field(..., alias="shareUrl")


class MessageOut(BaseModel):
    message: str


class HealthOut(BaseModel):
    status: str
    timestamp: datetime
