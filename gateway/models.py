from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class NodeDescriptor(BaseModel):
    """One running gateway instance, as advertised to its peers.

    Equality is by full value. The JSON form is compact with the field
    order id, host, port, so equal descriptors serialize to identical
    strings and collapse to one registry member.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    host: str
    port: int = Field(ge=1, le=65535)

    def to_json(self) -> str:
        return self.model_dump_json()

    @classmethod
    def from_json(cls, raw: str) -> "NodeDescriptor":
        return cls.model_validate_json(raw)

    def same_endpoint(self, other: "NodeDescriptor") -> bool:
        return self.host == other.host and self.port == other.port


class Bucket(BaseModel):
    name: str
    size: int = 0
    created: Optional[datetime] = None
    modified: Optional[datetime] = None
    file_count: int = Field(default=0, serialization_alias="fileCount")


class ObjectInfo(BaseModel):
    name: str
    size: int
    created: datetime
    modified: datetime
    bucket: str


class UploadedFile(BaseModel):
    name: str
    original_name: str = Field(serialization_alias="originalName")
    size: int
    path: str
    bucket: str


# --- Request bodies ---

class CreateBucketRequest(BaseModel):
    name: str = ""


class NodeRegisterRequest(BaseModel):
    id: Optional[str] = None
    host: Optional[str] = None
    port: Optional[int] = Field(default=None, ge=1, le=65535)


@dataclass(frozen=True)
class BestEffort:
    """Outcome of an advisory coordination write.

    Callers log a failed result and carry on; it never aborts the local
    operation that triggered it.
    """

    ok: bool
    operation: str
    error: Optional[str] = None

    @classmethod
    def success(cls, operation: str) -> "BestEffort":
        return cls(ok=True, operation=operation)

    @classmethod
    def failure(cls, operation: str, error: BaseException) -> "BestEffort":
        return cls(ok=False, operation=operation, error=str(error))
