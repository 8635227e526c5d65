from pydantic import BaseModel, ConfigDict, Field

# Bump whenever TrailerDescriptor or ResolutionResult changes shape.
CACHE_SCHEMA_VERSION = 4


class TrailerDescriptor(BaseModel):
    model_config = ConfigDict(frozen=True)

    url: str
    provider: str
    quality: str | None = None


class ResolutionResult(BaseModel):
    title: str
    links: list[TrailerDescriptor] = Field(default_factory=list)


class CachedResolution(BaseModel):
    schema_version: int
    result: ResolutionResult
