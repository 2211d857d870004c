from pydantic import BaseModel, ConfigDict, Field


class Record(BaseModel):
    """Metadata for one tracked cache object.

    Only ``on_disk`` ever changes after insertion, and that happens in the
    store, so instances handed out to callers are immutable snapshots.
    """

    model_config = ConfigDict(frozen=True)

    id: int
    priority: int
    hash: str = Field(min_length=1)
    size: int = Field(ge=0)
    on_disk: bool

    @classmethod
    def from_row(cls, row: tuple) -> "Record":
        id_, priority, hash_, size, on_disk = row
        return cls(id=id_, priority=priority, hash=hash_, size=size, on_disk=bool(on_disk))
