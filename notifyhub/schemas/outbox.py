from pydantic import BaseModel, Field

class DrainOut(BaseModel):
    done: int
    sent: int

class OutboxStatusCount(BaseModel):
    status: str
    channel: str
    count: int

class OutboxStatsOut(BaseModel):
    totals: dict[str, int] = Field(default_factory=dict)
    by_channel: list[OutboxStatusCount] = Field(default_factory=list)
