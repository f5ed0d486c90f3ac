from pydantic import BaseModel, ConfigDict, Field


class StoreRegistration(BaseModel):
    username: str = Field(min_length=1)
    url: str = Field(min_length=1)
    store_name: str | None = None

    model_config = ConfigDict(extra="forbid")


class StoreSummary(BaseModel):
    id: str
    username: str
    url: str = ""
    name: str
    address: str
    rating: str
