# oauth_core/clients_admin/models.py
from pydantic import BaseModel, Field


class CleanupResponse(BaseModel):
    deleted: int = Field(description="Number of expired or stale rows removed.")
