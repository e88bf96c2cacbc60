# sphyra/db/models/studio/staff.py
from sqlmodel import SQLModel, Field
from typing import Optional
import uuid

class Staff(SQLModel, table=True):
    __tablename__ = "staff"
    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    first_name: str = Field(max_length=100)
    last_name: str = Field(max_length=100)
    email: Optional[str] = Field(default=None, max_length=255)
