# sphyra/db/models/studio/service.py
from sqlmodel import SQLModel, Field
import uuid

class Service(SQLModel, table=True):
    __tablename__ = "services"
    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    name: str = Field(max_length=200)
    duration: int = Field(default=60)  # minutes
    price: float = Field(default=0.0)
