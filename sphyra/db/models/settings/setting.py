# sphyra/db/models/settings/setting.py
from sqlmodel import SQLModel, Field
from datetime import datetime

class Setting(SQLModel, table=True):
    __tablename__ = "settings"
    key: str = Field(primary_key=True, max_length=100)
    value: str  # JSON encoded
    updated_at: datetime = Field(default_factory=datetime.utcnow)
