import json
import logging
from datetime import datetime
from typing import Any, Dict, Iterable
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from .....db.models import Setting
from .....exceptions import StorageError
from .....application.ports.settings_repo import SettingsRepository

logger = logging.getLogger(__name__)


class SqlSettingsRepository(SettingsRepository):
    """Key/value settings, values stored as JSON text."""

    def __init__(self, engine: Engine):
        self.engine = engine

    def get_values(self, keys: Iterable[str]) -> Dict[str, Any]:
        with Session(self.engine) as session:
            rows = session.exec(select(Setting).where(Setting.key.in_(list(keys)))).all()
        values: Dict[str, Any] = {}
        for row in rows:
            try:
                values[row.key] = json.loads(row.value)
            except (TypeError, ValueError):
                logger.warning(f"Ignoring malformed value for setting {row.key!r}")
        return values

    def set_values(self, values: Dict[str, Any]) -> None:
        now = datetime.utcnow()
        with Session(self.engine) as session:
            for key, value in values.items():
                row = session.get(Setting, key)
                if row is None:
                    row = Setting(key=key, value=json.dumps(value), updated_at=now)
                else:
                    row.value = json.dumps(value)
                    row.updated_at = now
                session.add(row)
            try:
                session.commit()
            except SQLAlchemyError as e:
                session.rollback()
                logger.error(f"Error saving settings {sorted(values)}: {e}")
                raise StorageError("Error saving settings") from e
