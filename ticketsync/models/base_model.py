from datetime import datetime, timezone
from typing import Optional, Dict, Any, Tuple

# Sorts before any real timestamp
EPOCH = datetime.min.replace(tzinfo=timezone.utc)


class BaseModel:
    # Row columns that hold timestamps
    DATETIME_FIELDS: Tuple[str, ...] = ("created_at", "updated_at")

    # Attributes populated locally that never go back to the database
    RELATED_FIELDS: Tuple[str, ...] = ()

    @staticmethod
    def parse_datetime(value: Any) -> Optional[datetime]:
        """Parse a Postgres/ISO timestamp into an aware UTC datetime."""
        if value is None or value == "":
            return None
        if isinstance(value, datetime):
            dt = value
        else:
            dt = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        return dt

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Optional["BaseModel"]:
        if not data:
            return None

        instance = cls()
        for key, value in data.items():
            if key in cls.RELATED_FIELDS or not hasattr(instance, key):
                continue

            if key in cls.DATETIME_FIELDS and value:
                try:
                    value = cls.parse_datetime(value)
                except (ValueError, TypeError):
                    pass

            setattr(instance, key, value)

        return instance

    def to_dict(self) -> Dict[str, Any]:
        result = {}
        for attr_name, attr_value in self.__dict__.items():
            if attr_name.startswith('_') or attr_name in self.RELATED_FIELDS:
                continue

            # Convert datetime to ISO string
            if isinstance(attr_value, datetime):
                attr_value = attr_value.isoformat()

            result[attr_name] = attr_value

        return result

    @staticmethod
    def timestamp_or_epoch(dt: Optional[datetime]) -> datetime:
        """Comparable timestamp; missing values sort first."""
        if not isinstance(dt, datetime):
            return EPOCH
        if dt.tzinfo is None:
            return dt.replace(tzinfo=timezone.utc)
        return dt

    def __repr__(self) -> str:
        return f"{type(self).__name__}(id={getattr(self, 'id', None)!r})"
