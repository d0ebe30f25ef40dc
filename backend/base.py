from datetime import datetime
from sqlalchemy.orm import declarative_base

class DictMixin:
    """
    Mixin providing a standardized dictionary serialization for SQLAlchemy models.

    Datetime columns are rendered as ISO-8601 strings so the result can be
    passed straight to jsonify.
    """
    def to_dict(self):
        out = {}
        for c in self.__table__.columns:
            value = getattr(self, c.key)
            out[c.key] = value.isoformat() if isinstance(value, datetime) else value
        return out

Base = declarative_base(cls=DictMixin)
