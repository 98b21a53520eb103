import enum
from decimal import Decimal
from sqlalchemy.orm import class_mapper

def sqlalchemy_to_dict(obj):
    """Convert a SQLAlchemy object to a JSON-friendly dictionary."""
    if not obj:
        return None
    mapper = class_mapper(obj.__class__)
    result = {}
    for c in mapper.columns:
        value = getattr(obj, c.key)
        # Convert datetime objects to ISO format strings
        if hasattr(value, 'isoformat'):
            value = value.isoformat()
        # Convert Decimal objects to strings so no precision is lost
        elif isinstance(value, Decimal):
            value = str(value)
        # Convert enum types to their stored value
        elif isinstance(value, enum.Enum):
            value = value.value
        result[c.key] = value
    return result

__all__ = ['sqlalchemy_to_dict']
