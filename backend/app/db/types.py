import uuid
from sqlalchemy.types import TypeDecorator, CHAR, Integer
from sqlalchemy.dialects.postgresql import UUID as PGUUID


class GUID(TypeDecorator):
    """UUID column: native on PostgreSQL, CHAR(36) text on SQLite.

    Values always come back as ``uuid.UUID`` so ids compare equal whichever
    backend the session is bound to.
    """
    impl = CHAR
    cache_ok = True

    def __init__(self, as_uuid: bool = True):
        self.as_uuid = as_uuid
        super().__init__()

    def load_dialect_impl(self, dialect):
        if dialect.name == "postgresql":
            return dialect.type_descriptor(PGUUID(as_uuid=True))
        return dialect.type_descriptor(CHAR(36))

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if not isinstance(value, uuid.UUID):
            value = uuid.UUID(str(value))
        return value if dialect.name == "postgresql" else str(value)

    def process_result_value(self, value, dialect):
        if value is None or isinstance(value, uuid.UUID):
            return value
        return uuid.UUID(str(value))


class AuthLevelType(TypeDecorator):
    """Stores an AuthLevel as its ordinal integer.

    Unknown integers coming back from the database are clamped to the
    nearest defined tier so a bad row can never raise during a policy check.
    """
    impl = Integer
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return value
        return int(value)

    def process_result_value(self, value, dialect):
        from app.models.enums import AuthLevel

        if value is None:
            return AuthLevel.BASE_USER
        return AuthLevel.coerce(value)
