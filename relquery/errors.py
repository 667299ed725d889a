"""Typed errors raised by the query façade"""


class RelQueryError(Exception):
    """Base class for all façade errors"""


class NotFound(RelQueryError):
    """A singular lookup, update or delete target does not exist"""

    def __init__(self, model: str, entity_id: object):
        super().__init__(f"{model} with id {entity_id!r} not found")
        self.model = model
        self.entity_id = entity_id


class ReferentialViolation(RelQueryError):
    """A connect target is missing or a foreign key would dangle"""


class UniquenessViolation(RelQueryError):
    """A unique field collided on insert or update"""


class UnsupportedOperation(RelQueryError):
    """The backing store cannot guarantee the requested operation"""


class ValidationError(RelQueryError, ValueError):
    """Malformed filter, projection, patch or write descriptor"""
