"""Query error taxonomy.

Only three classes matter to the presence engine: a confident "not
registered" answer, a transient timeout, and everything else.
"""


class QueryError(Exception):
    """Base class for failures of a single presence lookup."""


class NotFoundError(QueryError):
    """The router has no host entry for the identity (confident absence)."""


class QueryTimeoutError(QueryError):
    """The endpoint did not answer in time."""


class OtherProtocolError(QueryError):
    """Any other failure talking to the endpoint."""
