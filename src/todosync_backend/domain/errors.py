"""Sync error taxonomy.

- ``MutationError`` and subclasses fail a single mutation. The push loop
  records the failure and still consumes the mutation id.
- ``ProtocolViolationError`` aborts the whole push batch.
- ``ClientGroupAccessError`` rejects a push/pull made through a client group
  that belongs to someone else.
- Store failures are not wrapped; they propagate to the caller.
"""

from __future__ import annotations


class MutationError(Exception):
    """A mutation could not be applied; its effects are dropped."""


class AuthorizationError(MutationError):
    pass


class EntityNotFoundError(MutationError):
    pass


class EntityConflictError(MutationError):
    pass


class MutationArgsError(MutationError):
    pass


class ProtocolViolationError(Exception):
    pass


class ClientGroupAccessError(Exception):
    pass


class SchemaVersionError(RuntimeError):
    pass
