"""Errors raised by the game core.

Each carries the message sent to the client in the matching
``queue_error`` / ``game_error`` event.
"""


class GameError(Exception):
    default_message = 'Game error'

    def __init__(self, message=None):
        self.message = message or self.default_message
        super().__init__(self.message)


class AuthRequired(GameError):
    default_message = 'You must be authenticated'


class DuplicateEntry(GameError):
    default_message = 'You are already in the queue'


class UnknownSession(GameError):
    default_message = 'Game not found'


class PersistenceError(GameError):
    default_message = 'Failed to record match result'
