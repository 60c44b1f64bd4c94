"""Domain errors raised by services and rendered by the HTTP layer.

Every error carries the HTTP status it maps to, so routes can simply let
them propagate to the handler registered in ``create_app``.
"""


class SkorbordError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self):
        return {'error': self.message}


class ValidationError(SkorbordError):
    """Malformed input or a reference to an entity outside the request's scope."""
    status_code = 400


class RangeViolation(ValidationError):
    """A score would leave the configured bounds; the whole batch is rejected."""

    def __init__(self, attempted: int, min_score: int, max_score: int, player_id=None):
        super().__init__(
            f'Score must be between {min_score} and {max_score}. Attempted score: {attempted}'
        )
        self.attempted = attempted
        self.min_score = min_score
        self.max_score = max_score
        self.player_id = player_id

    def to_dict(self):
        data = super().to_dict()
        data.update({
            'attempted_score': self.attempted,
            'min_score': self.min_score,
            'max_score': self.max_score,
            'player_id': self.player_id,
        })
        return data


class NotFoundError(SkorbordError):
    status_code = 404

    def __init__(self, message: str = 'Resource not found'):
        super().__init__(message)


class ConflictError(SkorbordError):
    """Mutation of a finalized game, or a duplicate entity."""
    status_code = 409
