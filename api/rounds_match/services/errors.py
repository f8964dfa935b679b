class MatchingError(Exception):
    pass


class InvalidConfigurationError(MatchingError):
    pass


class SnapshotUnavailableError(MatchingError):
    pass


class RunInProgressError(MatchingError):
    def __init__(self, active_batch_id: str | None, message: str | None = None) -> None:
        self.active_batch_id = active_batch_id
        super().__init__(message or f"Matching run already in progress (batch_id={active_batch_id})")


class RunTimeoutError(MatchingError):
    pass


class RolloverMismatchError(MatchingError):
    pass
