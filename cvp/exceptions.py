from sklearn.exceptions import NotFittedError


class EmptyDatasetError(ValueError):
    """Raised when training is requested on a dataset without rows."""


class UntrainedModelError(NotFittedError):
    """Raised when predicting without a trained forest."""


class TrainingCancelledError(RuntimeError):
    """Raised when a cancel signal is observed between tree batches."""


class MissingColumnsError(ValueError):
    def __init__(self, missing: list[str]) -> None:
        self.missing = list(missing)
        super().__init__(f"Missing columns: {', '.join(self.missing)}")


class RemoteSyncError(RuntimeError):
    """Raised when fetching from or uploading to the remote model file fails."""
