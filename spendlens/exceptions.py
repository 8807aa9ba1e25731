# spendlens/exceptions.py


class SpendLensError(RuntimeError):
    """Base class for errors reported to the user by the CLI and web app."""


class ImporterError(SpendLensError):
    """Raised when a bank export cannot be matched to or parsed by an importer."""


class ClassifierError(SpendLensError):
    """Raised when a classifier cannot run (missing model, missing API key...)."""


class DataNotFoundError(SpendLensError, FileNotFoundError):
    """Raised when an expected data file or directory does not exist."""
