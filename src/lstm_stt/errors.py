"""Exceptions raised by the LSTM transducer runner.

Configuration errors are fatal for the model being loaded: no adapter is
returned and the caller (usually the CLI) decides whether to exit. Contract
violations and engine errors are recoverable at the discretion of the
decoding loop, e.g. by dropping the stream or retrying the chunk.
"""

from pathlib import Path


class TransducerError(Exception):
    """Base class for all errors raised by lstm_stt."""


class ModelConfigError(TransducerError):
    """A model cannot be loaded with the given configuration."""

    def __init__(self, message: str, path: str | Path | None = None):
        super().__init__(message)
        self.path = Path(path) if path is not None else None


class MetadataError(ModelConfigError):
    """A required metadata key is missing or holds an invalid value."""

    def __init__(self, key: str, value: str | None, reason: str):
        super().__init__(f"metadata key '{key}': {reason}")
        self.key = key
        self.value = value


class ContractViolation(TransducerError, ValueError):
    """The caller passed arguments that break a step operation's contract."""


class StateConsumedError(ContractViolation):
    """An encoder state was used after being moved into another call."""


class EngineError(TransducerError, RuntimeError):
    """The inference engine failed to execute a session."""
