"""Streaming LSTM transducer model runner."""

from lstm_stt.config import ModelConfig
from lstm_stt.errors import (
    ContractViolation,
    EngineError,
    MetadataError,
    ModelConfigError,
    StateConsumedError,
    TransducerError,
)
from lstm_stt.model import LstmTransducerModel
from lstm_stt.state import EncoderState, stack_states, unstack_states

__all__ = [
    "ModelConfig",
    "LstmTransducerModel",
    "EncoderState",
    "stack_states",
    "unstack_states",
    "TransducerError",
    "ModelConfigError",
    "MetadataError",
    "ContractViolation",
    "StateConsumedError",
    "EngineError",
]
