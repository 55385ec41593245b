"""Recurrent encoder state for streaming LSTM transducers.

The state of a stream is the LSTM (hidden, cell) pair, shaped
``[num_layers, batch, d_model]`` and ``[num_layers, batch, rnn_hidden_size]``.
A state is a single-owner value: passing it to an encoder step consumes it,
and the step returns a fresh successor.
"""

from collections.abc import Iterator, Sequence

import numpy as np

from lstm_stt.constants import NUM_STATE_TENSORS
from lstm_stt.errors import ContractViolation, StateConsumedError

BATCH_AXIS = 1


class EncoderState:
    """The (hidden, cell) pair carried between encoder calls."""

    __slots__ = ("_h", "_c", "_consumed")

    def __init__(self, h: np.ndarray, c: np.ndarray):
        if h.ndim != 3 or c.ndim != 3:
            raise ContractViolation(
                f"state tensors must be 3-D, got hidden {h.shape} and cell {c.shape}"
            )
        if h.shape[:2] != c.shape[:2]:
            raise ContractViolation(
                f"hidden {h.shape} and cell {c.shape} disagree on layers/batch"
            )
        self._h = h
        self._c = c
        self._consumed = False

    @classmethod
    def zeros(
        cls,
        num_layers: int,
        d_model: int,
        rnn_hidden_size: int,
        batch_size: int = 1,
    ) -> "EncoderState":
        """Zero-filled float32 state."""
        h = np.zeros((num_layers, batch_size, d_model), dtype=np.float32)
        c = np.zeros((num_layers, batch_size, rnn_hidden_size), dtype=np.float32)
        return cls(h, c)

    @property
    def consumed(self) -> bool:
        return self._consumed

    @property
    def h(self) -> np.ndarray:
        """Hidden state, [num_layers, batch, d_model]."""
        self._check_alive()
        return self._h

    @property
    def c(self) -> np.ndarray:
        """Cell state, [num_layers, batch, rnn_hidden_size]."""
        self._check_alive()
        return self._c

    @property
    def num_layers(self) -> int:
        return self.h.shape[0]

    @property
    def batch_size(self) -> int:
        return self.h.shape[BATCH_AXIS]

    @property
    def hidden_dim(self) -> int:
        return self.h.shape[2]

    @property
    def cell_dim(self) -> int:
        return self.c.shape[2]

    def take(self) -> tuple[np.ndarray, np.ndarray]:
        """Move the tensors out, leaving this state consumed."""
        self._check_alive()
        self._consumed = True
        h, c = self._h, self._c
        self._h = self._c = None
        return h, c

    def copy(self) -> "EncoderState":
        return EncoderState(self.h.copy(), self.c.copy())

    def __len__(self) -> int:
        return NUM_STATE_TENSORS

    def __iter__(self) -> Iterator[np.ndarray]:
        yield self.h
        yield self.c

    def __repr__(self) -> str:
        if self._consumed:
            return "EncoderState(<consumed>)"
        return f"EncoderState(h={self._h.shape}, c={self._c.shape})"

    def _check_alive(self) -> None:
        if self._consumed:
            raise StateConsumedError("encoder state was already consumed by a previous call")


def stack_states(states: Sequence[EncoderState]) -> EncoderState:
    """Stack per-stream states into one batched state.

    State ``i`` occupies batch index ``i`` (or a contiguous run of indices if
    it is itself batched). The inputs are read, not consumed.

    Raises:
        ContractViolation: If the list is empty or the states disagree on
            layer count or widths.
    """
    if not states:
        raise ContractViolation("cannot stack an empty list of states")

    first = states[0]
    for i, state in enumerate(states[1:], start=1):
        if (state.num_layers, state.hidden_dim, state.cell_dim) != (
            first.num_layers,
            first.hidden_dim,
            first.cell_dim,
        ):
            raise ContractViolation(
                f"state {i} {state!r} does not match state 0 {first!r}"
            )

    h = np.concatenate([s.h for s in states], axis=BATCH_AXIS)
    c = np.concatenate([s.c for s in states], axis=BATCH_AXIS)
    return EncoderState(h, c)


def unstack_states(state: EncoderState) -> list[EncoderState]:
    """Split a batched state into batch-1 states, consuming it.

    Each returned state owns a contiguous copy of its slice.
    """
    h, c = state.take()
    return [
        EncoderState(
            h[:, i : i + 1, :].copy(),
            c[:, i : i + 1, :].copy(),
        )
        for i in range(h.shape[BATCH_AXIS])
    ]
