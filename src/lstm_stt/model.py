"""Streaming LSTM transducer model adapter.

Composes the encoder, decoder and joiner sessions of an exported LSTM
transducer (icefall lstm_transducer_stateless2) and exposes the step
operations a streaming decoding loop drives, once per feature chunk:

    state = model.get_encoder_init_states()
    encoder_out, state = model.run_encoder(features, state)
    decoder_out = model.run_decoder(model.build_decoder_input(hyp))
    logits = model.run_joiner(encoder_out[:, t], decoder_out)

The sessions are stateless between calls; the only state threaded through is
the EncoderState value the caller passes in and gets back.
"""

import logging
from collections.abc import Sequence

import numpy as np

from lstm_stt.config import ModelConfig
from lstm_stt.constants import (
    DECODER_ARITY,
    DECODER_META_KEYS,
    ENCODER_ARITY,
    ENCODER_META_KEYS,
    JOINER_ARITY,
    META_CONTEXT_SIZE,
    META_D_MODEL,
    META_DECODE_CHUNK_LEN,
    META_NUM_ENCODER_LAYERS,
    META_RNN_HIDDEN_SIZE,
    META_T,
    META_VOCAB_SIZE,
)
from lstm_stt.engine.onnx_runtime import load_onnx_session
from lstm_stt.engine.protocol import Session, SessionLoader
from lstm_stt.errors import ContractViolation, ModelConfigError
from lstm_stt.metadata import log_metadata, read_hyperparameters
from lstm_stt.state import EncoderState, stack_states, unstack_states

logger = logging.getLogger(__name__)


class LstmTransducerModel:
    """Encoder/decoder/joiner triple of a streaming LSTM transducer.

    Construction either yields a fully configured model or raises
    ModelConfigError; there is no partially loaded state.
    """

    def __init__(self, config: ModelConfig, loader: SessionLoader = load_onnx_session):
        """Load the three sessions and read their hyperparameters.

        Args:
            config: Model paths and session options.
            loader: Loads one file into a Session. The config's thread count
                and provider are passed to every call.

        Raises:
            ModelConfigError: If a file cannot be loaded or a session does not
                declare the expected inputs/outputs.
            MetadataError: If a required metadata key is missing or invalid.
        """
        self._config = config
        self._loader = loader

        self._encoder = self._load("encoder", ENCODER_ARITY)
        encoder_params = read_hyperparameters(self._encoder.metadata, ENCODER_META_KEYS)
        self._num_encoder_layers = encoder_params[META_NUM_ENCODER_LAYERS]
        self._T = encoder_params[META_T]
        self._decode_chunk_len = encoder_params[META_DECODE_CHUNK_LEN]
        self._rnn_hidden_size = encoder_params[META_RNN_HIDDEN_SIZE]
        self._d_model = encoder_params[META_D_MODEL]

        self._decoder = self._load("decoder", DECODER_ARITY)
        decoder_params = read_hyperparameters(self._decoder.metadata, DECODER_META_KEYS)
        self._vocab_size = decoder_params[META_VOCAB_SIZE]
        self._context_size = decoder_params[META_CONTEXT_SIZE]

        self._joiner = self._load("joiner", JOINER_ARITY)

        logger.info(
            "LSTM transducer ready: layers=%d d_model=%d rnn_hidden=%d T=%d "
            "chunk_len=%d vocab=%d context=%d",
            self._num_encoder_layers,
            self._d_model,
            self._rnn_hidden_size,
            self._T,
            self._decode_chunk_len,
            self._vocab_size,
            self._context_size,
        )

    def _load(self, role: str, arity: tuple[int, int]) -> Session:
        path = self._config.model_path(role)
        session = self._loader(
            path,
            num_threads=self._config.num_threads,
            provider=self._config.provider,
        )

        num_inputs, min_outputs = arity
        if len(session.input_names) != num_inputs:
            raise ModelConfigError(
                f"{role} must declare {num_inputs} inputs, got {session.input_names}",
                path=path,
            )
        if len(session.output_names) < min_outputs:
            raise ModelConfigError(
                f"{role} must declare at least {min_outputs} outputs, "
                f"got {session.output_names}",
                path=path,
            )

        if self._config.debug:
            log_metadata(session.metadata, role)
        return session

    @property
    def config(self) -> ModelConfig:
        return self._config

    @property
    def num_encoder_layers(self) -> int:
        return self._num_encoder_layers

    @property
    def d_model(self) -> int:
        return self._d_model

    @property
    def rnn_hidden_size(self) -> int:
        return self._rnn_hidden_size

    @property
    def vocab_size(self) -> int:
        return self._vocab_size

    @property
    def context_size(self) -> int:
        return self._context_size

    @property
    def T(self) -> int:
        return self._T

    @property
    def decode_chunk_len(self) -> int:
        return self._decode_chunk_len

    @property
    def chunk_size(self) -> int:
        """Feature frames fed to the encoder per call (including right context)."""
        return self._T

    @property
    def chunk_shift(self) -> int:
        """Feature frames a stream advances after each encoder call."""
        return self._decode_chunk_len

    @property
    def encoder_input_names(self) -> list[str]:
        return self._encoder.input_names

    @property
    def encoder_output_names(self) -> list[str]:
        return self._encoder.output_names

    @property
    def decoder_input_names(self) -> list[str]:
        return self._decoder.input_names

    @property
    def decoder_output_names(self) -> list[str]:
        return self._decoder.output_names

    @property
    def joiner_input_names(self) -> list[str]:
        return self._joiner.input_names

    @property
    def joiner_output_names(self) -> list[str]:
        return self._joiner.output_names

    def get_encoder_init_states(self) -> EncoderState:
        """Zero state for a new stream (batch size 1)."""
        return EncoderState.zeros(
            self._num_encoder_layers,
            self._d_model,
            self._rnn_hidden_size,
        )

    def run_encoder(
        self, features: np.ndarray, state: EncoderState
    ) -> tuple[np.ndarray, EncoderState]:
        """Run one encoder step.

        Args:
            features: Float features of shape [N, chunk_size, feature_dim].
            state: Current state with batch size N. Consumed by this call,
                even if the engine fails.

        Returns:
            (encoder_out, next_state). next_state is the only valid successor
            of ``state``.

        Raises:
            ContractViolation: If shapes do not match the model or each other.
                The state is left untouched in that case.
            StateConsumedError: If ``state`` was already consumed.
            EngineError: If the encoder session fails.
        """
        features = self.check_encoder_inputs(features, state)

        h, c = state.take()
        outputs = self._encoder.run([features, h, c])

        encoder_out, next_h, next_c = outputs[0], outputs[1], outputs[2]
        return encoder_out, EncoderState(next_h, next_c)

    def check_encoder_inputs(self, features: np.ndarray, state: EncoderState) -> np.ndarray:
        """Validate an encoder step without running it or consuming the state.

        Returns:
            The features as float32.

        Raises:
            ContractViolation: If features or state do not fit this model or
                each other.
            StateConsumedError: If ``state`` was already consumed.
        """
        features = self._check_features(features)
        self._check_state(state)
        if features.shape[0] != state.batch_size:
            raise ContractViolation(
                f"features batch {features.shape[0]} != state batch {state.batch_size}"
            )
        return features

    def build_decoder_input(self, hyp: Sequence[int]) -> np.ndarray:
        """Slice the last context_size tokens of a hypothesis.

        Returns:
            int64 array of shape [1, context_size].

        Raises:
            ContractViolation: If the hypothesis is shorter than context_size.
        """
        return self.build_decoder_input_batch([hyp])

    def build_decoder_input_batch(self, hyps: Sequence[Sequence[int]]) -> np.ndarray:
        """Decoder input for several hypotheses, shape [N, context_size]."""
        if not hyps:
            raise ContractViolation("no hypotheses given")

        rows = []
        for i, hyp in enumerate(hyps):
            if len(hyp) < self._context_size:
                raise ContractViolation(
                    f"hypothesis {i} has {len(hyp)} tokens, "
                    f"need at least context_size={self._context_size}"
                )
            rows.append(list(hyp[len(hyp) - self._context_size :]))
        return np.array(rows, dtype=np.int64)

    def run_decoder(self, decoder_input: np.ndarray) -> np.ndarray:
        """Run the decoder on a [N, context_size] token tensor."""
        decoder_input = np.asarray(decoder_input)
        if decoder_input.ndim != 2 or decoder_input.shape[1] != self._context_size:
            raise ContractViolation(
                f"decoder input must be [N, {self._context_size}], got {decoder_input.shape}"
            )
        if not np.issubdtype(decoder_input.dtype, np.integer):
            raise ContractViolation(
                f"decoder input must hold integer token ids, got {decoder_input.dtype}"
            )

        return self._decoder.run([decoder_input.astype(np.int64, copy=False)])[0]

    def run_joiner(self, encoder_out: np.ndarray, decoder_out: np.ndarray) -> np.ndarray:
        """Combine one encoder frame and a decoder output into vocabulary logits."""
        if encoder_out.ndim < 2 or decoder_out.ndim < 2:
            raise ContractViolation(
                f"joiner inputs must be at least 2-D, got {encoder_out.shape} "
                f"and {decoder_out.shape}"
            )
        if encoder_out.shape[0] != decoder_out.shape[0]:
            raise ContractViolation(
                f"joiner batch mismatch: encoder {encoder_out.shape[0]}, "
                f"decoder {decoder_out.shape[0]}"
            )

        return self._joiner.run([encoder_out, decoder_out])[0]

    def stack_states(self, states: Sequence[EncoderState]) -> EncoderState:
        """Stack per-stream states; stream i maps to batch index i."""
        for state in states:
            self._check_state(state)
        return stack_states(states)

    def unstack_states(self, state: EncoderState) -> list[EncoderState]:
        """Split a batched state into batch-1 states (consumes ``state``)."""
        self._check_state(state)
        return unstack_states(state)

    def _check_features(self, features: np.ndarray) -> np.ndarray:
        features = np.asarray(features)
        if features.ndim != 3:
            raise ContractViolation(
                f"features must be [N, T, feature_dim], got {features.shape}"
            )
        if features.shape[1] != self._T:
            raise ContractViolation(
                f"features chunk has {features.shape[1]} frames, model expects {self._T}"
            )
        if not np.issubdtype(features.dtype, np.floating):
            raise ContractViolation(f"features must be floating point, got {features.dtype}")
        return features.astype(np.float32, copy=False)

    def _check_state(self, state: EncoderState) -> None:
        expected_h = (self._num_encoder_layers, self._d_model)
        expected_c = (self._num_encoder_layers, self._rnn_hidden_size)
        actual_h = (state.num_layers, state.hidden_dim)
        actual_c = (state.num_layers, state.cell_dim)
        if actual_h != expected_h or actual_c != expected_c:
            raise ContractViolation(
                f"state {state!r} does not match model "
                f"(layers={self._num_encoder_layers}, d_model={self._d_model}, "
                f"rnn_hidden_size={self._rnn_hidden_size})"
            )
