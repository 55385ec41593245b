"""Fake sessions for CPU-based testing.

Produce deterministic output from plain numpy arithmetic, allowing reliable
unit tests of the model adapter without model files or onnxruntime.
"""

from collections.abc import Callable, Iterable, Mapping, Sequence
from pathlib import Path

import numpy as np

from lstm_stt.errors import ContractViolation, EngineError, ModelConfigError


class FakeSession:
    """Deterministic in-memory session.

    Computes its outputs with a numpy function over the ordered inputs. This
    allows exercising everything above the engine boundary without onnxruntime.
    """

    def __init__(
        self,
        input_names: Sequence[str],
        output_names: Sequence[str],
        fn: Callable[..., Sequence[np.ndarray]],
        metadata: Mapping[str, str] | None = None,
    ):
        """Initialize the fake session.

        Args:
            input_names: Declared input names, in graph order.
            output_names: Declared output names, in graph order.
            fn: Called with the inputs positionally; returns one array per
                declared output.
            metadata: Custom metadata map.
        """
        self._input_names = list(input_names)
        self._output_names = list(output_names)
        self._fn = fn
        self._metadata = dict(metadata or {})
        self._call_count = 0
        self.fail_with: str | None = None

    @property
    def input_names(self) -> list[str]:
        return list(self._input_names)

    @property
    def output_names(self) -> list[str]:
        return list(self._output_names)

    @property
    def metadata(self) -> dict[str, str]:
        return dict(self._metadata)

    @property
    def call_count(self) -> int:
        """Number of run calls made."""
        return self._call_count

    def run(
        self,
        inputs: Sequence[np.ndarray],
        output_names: Sequence[str] | None = None,
    ) -> list[np.ndarray]:
        if len(inputs) != len(self._input_names):
            raise ContractViolation(
                f"expected {len(self._input_names)} inputs, got {len(inputs)}"
            )

        self._call_count += 1
        if self.fail_with is not None:
            raise EngineError(self.fail_with)

        results = dict(zip(self._output_names, self._fn(*inputs)))
        fetch = self._output_names if output_names is None else output_names
        return [results[name] for name in fetch]


class FakeTransducer:
    """Builds the three fake sessions of an LSTM transducer.

    Acts as a SessionLoader: the role of a requested file is picked from its
    name ("encoder", "decoder" or "joiner" must appear in it). The encoder
    treats every batch row independently, so batched and per-stream calls
    give identical results.
    """

    def __init__(
        self,
        num_encoder_layers: int = 2,
        d_model: int = 4,
        rnn_hidden_size: int = 8,
        vocab_size: int = 500,
        context_size: int = 2,
        T: int = 9,
        decode_chunk_len: int = 4,
        drop_keys: Iterable[str] = (),
        overrides: Mapping[str, str] | None = None,
    ):
        self.num_encoder_layers = num_encoder_layers
        self.d_model = d_model
        self.rnn_hidden_size = rnn_hidden_size
        self.vocab_size = vocab_size
        self.context_size = context_size

        encoder_meta = {
            "model_type": "lstm",
            "num_encoder_layers": str(num_encoder_layers),
            "T": str(T),
            "decode_chunk_len": str(decode_chunk_len),
            "rnn_hidden_size": str(rnn_hidden_size),
            "d_model": str(d_model),
        }
        decoder_meta = {
            "vocab_size": str(vocab_size),
            "context_size": str(context_size),
        }
        for meta in (encoder_meta, decoder_meta):
            for key in drop_keys:
                meta.pop(key, None)
            for key, value in (overrides or {}).items():
                if key in meta:
                    meta[key] = value

        self.encoder = FakeSession(
            ["x", "h", "c"],
            ["encoder_out", "next_h", "next_c"],
            self._encode,
            encoder_meta,
        )
        self.decoder = FakeSession(["y"], ["decoder_out"], self._decode, decoder_meta)
        self.joiner = FakeSession(
            ["encoder_out", "decoder_out"], ["logit"], self._join, {}
        )
        self.loaded: list[tuple[str, int, str]] = []

    def __call__(self, path: Path, *, num_threads: int, provider: str) -> FakeSession:
        name = Path(path).name
        for role in ("encoder", "decoder", "joiner"):
            if role in name:
                self.loaded.append((role, num_threads, provider))
                return getattr(self, role)
        raise ModelConfigError(f"model file not found: {path}", path=path)

    def _encode(self, x: np.ndarray, h: np.ndarray, c: np.ndarray):
        # Per-row summary of the chunk; shape (N,)
        energy = x.mean(axis=(1, 2)).astype(np.float32)

        t_out = max(1, x.shape[1] // 2)
        frames = np.repeat(x[:, :t_out, :1], self.d_model, axis=2)
        encoder_out = (frames + h[-1][:, None, :]).astype(np.float32)

        next_h = np.tanh(h + energy[None, :, None]).astype(np.float32)
        next_c = (c + energy[None, :, None]).astype(np.float32)
        return encoder_out, next_h, next_c

    def _decode(self, y: np.ndarray):
        total = y.sum(axis=1, keepdims=True).astype(np.float32)
        return (np.repeat(total, self.d_model, axis=1) / self.vocab_size,)

    def _join(self, encoder_out: np.ndarray, decoder_out: np.ndarray):
        score = (encoder_out + decoder_out).sum(axis=-1, keepdims=True)
        ramp = np.linspace(-1.0, 1.0, self.vocab_size, dtype=np.float32)
        return ((score * ramp).astype(np.float32),)
