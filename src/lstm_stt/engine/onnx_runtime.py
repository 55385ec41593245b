"""Session wrapper around onnxruntime.InferenceSession."""

import logging
from collections.abc import Sequence
from pathlib import Path

import numpy as np
import onnxruntime as ort

from lstm_stt.constants import DEFAULT_NUM_THREADS, DEFAULT_PROVIDER, PROVIDERS
from lstm_stt.errors import ContractViolation, EngineError, ModelConfigError

logger = logging.getLogger(__name__)


class OnnxSession:
    """A loaded ONNX graph with its ordered names and metadata.

    Names and metadata are read once at construction; run() is safe to call
    from several threads as onnxruntime sessions are.
    """

    def __init__(self, session: ort.InferenceSession, path: Path | None = None):
        self._session = session
        self._path = path
        self._input_names = [node.name for node in session.get_inputs()]
        self._output_names = [node.name for node in session.get_outputs()]
        self._metadata = dict(session.get_modelmeta().custom_metadata_map)

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
    def path(self) -> Path | None:
        return self._path

    def run(
        self,
        inputs: Sequence[np.ndarray],
        output_names: Sequence[str] | None = None,
    ) -> list[np.ndarray]:
        """Run the graph with inputs ordered like input_names."""
        if len(inputs) != len(self._input_names):
            raise ContractViolation(
                f"{self._describe()} expects {len(self._input_names)} inputs "
                f"{self._input_names}, got {len(inputs)}"
            )

        fetch = list(self._output_names if output_names is None else output_names)
        feed = dict(zip(self._input_names, inputs))

        try:
            outputs = self._session.run(fetch, feed)
        except Exception as e:
            raise EngineError(f"{self._describe()} failed: {e}") from e

        return list(outputs)

    def _describe(self) -> str:
        return f"session {self._path.name}" if self._path else "session"


def load_onnx_session(
    path: str | Path,
    *,
    num_threads: int = DEFAULT_NUM_THREADS,
    provider: str = DEFAULT_PROVIDER,
) -> OnnxSession:
    """Load one ONNX file into a session.

    Args:
        path: Model file.
        num_threads: Used for both intra-op and inter-op parallelism.
        provider: Key into PROVIDERS ("cpu", "cuda", "coreml").

    Returns:
        An OnnxSession.

    Raises:
        ModelConfigError: If the file is missing, the provider is unknown, or
            onnxruntime cannot load the file.
    """
    path = Path(path)
    if not path.is_file():
        raise ModelConfigError(f"model file not found: {path}", path=path)
    if provider not in PROVIDERS:
        raise ModelConfigError(f"unknown provider {provider!r}", path=path)

    options = ort.SessionOptions()
    options.intra_op_num_threads = num_threads
    options.inter_op_num_threads = num_threads

    available = set(ort.get_available_providers())
    providers = [p for p in PROVIDERS[provider] if p in available]
    if not providers:
        raise ModelConfigError(
            f"provider {provider!r} is not available in this onnxruntime build", path=path
        )

    try:
        session = ort.InferenceSession(str(path), sess_options=options, providers=providers)
    except Exception as e:
        raise ModelConfigError(f"failed to load {path}: {e}", path=path) from e

    logger.info("Loaded %s (threads=%d, providers=%s)", path.name, num_threads, providers)
    return OnnxSession(session, path)
