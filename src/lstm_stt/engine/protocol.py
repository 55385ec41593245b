"""Session protocol defining the boundary with the inference engine.

This is the "sealed boundary" that isolates onnxruntime from the model
adapter, the batcher and the tests. A session is one loaded sub-model graph
(encoder, decoder or joiner) that is stateless between calls.
"""

from collections.abc import Sequence
from pathlib import Path
from typing import Protocol

import numpy as np


class Session(Protocol):
    """Protocol for a loaded, ready-to-execute model graph.

    Implementations capture the ordered input/output names and the custom
    metadata map once, at construction. This allows swapping between real
    onnxruntime sessions and fake numpy sessions for testing.
    """

    @property
    def input_names(self) -> list[str]:
        """Declared input names, in the order the graph expects them."""
        ...

    @property
    def output_names(self) -> list[str]:
        """Declared output names, in graph order."""
        ...

    @property
    def metadata(self) -> dict[str, str]:
        """Custom string-to-string metadata embedded in the model file."""
        ...

    def run(
        self,
        inputs: Sequence[np.ndarray],
        output_names: Sequence[str] | None = None,
    ) -> list[np.ndarray]:
        """Run the graph synchronously.

        Args:
            inputs: One array per declared input, ordered like input_names.
            output_names: Outputs to fetch, in the order wanted. Defaults to
                all declared outputs.

        Returns:
            Output arrays in the order of output_names.

        Raises:
            ContractViolation: If the number of inputs does not match.
            EngineError: If the engine fails to execute the graph.
        """
        ...


class SessionLoader(Protocol):
    """Callable that loads one model file into a Session.

    The same thread count and provider are passed to every sub-model.
    """

    def __call__(self, path: Path, *, num_threads: int, provider: str) -> Session:
        ...
