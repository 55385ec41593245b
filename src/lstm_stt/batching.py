"""Cross-stream encoder batcher.

Collects encoder steps from multiple concurrent streams, stacks their
recurrent states and runs them through the encoder as one batch.
"""

import asyncio
import logging
from dataclasses import dataclass

import numpy as np

from lstm_stt.errors import ContractViolation, EngineError
from lstm_stt.model import LstmTransducerModel
from lstm_stt.state import EncoderState

logger = logging.getLogger(__name__)


@dataclass
class EncodeRequest:
    """A single encoder step waiting to be batched."""

    features: np.ndarray
    state: EncoderState
    future: asyncio.Future[tuple[np.ndarray, EncoderState]]
    session_id: str


class BatchingEncoder:
    """Batches encoder steps from multiple streams.

    Each stream submits one feature chunk (batch 1) with its current state and
    receives its own encoder output and successor state, exactly as if it had
    called run_encoder alone.
    """

    def __init__(
        self,
        model: LstmTransducerModel,
        max_batch_size: int = 8,
        max_wait_ms: int = 50,
    ):
        """Initialize the batching encoder.

        Args:
            model: The transducer model whose encoder is shared.
            max_batch_size: Maximum number of streams per encoder call.
            max_wait_ms: Maximum time to wait for more requests before running.
        """
        self._model = model
        self._max_batch_size = max_batch_size
        self._max_wait_ms = max_wait_ms
        self._queue: asyncio.Queue[EncodeRequest] = asyncio.Queue()
        self._running = False
        self._task: asyncio.Task | None = None

    async def start(self) -> None:
        """Start the background batch processor."""
        if self._running:
            return
        self._running = True
        self._task = asyncio.create_task(self._batch_loop())

    async def stop(self) -> None:
        """Stop the background batch processor.

        Requests still waiting in the queue fail with EngineError; their
        states are not consumed.
        """
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        while not self._queue.empty():
            req = self._queue.get_nowait()
            if not req.future.done():
                req.future.set_exception(EngineError("batching encoder stopped"))

    async def encode(
        self,
        features: np.ndarray,
        state: EncoderState,
        session_id: str,
    ) -> tuple[np.ndarray, EncoderState]:
        """Submit one encoder step for batched execution.

        Args:
            features: Float features of shape [1, chunk_size, feature_dim].
            state: The stream's current state (batch 1). Consumed.
            session_id: Identifier for the source stream.

        Returns:
            (encoder_out, next_state) for this stream alone.

        Raises:
            ContractViolation: If the chunk or state does not fit the model.
                Raised before queueing; the state is left untouched.
        """
        if features.ndim != 3 or features.shape[0] != 1:
            raise ContractViolation(f"expected a single-stream chunk, got {features.shape}")
        if state.batch_size != 1:
            raise ContractViolation(f"expected a batch-1 state, got {state!r}")
        features = self._model.check_encoder_inputs(features, state)

        loop = asyncio.get_running_loop()
        future: asyncio.Future[tuple[np.ndarray, EncoderState]] = loop.create_future()
        await self._queue.put(EncodeRequest(features, state, future, session_id))
        return await future

    async def _batch_loop(self) -> None:
        """Continuously collect and process batches."""
        loop = asyncio.get_running_loop()
        while self._running:
            batch: list[EncodeRequest] = []

            # Wait for first request
            try:
                first = await asyncio.wait_for(self._queue.get(), timeout=1.0)
                batch.append(first)
            except asyncio.TimeoutError:
                continue

            # Collect more requests up to batch size or timeout
            deadline = loop.time() + (self._max_wait_ms / 1000)

            while len(batch) < self._max_batch_size:
                remaining = deadline - loop.time()
                if remaining <= 0:
                    break
                try:
                    req = await asyncio.wait_for(self._queue.get(), timeout=remaining)
                    batch.append(req)
                except asyncio.TimeoutError:
                    break

            await self._process_batch(batch)

    async def _process_batch(self, batch: list[EncodeRequest]) -> None:
        """Run batched encoder steps and resolve futures.

        Requests are grouped by feature shape; each group is one encoder call.
        """
        groups: dict[tuple[int, ...], list[EncodeRequest]] = {}
        for req in batch:
            groups.setdefault(req.features.shape[1:], []).append(req)

        for group in groups.values():
            await self._process_group(group)

    async def _process_group(self, batch: list[EncodeRequest]) -> None:
        """Run one encoder call for requests with matching feature shapes."""
        if not batch:
            return

        loop = asyncio.get_running_loop()
        logger.debug(
            "Encoding batch of %d: %s", len(batch), [req.session_id for req in batch]
        )

        def run_inference() -> list[tuple[np.ndarray, EncoderState]]:
            features = np.concatenate([req.features for req in batch], axis=0)
            stacked = self._model.stack_states([req.state for req in batch])
            for req in batch:
                req.state.take()

            encoder_out, next_state = self._model.run_encoder(features, stacked)
            next_states = self._model.unstack_states(next_state)
            return [
                (encoder_out[i : i + 1], next_states[i]) for i in range(len(batch))
            ]

        try:
            results = await loop.run_in_executor(None, run_inference)
            for req, result in zip(batch, results):
                if not req.future.done():
                    req.future.set_result(result)
        except asyncio.CancelledError:
            for req in batch:
                if not req.future.done():
                    req.future.set_exception(EngineError("batching encoder stopped"))
            raise
        except Exception as e:
            for req in batch:
                if not req.future.done():
                    req.future.set_exception(e)

    @property
    def queue_size(self) -> int:
        """Current number of pending requests."""
        return self._queue.qsize()

    @property
    def is_running(self) -> bool:
        """Whether the batch processor is running."""
        return self._running
