"""
Multicall aggregator: batches independent on-chain reads per chain.

Every caller enqueues single reads; reads issued in quick succession by
unrelated call sites coalesce into one Multicall3 ``tryAggregate`` call.

Per chain queue lifecycle:
    Idle -> Accumulating (debounce timer armed) -> Flushing -> Idle

- A queue reaching ``batch_size`` is flushed immediately, otherwise the
  debounce timer is (re)armed for ``queue_window`` seconds.
- A flush cuts the pending queue into batches of at most ``batch_size``
  calls, in FIFO order. Batches run under a per-chain semaphore.
- A batch whose RPC call fails is retried as a whole with exponential
  backoff; once the attempts are exhausted every request in it fails with
  MulticallTransportError. A NonRetryableException from the reader is
  not retried and reaches every request of the batch unchanged.
- Otherwise each request is completed from its own success flag; a
  reverted call never affects its siblings.
"""

import asyncio
from collections import deque
from dataclasses import dataclass
from typing import (
    Callable,
    Deque,
    Dict,
    Iterable,
    List,
    Optional,
    Protocol,
    Sequence,
    Set,
    Tuple,
)

from pricing_toolkit.multicall.calls import ContractCall
from pricing_toolkit.shared.constants import (
    GlobalConstants,
    MulticallConstants,
)
from pricing_toolkit.shared.exceptions import (
    CallRevertedError,
    MulticallTransportError,
    NonRetryableException,
    QueueClearedError,
    RetryableException,
    UnsupportedChainError,
)
from pricing_toolkit.shared.logging import get_logger
from pricing_toolkit.shared.retry import (
    MULTICALL_RETRY_CONFIG,
    retry_async_operation,
)
from pricing_toolkit.shared.types import CallResult

logger = get_logger(__name__)


class BatchReader(Protocol):
    async def try_aggregate(
        self, calls: Sequence[ContractCall]
    ) -> List[Tuple[bool, bytes]]: ...


ReaderFactory = Callable[[int], BatchReader]


def _default_reader_factory(chain_id: int) -> BatchReader:
    from pricing_toolkit.shared.services.web3_service import Web3Service

    return Web3Service.get_instance(chain_id)


@dataclass
class QueuedCall:
    call: ContractCall
    future: asyncio.Future


@dataclass
class QueueStats:
    """Observability snapshot of one chain queue."""

    pending: int
    in_flight: bool
    in_flight_batches: int
    waiting_batches: int
    submitted_batches: int


class _ChainQueue:
    def __init__(self, chain_id: int, max_concurrent: int):
        self.chain_id = chain_id
        self.pending: Deque[QueuedCall] = deque()
        self.timer: Optional[asyncio.TimerHandle] = None
        self.limiter = asyncio.Semaphore(max_concurrent)
        self.tasks: Set[asyncio.Task] = set()
        self.in_flight = 0
        self.submitted = 0

    def cancel_timer(self) -> None:
        if self.timer is not None:
            self.timer.cancel()
            self.timer = None


class MulticallAggregator:
    """
    Unified batching service for on-chain reads.

    Args:
        reader_factory: Returns the batched reader of a chain
            (default: Web3Service.get_instance).
        batch_size: Max calls per multicall.
        queue_window: Seconds to wait for more calls before flushing.
        max_retries: Attempts per batch on transport failure.
        retry_base_delay: First backoff delay in seconds, doubled each attempt.
        max_concurrent_batches: Batches in flight per chain.
        supported_chains: Chain ids accepted by ``enqueue``.
    """

    def __init__(
        self,
        reader_factory: Optional[ReaderFactory] = None,
        batch_size: int = MulticallConstants.BATCH_SIZE,
        queue_window: float = MulticallConstants.QUEUE_WINDOW,
        max_retries: int = MulticallConstants.MAX_RETRIES,
        retry_base_delay: float = MulticallConstants.RETRY_BASE_DELAY,
        max_concurrent_batches: int = MulticallConstants.MAX_CONCURRENT_BATCHES,
        supported_chains: Optional[Iterable[int]] = None,
    ):
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        if max_retries < 1:
            raise ValueError("max_retries must be at least 1")

        self._reader_factory = reader_factory or _default_reader_factory
        self.batch_size = batch_size
        self.queue_window = queue_window
        self.max_retries = max_retries
        self.retry_base_delay = retry_base_delay
        self.max_concurrent_batches = max_concurrent_batches
        self._supported_chains = frozenset(
            supported_chains
            if supported_chains is not None
            else GlobalConstants.CHAIN_NAMES
        )

        self._queues: Dict[int, _ChainQueue] = {}
        self._readers: Dict[int, BatchReader] = {}

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def enqueue(self, chain_id: int, call: ContractCall) -> asyncio.Future:
        """
        Queue a contract call for batching.

        Must be called from a running event loop.

        Returns:
            Future completed with the decoded return value, or failed with
            CallRevertedError / MulticallTransportError, or with the
            reader's NonRetryableException.

        Raises:
            UnsupportedChainError: Unknown chain id.
            ConfigurationException: No RPC configured for the chain.
            ValueError: Arguments do not match the call signature.
        """
        queue = self._queue_for(chain_id)
        call.encode_call_data()

        loop = asyncio.get_running_loop()
        future = loop.create_future()
        queue.pending.append(QueuedCall(call, future))

        if len(queue.pending) >= self.batch_size:
            self._drain(queue)
        else:
            queue.cancel_timer()
            queue.timer = loop.call_later(
                self.queue_window, self._on_timer, queue
            )
        return future

    def enqueue_many(
        self, chain_id: int, calls: Iterable[ContractCall]
    ) -> List[asyncio.Future]:
        """Queue multiple calls at once, same semantics as enqueue."""
        return [self.enqueue(chain_id, call) for call in calls]

    async def flush(self, chain_id: int) -> None:
        """
        Process the pending queue of a chain right away.

        Waits for the batches submitted by this flush to complete.
        """
        chain_id = self._check_chain(chain_id)
        queue = self._queues.get(chain_id)
        if queue is None:
            return
        tasks = self._drain(queue)
        if tasks:
            await asyncio.gather(*tasks)

    async def read(self, chain_id: int, call: ContractCall):
        """Queue one call and wait for its decoded value."""
        return await self.enqueue(chain_id, call)

    async def read_many(
        self, chain_id: int, calls: Sequence[ContractCall]
    ) -> List[CallResult]:
        """
        Queue many calls and wait for all of them.

        Never raises for a failing call: every outcome is reported as a
        CallResult, in the order of ``calls``.
        """
        futures = self.enqueue_many(chain_id, calls)
        if not futures:
            return []
        outcomes = await asyncio.gather(*futures, return_exceptions=True)
        return [
            CallResult(success=False, error=outcome)
            if isinstance(outcome, BaseException)
            else CallResult(success=True, value=outcome)
            for outcome in outcomes
        ]

    def get_stats(self) -> Dict[int, QueueStats]:
        """Get queue statistics per chain."""
        return {
            chain_id: QueueStats(
                pending=len(queue.pending),
                in_flight=queue.in_flight > 0,
                in_flight_batches=queue.in_flight,
                waiting_batches=max(len(queue.tasks) - queue.in_flight, 0),
                submitted_batches=queue.submitted,
            )
            for chain_id, queue in self._queues.items()
        }

    def clear_all(self) -> int:
        """
        Drop every pending request (emergency use only).

        Batches already submitted keep running.

        Returns:
            Number of requests failed with QueueClearedError.
        """
        cleared = 0
        for queue in self._queues.values():
            queue.cancel_timer()
            while queue.pending:
                item = queue.pending.popleft()
                if not item.future.done():
                    item.future.set_exception(
                        QueueClearedError("Queue cleared")
                    )
                    cleared += 1
        logger.warning(f"Multicall aggregator: {cleared} queued calls cleared")
        return cleared

    async def aclose(self) -> None:
        """Flush every queue and wait for all in-flight batches."""
        for queue in self._queues.values():
            self._drain(queue)
        tasks = [t for q in self._queues.values() for t in q.tasks]
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _check_chain(self, chain_id: int) -> int:
        chain_id = int(chain_id)
        if chain_id not in self._supported_chains:
            raise UnsupportedChainError(chain_id)
        return chain_id

    def _queue_for(self, chain_id: int) -> _ChainQueue:
        chain_id = self._check_chain(chain_id)
        queue = self._queues.get(chain_id)
        if queue is None:
            # Resolve the reader first so a missing RPC fails loudly here
            self._reader_for(chain_id)
            queue = _ChainQueue(chain_id, self.max_concurrent_batches)
            self._queues[chain_id] = queue
        return queue

    def _reader_for(self, chain_id: int) -> BatchReader:
        reader = self._readers.get(chain_id)
        if reader is None:
            reader = self._reader_factory(chain_id)
            self._readers[chain_id] = reader
        return reader

    def _on_timer(self, queue: _ChainQueue) -> None:
        queue.timer = None
        self._drain(queue)

    def _drain(self, queue: _ChainQueue) -> List[asyncio.Task]:
        queue.cancel_timer()
        tasks: List[asyncio.Task] = []
        while queue.pending:
            size = min(self.batch_size, len(queue.pending))
            batch = [queue.pending.popleft() for _ in range(size)]
            task = asyncio.get_running_loop().create_task(
                self._run_batch(queue, batch)
            )
            queue.tasks.add(task)
            task.add_done_callback(queue.tasks.discard)
            tasks.append(task)
        return tasks

    async def _submit(
        self, reader: BatchReader, calls: List[ContractCall]
    ) -> List[Tuple[bool, bytes]]:
        results = await reader.try_aggregate(calls)
        if len(results) != len(calls):
            raise RetryableException(
                f"Multicall returned {len(results)} results "
                f"for {len(calls)} calls"
            )
        return results

    async def _run_batch(
        self, queue: _ChainQueue, batch: List[QueuedCall]
    ) -> None:
        chain_id = queue.chain_id
        calls = [item.call for item in batch]
        reader = self._reader_for(chain_id)
        attempts = 0

        async def submit() -> List[Tuple[bool, bytes]]:
            nonlocal attempts
            attempts += 1
            return await self._submit(reader, calls)

        try:
            async with queue.limiter:
                queue.in_flight += 1
                queue.submitted += 1
                try:
                    results = await retry_async_operation(
                        submit,
                        max_attempts=self.max_retries,
                        base_delay=self.retry_base_delay,
                        max_delay=MULTICALL_RETRY_CONFIG.max_delay,
                        exponential=True,
                        retryable_exceptions=(
                            MULTICALL_RETRY_CONFIG.retryable_exceptions
                        ),
                        operation_name=f"multicall[chain={chain_id}]",
                    )
                finally:
                    queue.in_flight -= 1
        except asyncio.CancelledError:
            for item in batch:
                item.future.cancel()
            raise
        except NonRetryableException as e:
            logger.error(
                f"Multicall rejected for chain {chain_id} "
                f"({len(batch)} calls): {e!r}"
            )
            self._fail(batch, e)
            return
        except Exception as e:
            logger.error(
                f"Multicall failed after {attempts} attempts for "
                f"chain {chain_id} ({len(batch)} calls): {e!r}"
            )
            self._fail(batch, MulticallTransportError(chain_id, attempts, e))
            return

        self._complete(chain_id, batch, results)

    @staticmethod
    def _fail(batch: List[QueuedCall], error: BaseException) -> None:
        for item in batch:
            if not item.future.done():
                item.future.set_exception(error)

    def _complete(
        self,
        chain_id: int,
        batch: List[QueuedCall],
        results: List[Tuple[bool, bytes]],
    ) -> None:
        success_count = 0
        for item, (ok, data) in zip(batch, results):
            if item.future.done():
                # Caller gave up on this request (cancelled / timed out)
                continue
            call = item.call
            if not ok:
                item.future.set_exception(
                    CallRevertedError(call.target, call.signature)
                )
                continue
            try:
                value = call.decode_output(data)
            except Exception as e:
                item.future.set_exception(
                    CallRevertedError(
                        call.target,
                        call.signature,
                        f"undecodable return data: {e}",
                    )
                )
                continue
            item.future.set_result(value)
            success_count += 1

        logger.debug(
            f"Multicall completed for chain {chain_id}: "
            f"{success_count}/{len(batch)} successful"
        )
