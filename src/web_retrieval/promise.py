"""One-shot asynchronous retrieval returning futures."""

from __future__ import annotations

from concurrent.futures import Executor, Future, ThreadPoolExecutor
from typing import Any, Callable, Generic, TypeVar

from web_retrieval.decoders import Decoder
from web_retrieval.retrieval import HttpRetrieval, IncompleteContent, RetrievalConfig, TransportError

T = TypeVar("T")


class RetrievalPromiseBuilder(Generic[T]):
    """Retrieves and decodes content in the background.

    Failures surface through the returned future: ``UnsupportedProtocol`` or
    ``TransportError`` when no response was obtained, ``IncompleteContent``
    for a status outside 200-205, or whatever the decoder raises.
    The decoder should be stateless as it may run concurrently.

    A thread pool created by the builder is shut down by ``close`` or on
    leaving a ``with`` block; a caller-supplied executor is left running.
    """

    def __init__(
        self,
        decoder: Decoder[T],
        executor: Executor | None = None,
        retrieval_factory: Callable[[RetrievalConfig], HttpRetrieval] = HttpRetrieval,
    ) -> None:
        self.decoder = decoder
        self._owns_executor = executor is None
        self.executor = executor or ThreadPoolExecutor(max_workers=4, thread_name_prefix="retrieval")
        self.retrieval_factory = retrieval_factory
        self._config = RetrievalConfig()

    def with_configuration(self, config: RetrievalConfig) -> "RetrievalPromiseBuilder[T]":
        """Apply a copy of ``config`` to subsequently initiated requests."""
        if config is None:
            raise ValueError("Configuration must not be None")
        self._config = config.copy()
        return self

    def close(self, wait: bool = True) -> None:
        if self._owns_executor:
            self.executor.shutdown(wait=wait)

    def __enter__(self) -> "RetrievalPromiseBuilder[T]":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def request_by_get(self, url: str) -> Future[T]:
        config = self._config
        return self.executor.submit(self._retrieve, url, config)

    def _retrieve(self, url: str, config: RetrievalConfig) -> T:
        retrieval = self.retrieval_factory(config.copy())

        if not retrieval.get(url):
            error = retrieval.last_error
            raise error if error is not None else TransportError(url, RuntimeError("no response"))
        if not retrieval.is_complete_content():
            raise IncompleteContent(url, retrieval.status_code)

        return self.decoder(retrieval)
