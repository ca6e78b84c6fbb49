"""
Abstract base class for long-running FeedBrotr services.

A service owns a typed pydantic configuration, a named
[Logger][feedbrotr.core.logger.Logger] and a shutdown ``asyncio.Event``.
[run_forever()][feedbrotr.core.base_service.BaseService.run_forever] calls
``run()`` every ``interval`` seconds until shutdown is requested or too many
cycles in a row have failed.

For the timeline service one ``run()`` is one relay session. The relay
layer never reconnects on its own: the ``run_forever()`` loop is the only
place a new session is started after the previous one ended.

See Also:
    [MetricsServer][feedbrotr.core.metrics.MetricsServer]: Exposes the
        counters and gauges written through ``inc_counter()`` and
        ``set_gauge()``.
"""

from __future__ import annotations

import asyncio
import time
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, ClassVar, Generic, Self, TypeVar, cast

from pydantic import BaseModel, Field

from .logger import Logger
from .metrics import SERVICE_COUNTER, SERVICE_GAUGE, SERVICE_INFO, MetricsConfig


if TYPE_CHECKING:
    from types import TracebackType

    from feedbrotr.models.constants import ServiceName


class BaseServiceConfig(BaseModel):
    """Loop settings shared by every service configuration."""

    interval: float = Field(
        default=30.0,
        ge=1.0,
        description="Seconds between sessions",
    )
    max_consecutive_failures: int = Field(
        default=5,
        ge=0,
        description="Stop after this many failed sessions in a row (0 = never)",
    )
    metrics: MetricsConfig = Field(
        default_factory=MetricsConfig,
        description="Prometheus metrics configuration",
    )


ConfigT = TypeVar("ConfigT", bound=BaseServiceConfig)


class BaseService(ABC, Generic[ConfigT]):
    """Lifecycle shared by FeedBrotr services.

    Subclasses set ``SERVICE_NAME`` and ``CONFIG_CLASS`` and implement
    [run()][feedbrotr.core.base_service.BaseService.run]. Entering the
    service as an async context manager arms it; leaving requests shutdown.
    """

    SERVICE_NAME: ClassVar[ServiceName]
    CONFIG_CLASS: ClassVar[type[BaseModel]]

    def __init__(self, config: ConfigT | None = None) -> None:
        self._config: ConfigT = (
            config if config is not None else cast("ConfigT", self.CONFIG_CLASS())
        )
        self._logger = Logger(self.SERVICE_NAME)
        self._shutdown_event = asyncio.Event()

    @classmethod
    def from_dict(cls, data: dict[str, Any], **kwargs: Any) -> Self:
        """Build the service from a parsed configuration mapping.

        Raises:
            pydantic.ValidationError: If *data* does not fit ``CONFIG_CLASS``.
        """
        return cls(config=cast("ConfigT", cls.CONFIG_CLASS(**data)), **kwargs)

    @property
    def config(self) -> ConfigT:
        return self._config

    @abstractmethod
    async def run(self) -> None:
        """One unit of work; the timeline runs a whole relay session here."""
        ...

    def request_shutdown(self) -> None:
        """Ask the loop to stop. Safe to call from a signal handler."""
        self._shutdown_event.set()

    @property
    def is_running(self) -> bool:
        return not self._shutdown_event.is_set()

    async def wait(self, timeout: float) -> bool:  # noqa: ASYNC109
        """Sleep up to *timeout* seconds; True if shutdown came first."""
        try:
            await asyncio.wait_for(self._shutdown_event.wait(), timeout=timeout)
        except TimeoutError:
            return False
        return True

    # -------------------------------------------------------------------------
    # Loop
    # -------------------------------------------------------------------------

    async def _cycle(self) -> Exception | None:
        try:
            await self.run()
        except (asyncio.CancelledError, KeyboardInterrupt, SystemExit):
            raise
        except Exception as e:  # Intentionally broad: a failed session must not end the loop
            return e
        return None

    async def run_forever(self) -> None:
        """Call ``run()`` until shutdown or the failure limit is hit.

        ``CancelledError``, ``KeyboardInterrupt`` and ``SystemExit`` are not
        counted as failures; they propagate at once.
        """
        interval = self._config.interval
        limit = self._config.max_consecutive_failures

        if self._config.metrics.enabled:
            SERVICE_INFO.info({"service": self.SERVICE_NAME})
        self._logger.info("run_forever_started", interval=interval, max_consecutive_failures=limit)

        failures = 0
        while self.is_running:
            error = await self._cycle()
            if error is None:
                failures = 0
                self.inc_counter("cycles_success")
                self.set_gauge("last_cycle_timestamp", time.time())
                self._logger.info("cycle_completed", next_cycle_s=interval)
            else:
                failures += 1
                self.inc_counter("cycles_failed")
                self.inc_counter(f"errors_{type(error).__name__}")
                self._logger.error(
                    "run_cycle_error",
                    error=str(error),
                    error_type=type(error).__name__,
                    consecutive_failures=failures,
                )
            self.set_gauge("consecutive_failures", failures)

            if 0 < limit <= failures:
                self._logger.critical(
                    "max_consecutive_failures_reached", failures=failures, limit=limit
                )
                break
            if await self.wait(interval):
                break

        self._logger.info("run_forever_stopped")

    # -------------------------------------------------------------------------
    # Context Manager
    # -------------------------------------------------------------------------

    async def __aenter__(self) -> Self:
        self._shutdown_event.clear()
        self._logger.info("service_started")
        return self

    async def __aexit__(
        self,
        _exc_type: type[BaseException] | None,
        _exc_val: BaseException | None,
        _exc_tb: TracebackType | None,
    ) -> None:
        self._shutdown_event.set()
        self._logger.info("service_stopped")

    # -------------------------------------------------------------------------
    # Metrics
    # -------------------------------------------------------------------------

    def set_gauge(self, name: str, value: float) -> None:
        """No-op unless metrics are enabled."""
        if self._config.metrics.enabled:
            SERVICE_GAUGE.labels(service=self.SERVICE_NAME, name=name).set(value)

    def inc_counter(self, name: str, value: float = 1) -> None:
        """No-op unless metrics are enabled."""
        if self._config.metrics.enabled:
            SERVICE_COUNTER.labels(service=self.SERVICE_NAME, name=name).inc(value)
