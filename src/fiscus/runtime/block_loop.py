from __future__ import annotations

import logging
import os
import threading
import time
from dataclasses import dataclass
from typing import Optional

from fiscus.runtime.metrics import inc_counter, set_gauge


log = logging.getLogger("fiscus.block_loop")


@dataclass(frozen=True)
class BlockLoopConfig:
    interval_ms: int
    produce_empty_blocks: bool
    enabled: bool
    lock_path: str
    max_block_txs: int

    fail_fast_after: int
    error_backoff_min_ms: int
    error_backoff_max_ms: int


def _env_bool(name: str, default: bool) -> bool:
    v = os.environ.get(name)
    if v is None:
        return bool(default)
    return (v or "").strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.environ.get(name, str(default)))
    except ValueError:
        return int(default)


def block_loop_config_from_env() -> BlockLoopConfig:
    enabled = _env_bool("FISCUS_BLOCK_LOOP_ENABLED", True)
    interval_ms = max(250, _env_int("FISCUS_BLOCK_INTERVAL_MS", 6_000))
    produce_empty = _env_bool("FISCUS_PRODUCE_EMPTY_BLOCKS", True)
    lock_path = os.environ.get("FISCUS_BLOCK_LOOP_LOCK_PATH", "./data/block_loop.lock")
    max_block_txs = max(1, _env_int("FISCUS_MAX_TXS_PER_BLOCK", 500))

    fail_fast_after = max(3, _env_int("FISCUS_BLOCK_LOOP_FAIL_FAST_AFTER", 10))
    error_backoff_min_ms = max(50, _env_int("FISCUS_BLOCK_LOOP_ERROR_BACKOFF_MIN_MS", 250))
    error_backoff_max_ms = max(error_backoff_min_ms, _env_int("FISCUS_BLOCK_LOOP_ERROR_BACKOFF_MAX_MS", 10_000))

    return BlockLoopConfig(
        interval_ms=int(interval_ms),
        produce_empty_blocks=bool(produce_empty),
        enabled=bool(enabled),
        lock_path=str(lock_path),
        max_block_txs=int(max_block_txs),
        fail_fast_after=int(fail_fast_after),
        error_backoff_min_ms=int(error_backoff_min_ms),
        error_backoff_max_ms=int(error_backoff_max_ms),
    )


class _FileLock:
    """Best-effort single-process lock for the block loop.

    Prevent multiple web workers from each starting a producer loop.
    """

    def __init__(self, path: str) -> None:
        self._path = path
        self._fh = None

    def acquire(self) -> bool:
        import fcntl

        os.makedirs(os.path.dirname(self._path) or ".", exist_ok=True)
        try:
            fh = open(self._path, "a+", encoding="utf-8")
        except OSError:
            return False

        try:
            fcntl.flock(fh.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
        except OSError:
            fh.close()
            return False

        self._fh = fh
        fh.seek(0)
        fh.truncate()
        fh.write(f"pid={os.getpid()}\n")
        fh.flush()
        return True

    def release(self) -> None:
        import fcntl

        fh = self._fh
        self._fh = None
        if fh is None:
            return
        try:
            fcntl.flock(fh.fileno(), fcntl.LOCK_UN)
        finally:
            fh.close()


class BlockProducerLoop:
    """Internal block producer loop.

    Produces a block from the mempool every interval. Empty blocks are
    produced by default so that block height, and with it the epoch clock,
    keeps advancing while nobody transacts.
    """

    def __init__(self, *, executor, cfg: Optional[BlockLoopConfig] = None) -> None:
        self._executor = executor
        self._cfg = cfg or block_loop_config_from_env()

        self._lock = _FileLock(self._cfg.lock_path)
        self._t: Optional[threading.Thread] = None
        self._stop = threading.Event()
        self._started = False

        self._consecutive_failures = 0
        self._last_error: str = ""

        # Health probes read these off the executor.
        self._executor.block_loop_running = False
        self._executor.block_loop_unhealthy = False
        self._executor.block_loop_last_error = ""
        self._executor.block_loop_consecutive_failures = 0

    @property
    def started(self) -> bool:
        return self._started

    @property
    def consecutive_failures(self) -> int:
        return self._consecutive_failures

    def start(self) -> bool:
        if self._started:
            return True
        if not self._cfg.enabled:
            return False
        if not self._lock.acquire():
            return False
        self._t = threading.Thread(target=self._run, name="fiscus-block-loop", daemon=True)
        self._t.start()
        self._started = True
        self._executor.block_loop_running = True
        inc_counter("block_loop_start_total", 1)
        return True

    def stop(self) -> None:
        self._stop.set()
        t = self._t
        if t is not None:
            t.join(timeout=2.0)
        self._lock.release()
        self._executor.block_loop_running = False
        self._started = False
        inc_counter("block_loop_stop_total", 1)

    def _mark_error(self, *, where: str, err: Exception) -> None:
        self._consecutive_failures += 1
        self._last_error = f"{where}:{type(err).__name__}:{err}"

        inc_counter("block_loop_errors_total", 1)
        set_gauge("block_loop_consecutive_failures", self._consecutive_failures)

        self._executor.block_loop_last_error = self._last_error
        self._executor.block_loop_consecutive_failures = self._consecutive_failures

        log.exception("block loop error (%s) failures=%s", where, self._consecutive_failures)

    def _clear_error(self) -> None:
        if self._consecutive_failures == 0 and not self._last_error:
            return
        self._consecutive_failures = 0
        self._last_error = ""
        set_gauge("block_loop_consecutive_failures", 0)
        self._executor.block_loop_last_error = ""
        self._executor.block_loop_consecutive_failures = 0

    def _sleep_backoff(self) -> None:
        n = max(1, int(self._consecutive_failures))
        base = int(self._cfg.error_backoff_min_ms)
        cap = int(self._cfg.error_backoff_max_ms)
        ms = min(cap, base * (2 ** min(10, n - 1)))
        self._stop.wait(max(0.0, float(ms) / 1000.0))

    def _trip_unhealthy_and_stop(self) -> None:
        self._executor.block_loop_unhealthy = True
        self._executor.block_loop_running = False
        set_gauge("block_loop_unhealthy", 1)
        inc_counter("block_loop_failfast_total", 1)
        log.error(
            "block loop fail-fast tripped: failures=%s last_error=%s",
            self._consecutive_failures,
            self._last_error,
        )
        self._stop.set()

    def tick(self) -> bool:
        """Run one production step. Returns False once the loop should stop."""
        inc_counter("block_loop_ticks_total", 1)

        try:
            self._executor.prune_mempool_expired()
        except Exception:
            inc_counter("block_loop_prune_errors_total", 1)
            log.exception("mempool prune failed")

        if self._executor.mempool.size() <= 0 and not self._cfg.produce_empty_blocks:
            return True

        try:
            meta = self._executor.produce_block(
                max_txs=int(self._cfg.max_block_txs),
                allow_empty=self._cfg.produce_empty_blocks,
            )
            if not meta.ok:
                raise RuntimeError(meta.error or "produce_failed")
            inc_counter("block_loop_produce_ok_total", 1)
            self._clear_error()
        except Exception as err:
            self._mark_error(where="produce_block", err=err)
            if self._consecutive_failures >= int(self._cfg.fail_fast_after):
                self._trip_unhealthy_and_stop()
                return False
            self._sleep_backoff()
        return True

    def _run(self) -> None:
        interval_s = float(self._cfg.interval_ms) / 1000.0
        next_ts = time.monotonic()

        while not self._stop.is_set():
            now = time.monotonic()
            if now < next_ts:
                self._stop.wait(min(0.25, next_ts - now))
                continue

            next_ts = now + interval_s
            if not self.tick():
                break


__all__ = ["BlockLoopConfig", "BlockProducerLoop", "block_loop_config_from_env"]
