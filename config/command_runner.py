"""Async subprocess execution with caching and safety features.

Every OS utility the agent uses (ping, arp, route queries, hostname
lookups) goes through this module. Commands are spawned with
``asyncio.create_subprocess_exec`` so a slow probe only suspends its own
task, never the event loop that drives scheduler timers and progress
callbacks.

Security Note:
    All commands are validated against ALLOWED_SUBPROCESS_COMMANDS and are
    never run through a shell.

Usage:
    from config.command_runner import get_command_runner, safe_run

    # One-off execution
    result = await safe_run(['arp', '-n'])

    # Reuse a recent result (e.g. an ARP snapshot shared by a health check)
    runner = get_command_runner()
    result = await runner.run(['arp', '-n'], ttl=5.0)
"""
import asyncio
import ntpath
import os
import sys
import threading
import time
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

from config.constants import ALLOWED_SUBPROCESS_COMMANDS, INTERVALS
from config.exceptions import SubprocessError
from config.logging_config import get_logger, log_command

logger = get_logger(__name__)


@dataclass(frozen=True)
class CommandResult:
    """Captured output of a finished command."""

    command: Tuple[str, ...]
    returncode: int
    stdout: str
    stderr: str
    duration_ms: float

    @property
    def ok(self) -> bool:
        return self.returncode == 0


@dataclass
class CachedResult:
    """Cached command result with metadata."""

    result: CommandResult
    timestamp: float

    def is_expired(self, ttl: float) -> bool:
        """Check if this cached result has expired."""
        return (time.monotonic() - self.timestamp) >= ttl


def _command_env() -> Dict[str, str]:
    """Environment for child processes with a stable output locale."""
    env = dict(os.environ)
    if sys.platform != "win32":
        env["LC_ALL"] = "C"
        env["LANG"] = "C"
    return env


def _base_command(cmd: Sequence[str]) -> str:
    # ntpath splits on both separators
    base_cmd = ntpath.basename(cmd[0])
    if base_cmd.lower().endswith(".exe"):
        base_cmd = base_cmd[:-4]
    return base_cmd.lower()


async def _kill(proc: asyncio.subprocess.Process) -> None:
    """Kill a child that is still running and wait for it to exit."""
    try:
        proc.kill()
    except ProcessLookupError:
        pass
    await proc.wait()


class CommandRunner:
    """Runs OS commands asynchronously with an optional result cache.

    Results are cached only when the caller passes a positive ``ttl``;
    probes such as ping always run fresh.

    Attributes:
        default_timeout: Timeout applied when the caller gives none.
        max_cache_size: Maximum number of cached results to keep.

    Example:
        >>> runner = CommandRunner()
        >>> result = await runner.run(['arp', '-n'], ttl=5.0)
        >>> # A second call within 5 seconds returns the cached snapshot
        >>> result2 = await runner.run(['arp', '-n'], ttl=5.0)
    """

    def __init__(self, default_timeout: float = INTERVALS.SUBPROCESS_TIMEOUT_SECONDS,
                 max_cache_size: int = 50):
        self.default_timeout = default_timeout
        self.max_cache_size = max_cache_size
        self._cache: Dict[Tuple[str, ...], CachedResult] = {}
        self._lock = threading.Lock()
        self._stats = {
            "hits": 0,
            "misses": 0,
            "errors": 0,
        }

    def _cleanup(self) -> None:
        """Drop the oldest entries once the cache grows past its limit."""
        if len(self._cache) > self.max_cache_size:
            sorted_items = sorted(self._cache.items(), key=lambda x: x[1].timestamp)
            for key, _ in sorted_items[: len(self._cache) - self.max_cache_size]:
                del self._cache[key]

    async def run(
        self,
        cmd: List[str],
        timeout: Optional[float] = None,
        ttl: float = 0.0,
        check_allowed: bool = True,
    ) -> CommandResult:
        """Run a command and capture its output.

        A non-zero exit code is not an error here: callers such as the ping
        parser need the output of failed commands too.

        Args:
            cmd: Command and arguments as list.
            timeout: Seconds before the child is killed.
            ttl: Reuse a cached result younger than this many seconds.
            check_allowed: Validate the command against the allowlist.

        Returns:
            CommandResult with decoded stdout/stderr.

        Raises:
            SubprocessError: If the command is not allowed, cannot be
                started, or times out.
        """
        if not cmd:
            raise SubprocessError("Empty command", command=list(cmd))

        if check_allowed and _base_command(cmd) not in ALLOWED_SUBPROCESS_COMMANDS:
            raise SubprocessError(
                f"Command not in allowlist: {cmd[0]}",
                command=list(cmd),
                details={"allowed": sorted(ALLOWED_SUBPROCESS_COMMANDS)},
            )

        key = tuple(cmd)
        if ttl > 0:
            with self._lock:
                cached = self._cache.get(key)
                if cached is not None and not cached.is_expired(ttl):
                    self._stats["hits"] += 1
                    logger.debug(f"Cache hit for: {cmd[0]}")
                    return cached.result

        with self._lock:
            self._stats["misses"] += 1

        timeout = timeout or self.default_timeout
        start_time = time.monotonic()

        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=_command_env(),
            )
        except FileNotFoundError as e:
            self._record_error()
            logger.debug(f"Command not found: {cmd[0]}")
            raise SubprocessError(f"Command not found: {cmd[0]}", command=list(cmd)) from e
        except OSError as e:
            self._record_error()
            logger.warning(f"Could not start {cmd[0]}: {e}")
            raise SubprocessError(f"Subprocess error: {e}", command=list(cmd)) from e

        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
        except asyncio.TimeoutError as e:
            self._record_error()
            await _kill(proc)
            duration_ms = (time.monotonic() - start_time) * 1000
            logger.debug(f"Command timed out after {duration_ms:.0f}ms: {cmd}")
            raise SubprocessError(
                f"Command timed out after {timeout}s",
                command=list(cmd),
                details={"timeout": timeout},
            ) from e
        except asyncio.CancelledError:
            # The caller gave up (sweep budget, scheduler stop); reap the child
            await _kill(proc)
            logger.debug(f"Command cancelled: {cmd}")
            raise

        duration_ms = (time.monotonic() - start_time) * 1000
        returncode = proc.returncode if proc.returncode is not None else -1
        result = CommandResult(
            command=key,
            returncode=returncode,
            stdout=stdout.decode(errors="replace"),
            stderr=stderr.decode(errors="replace"),
            duration_ms=duration_ms,
        )
        log_command(logger, cmd, returncode, duration_ms)

        if ttl > 0:
            with self._lock:
                self._cache[key] = CachedResult(result=result, timestamp=time.monotonic())
                self._cleanup()

        return result

    def _record_error(self) -> None:
        with self._lock:
            self._stats["errors"] += 1

    def invalidate(self, cmd: Optional[List[str]] = None) -> None:
        """Invalidate cached results.

        Args:
            cmd: Specific command to invalidate. If None, clears entire cache.
        """
        with self._lock:
            if cmd is None:
                self._cache.clear()
                logger.debug("Cleared entire command cache")
            else:
                self._cache.pop(tuple(cmd), None)

    def get_stats(self) -> dict:
        """Get cache statistics."""
        with self._lock:
            total = self._stats["hits"] + self._stats["misses"]
            hit_rate = (self._stats["hits"] / total * 100) if total > 0 else 0
            return {
                **self._stats,
                "cache_size": len(self._cache),
                "hit_rate_percent": round(hit_rate, 1),
            }


# Global runner instance
_global_runner: Optional[CommandRunner] = None


def get_command_runner() -> CommandRunner:
    """Get or create the global command runner."""
    global _global_runner
    if _global_runner is None:
        _global_runner = CommandRunner()
    return _global_runner


async def safe_run(cmd: List[str], timeout: Optional[float] = None) -> CommandResult:
    """Run an allowlisted command once, without caching.

    Example:
        >>> result = await safe_run(['ping', '-c', '1', '-W', '1', '192.168.1.1'])
        >>> if result.ok:
        ...     print(result.stdout)
    """
    return await get_command_runner().run(cmd, timeout=timeout)
