"""
Centralized logging for PrepositionPal.

Provides consistent, color-coded debug output for:
- Configuration status
- Text, image, video and speech generation calls
- Question/media cache hits and misses
- Local store and remote mirror activity
- Background tasks (explanation pre-fetch, telemetry)

Usage:
    from prepal.logger import logger

    logger.gen("Requesting sentence for 'between'...")
    logger.cache_hit("A1/in", "q-123")
    logger.error("Video job failed", exc_info=True)
"""

import sys
import time
import traceback
from datetime import datetime
from typing import Optional


class ColorCodes:
    """ANSI color codes for terminal output."""
    RESET = "\033[0m"
    BOLD = "\033[1m"
    DIM = "\033[2m"

    RED = "\033[31m"
    GREEN = "\033[32m"
    YELLOW = "\033[33m"
    BLUE = "\033[34m"
    MAGENTA = "\033[35m"
    CYAN = "\033[36m"
    WHITE = "\033[37m"

    BRIGHT_RED = "\033[91m"
    BRIGHT_GREEN = "\033[92m"
    BRIGHT_YELLOW = "\033[93m"
    BRIGHT_BLUE = "\033[94m"
    BRIGHT_MAGENTA = "\033[95m"
    BRIGHT_CYAN = "\033[96m"


def _shorten(text: str, width: int = 60) -> str:
    return text[:width] + "..." if len(text) > width else text


class DebugLogger:
    """
    Debug logger with categorized, color-coded output.

    Categories:
    - ENV: Configuration (.env, API keys, models)
    - GEN: Text generation (sentences, explanations)
    - IMG: Image generation
    - VID: Video generation and status polling
    - TTS: Speech synthesis
    - CACHE: Question and media cache
    - DB: Local store and remote mirror
    - TASK: Background tasks
    - OK / WARN / ERR / INFO / DBG: General status
    """

    def __init__(self, enabled: bool = True):
        self.enabled = enabled
        self._start_time = datetime.now()

    def _timestamp(self) -> str:
        now = datetime.now()
        elapsed = (now - self._start_time).total_seconds()
        return f"{now.strftime('%H:%M:%S')}.{now.microsecond // 1000:03d} (+{elapsed:>6.1f}s)"

    def _log(self, category: str, color: str, message: str, **kwargs) -> None:
        if not self.enabled:
            return

        timestamp = self._timestamp()
        prefix = f"{ColorCodes.DIM}{timestamp}{ColorCodes.RESET}"
        tag = f"{color}{ColorCodes.BOLD}[{category:>5}]{ColorCodes.RESET}"
        padding = " " * (len(timestamp) + 9)

        for i, line in enumerate(message.split("\n")):
            if i == 0:
                print(f"{prefix} {tag} {line}", file=sys.stdout, flush=True)
            else:
                print(f"{ColorCodes.DIM}{padding}{ColorCodes.RESET}{line}", file=sys.stdout, flush=True)

        if kwargs.get("exc_info"):
            for line in traceback.format_exc().split("\n"):
                if line.strip():
                    print(f"{ColorCodes.DIM}{padding}{ColorCodes.RED}{line}{ColorCodes.RESET}",
                          file=sys.stderr, flush=True)

    # === Configuration ===
    def env(self, message: str, **kwargs) -> None:
        self._log("ENV", ColorCodes.MAGENTA, message, **kwargs)

    def env_success(self, message: str, **kwargs) -> None:
        self._log("ENV", ColorCodes.GREEN, f"✓ {message}", **kwargs)

    def env_error(self, message: str, **kwargs) -> None:
        self._log("ENV", ColorCodes.RED, f"✗ {message}", **kwargs)

    # === Generation calls ===
    def gen(self, message: str, **kwargs) -> None:
        """Log text-generation messages."""
        self._log("GEN", ColorCodes.CYAN, message, **kwargs)

    def api_call(self, endpoint: str, model: Optional[str] = None, **kwargs) -> None:
        """Log an outgoing generation call."""
        model_info = f" (model: {model})" if model else ""
        self._log("GEN", ColorCodes.CYAN, f"→ Calling {endpoint}{model_info}", **kwargs)

    def api_response(self, endpoint: str, duration_ms: Optional[float] = None, **kwargs) -> None:
        """Log a generation response."""
        duration_info = f" ({duration_ms:.0f}ms)" if duration_ms else ""
        self._log("GEN", ColorCodes.BRIGHT_CYAN, f"← Response from {endpoint}{duration_info}", **kwargs)

    def api_error(self, message: str, **kwargs) -> None:
        self._log("GEN", ColorCodes.BRIGHT_RED, f"✗ {message}", **kwargs)

    # === Media ===
    def img(self, message: str, **kwargs) -> None:
        self._log("IMG", ColorCodes.YELLOW, message, **kwargs)

    def img_start(self, prompt: str, **kwargs) -> None:
        self._log("IMG", ColorCodes.YELLOW, f"→ Generating: \"{_shorten(prompt)}\"", **kwargs)

    def img_error(self, message: str, **kwargs) -> None:
        self._log("IMG", ColorCodes.BRIGHT_RED, f"✗ {message}", **kwargs)

    def vid(self, message: str, **kwargs) -> None:
        self._log("VID", ColorCodes.BRIGHT_MAGENTA, message, **kwargs)

    def vid_error(self, message: str, **kwargs) -> None:
        self._log("VID", ColorCodes.BRIGHT_RED, f"✗ {message}", **kwargs)

    def tts(self, message: str, **kwargs) -> None:
        self._log("TTS", ColorCodes.BLUE, message, **kwargs)

    # === Cache / store ===
    def cache(self, message: str, **kwargs) -> None:
        self._log("CACHE", ColorCodes.BRIGHT_BLUE, message, **kwargs)

    def cache_hit(self, key: str, item_id: str, **kwargs) -> None:
        self._log("CACHE", ColorCodes.BRIGHT_GREEN, f"✓ Hit {key} -> {item_id}", **kwargs)

    def cache_miss(self, key: str, **kwargs) -> None:
        self._log("CACHE", ColorCodes.BRIGHT_BLUE, f"○ Miss {key}", **kwargs)

    def db(self, message: str, **kwargs) -> None:
        self._log("DB", ColorCodes.WHITE, message, **kwargs)

    # === Background tasks ===
    def task(self, message: str, **kwargs) -> None:
        self._log("TASK", ColorCodes.WHITE, message, **kwargs)

    def task_start(self, task_name: str, **kwargs) -> None:
        self._log("TASK", ColorCodes.WHITE, f"⚡ Starting: {task_name}", **kwargs)

    def task_complete(self, task_name: str, duration_ms: Optional[float] = None, **kwargs) -> None:
        duration_info = f" ({duration_ms:.0f}ms)" if duration_ms else ""
        self._log("TASK", ColorCodes.BRIGHT_GREEN, f"✓ Completed: {task_name}{duration_info}", **kwargs)

    def task_error(self, task_name: str, error: str, **kwargs) -> None:
        self._log("TASK", ColorCodes.BRIGHT_RED, f"✗ Failed: {task_name} - {error}", **kwargs)

    # === General status ===
    def success(self, message: str, **kwargs) -> None:
        self._log("OK", ColorCodes.BRIGHT_GREEN, f"✓ {message}", **kwargs)

    def warning(self, message: str, **kwargs) -> None:
        self._log("WARN", ColorCodes.BRIGHT_YELLOW, f"⚠ {message}", **kwargs)

    def error(self, message: str, **kwargs) -> None:
        self._log("ERR", ColorCodes.BRIGHT_RED, f"✗ {message}", **kwargs)

    def info(self, message: str, **kwargs) -> None:
        self._log("INFO", ColorCodes.WHITE, message, **kwargs)

    def debug(self, message: str, **kwargs) -> None:
        self._log("DBG", ColorCodes.DIM, message, **kwargs)

    def separator(self, title: Optional[str] = None) -> None:
        """Print a visual separator."""
        if not self.enabled:
            return
        line = f"{'─' * 20} {title} {'─' * 20}" if title else "─" * 60
        print(f"\n{ColorCodes.DIM}{line}{ColorCodes.RESET}\n", file=sys.stdout, flush=True)


# Global logger instance
logger = DebugLogger(enabled=True)


class Timer:
    """Context manager for timing operations."""

    def __init__(self):
        self.start_time: Optional[float] = None
        self.duration_ms: float = 0

    def __enter__(self) -> "Timer":
        self.start_time = time.perf_counter()
        return self

    def __exit__(self, *args) -> None:
        if self.start_time:
            self.duration_ms = (time.perf_counter() - self.start_time) * 1000
