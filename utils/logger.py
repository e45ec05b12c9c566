"""
Logger utility for the Resource Allocation Graph Simulator.

Provides step-by-step logging with verbosity levels.
"""

from typing import Optional, Sequence
from datetime import datetime


class SimulatorLogger:
    """
    Logger for simulation events and decisions.

    Format: "Step X: P1 requests R2 - OK" or "... - REJECTED (reason)"
    """

    def __init__(self, verbose: bool = False, log_file: Optional[str] = None, quiet: bool = False):
        """
        Initialize logger.

        Args:
            verbose: Enable debug output
            log_file: Optional file path for logging
            quiet: Suppress console output (file output is unaffected)
        """
        self.verbose = verbose
        self.quiet = quiet
        self.log_file = log_file
        self.file_handle = None
        self.lines = []

        if self.log_file:
            self.file_handle = open(self.log_file, 'w', encoding='utf-8')
            self._write_header()

    def _write_header(self) -> None:
        """Write log file header."""
        if self.file_handle:
            timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
            self.file_handle.write(f"Simulation Log - {timestamp}\n")
            self.file_handle.write("="*60 + "\n\n")

    def log(self, message: str, level: str = "info") -> None:
        """
        Log a message.

        Args:
            message: Message to log
            level: Log level (info, debug, warning, error)
        """
        if level == "debug" and not self.verbose:
            return

        formatted = self._format_message(message, level)
        self.lines.append(formatted)

        # Console output
        if not self.quiet:
            print(formatted)

        # File output
        if self.file_handle:
            self.file_handle.write(formatted + "\n")
            self.file_handle.flush()

    def _format_message(self, message: str, level: str) -> str:
        """Format message with level prefix."""
        if level == "error":
            return f"[ERROR] {message}"
        elif level == "warning":
            return f"[WARNING] {message}"
        elif level == "debug":
            return f"[DEBUG] {message}"
        else:
            return message

    def log_step(self, step: int, message: str, level: str = "info") -> None:
        """Log a simulation step message."""
        self.log(f"Step {step}: {message}", level)

    def log_operation(self, step: int, description: str, ok: bool, reason: str = "") -> None:
        """
        Log a store operation (request, allocate, release, add, remove).

        Args:
            step: Current simulation step
            description: e.g. "P1 requests R2"
            ok: Whether the operation was applied
            reason: Error text for rejected operations
        """
        if ok:
            self.log_step(step, f"{description} - OK")
        else:
            self.log_step(step, f"{description} - REJECTED ({reason})", "warning")

    def log_deadlock(self, step: int, deadlocked_pids: Sequence[str], description: str = "") -> None:
        """
        Log deadlock detection.

        Args:
            step: Current simulation step
            deadlocked_pids: Process ids in deadlock
            description: Cycle or knot summary
        """
        pids_str = ", ".join(deadlocked_pids)
        message = f"DEADLOCK DETECTED - Processes in deadlock: [{pids_str}]"
        if description:
            message += f" - {description}"
        self.log_step(step, message)

    def log_risk(self, step: int, score: float, contention_level: str, strategy: str) -> None:
        """Log a risk assessment."""
        self.log_step(
            step,
            f"Risk score {score:.2f} (contention={contention_level}, strategy={strategy})"
        )

    def log_recovery(self, step: int, action: str) -> None:
        """
        Log recovery action.

        Args:
            step: Current simulation step
            action: Action description from the resolution engine
        """
        self.log_step(step, f"RECOVERY - {action}")

    def log_system_state(self, step: int, state_str: str) -> None:
        """
        Log system state snapshot.

        Args:
            step: Current simulation step
            state_str: Formatted system state
        """
        if self.verbose:
            self.log_step(step, f"System State:\n{state_str}", "debug")

    def close(self) -> None:
        """Close log file if open."""
        if self.file_handle:
            self.file_handle.close()
            self.file_handle = None

    def __del__(self):
        """Cleanup on destruction."""
        self.close()
