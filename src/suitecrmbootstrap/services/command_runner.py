"""Subprocess execution service for SuiteCRM bootstrap."""

import os
import subprocess
import time
from typing import List, Mapping, Optional

from suitecrmbootstrap.errors import BootstrapError


class CommandRunner:
    """Runs external collaborators (PHP CLI, mysql client, setup scripts)."""

    def __init__(self, logger, default_timeout: Optional[float] = None):
        self.logger = logger
        self.default_timeout = default_timeout

    def run(
        self,
        cmd: List[str],
        check: bool = True,
        capture_output: bool = False,
        timeout: Optional[float] = None,
        retry_count: int = 0,
        retry_backoff_seconds: float = 0.0,
        input_text: Optional[str] = None,
        env: Optional[Mapping[str, str]] = None,
    ) -> subprocess.CompletedProcess:
        cmd_str = " ".join(cmd)
        max_attempts = max(1, retry_count + 1)
        self.logger.debug("Executing: %s", cmd_str)

        result = None
        for attempt in range(1, max_attempts + 1):
            result = self._invoke(cmd, cmd_str, capture_output, timeout, input_text, env)
            if result is not None and result.returncode == 0:
                if capture_output and result.stdout:
                    self.logger.debug("Command output: %s", result.stdout.strip())
                return result

            if attempt < max_attempts:
                self.logger.warning(
                    "Command did not succeed on attempt %s/%s, retrying in %.1fs: %s",
                    attempt,
                    max_attempts,
                    retry_backoff_seconds,
                    cmd_str,
                )
                time.sleep(retry_backoff_seconds)

        if result is None:
            raise BootstrapError(f"Command timed out after {self._timeout(timeout)}s: {cmd_str}")

        message = self._failure_message(result, cmd_str, capture_output)
        if check:
            raise BootstrapError(message)
        self.logger.debug(message)
        return result

    def _timeout(self, timeout: Optional[float]) -> Optional[float]:
        return timeout if timeout is not None else self.default_timeout

    def _invoke(
        self,
        cmd: List[str],
        cmd_str: str,
        capture_output: bool,
        timeout: Optional[float],
        input_text: Optional[str],
        env: Optional[Mapping[str, str]],
    ) -> Optional[subprocess.CompletedProcess]:
        process_env = None
        if env:
            process_env = dict(os.environ)
            process_env.update(env)

        try:
            return subprocess.run(
                cmd,
                text=True,
                capture_output=capture_output,
                timeout=self._timeout(timeout),
                input=input_text,
                env=process_env,
            )
        except FileNotFoundError as exc:
            raise BootstrapError(
                f"Required command not found: {cmd[0]}. Check the image contents and PATH."
            ) from exc
        except subprocess.TimeoutExpired:
            self.logger.debug("Command timed out: %s", cmd_str)
            return None
        except OSError as exc:
            raise BootstrapError(f"Failed to execute command: {cmd_str}. {exc}") from exc

    @staticmethod
    def _failure_message(
        result: subprocess.CompletedProcess, cmd_str: str, capture_output: bool
    ) -> str:
        message = f"Command failed ({result.returncode}): {cmd_str}"
        stderr = (result.stderr or "").strip() if capture_output else ""
        if stderr:
            message = f"{message}\n{stderr}"
        return message
