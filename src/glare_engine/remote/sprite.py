"""
Remote environment controller for the single shared sprite.

Wraps the `sprite` CLI: restore from checkpoint, prepare the display and
scratch directories, upload files and run commands. Command failures never
raise; they are logged and surface as False or partial/empty output so the
sequencer can decide whether the current job is still viable.
"""

import base64
import logging
import shlex
import subprocess
import time
from pathlib import Path

from .. import config
from ..models import ExecResult

logger = logging.getLogger(__name__)


class SpriteEnvironment:
    """Exclusively-owned handle on the remote VM. One job at a time."""

    def __init__(
        self,
        name: str = config.SPRITE_NAME,
        checkpoint_id: str = config.CHECKPOINT_ID,
        sprite_bin: str = config.SPRITE_BIN,
        input_dir: Path = config.INPUT_DIR,
        output_dir: Path = config.OUTPUT_DIR,
        display: str = config.DISPLAY,
        max_output_bytes: int = config.MAX_OUTPUT_BYTES,
        restore_settle_s: float = config.RESTORE_SETTLE_S,
    ):
        self.name = name
        self.checkpoint_id = checkpoint_id
        self.sprite_bin = sprite_bin
        self.input_dir = input_dir
        self.output_dir = output_dir
        self.display = display
        self.max_output_bytes = max_output_bytes
        self.restore_settle_s = restore_settle_s

    # ---- Low level ----

    def _invoke(self, args: list[str], timeout: int) -> ExecResult:
        """
        Run one sprite CLI call. Output is fully buffered by subprocess.run, so
        max_output_bytes is checked after the call returns: it bounds what is
        decoded and handed on, not the memory the child can make us hold.
        Oversized or timed-out output is returned as failed and truncated.
        """
        cmd = [self.sprite_bin, *args]
        try:
            # bytes, decoded manually; remote output is not guaranteed UTF-8
            result = subprocess.run(cmd, capture_output=True, text=False, timeout=timeout)
        except subprocess.TimeoutExpired as e:
            partial = (e.stdout or b"").decode("utf-8", errors="replace")
            logger.error(f"  [Sprite] '{args[0]}' timed out after {timeout}s")
            return ExecResult(
                ok=False,
                stdout=partial.strip(),
                error=f"timeout after {timeout}s",
                truncated=True,
            )
        except OSError as e:
            logger.error(f"  [Sprite] Cannot run {self.sprite_bin}: {e}")
            return ExecResult(ok=False, stdout="", error=str(e))

        raw = result.stdout or b""
        truncated = len(raw) > self.max_output_bytes
        stdout = raw[: self.max_output_bytes].decode("utf-8", errors="replace").strip()

        if truncated:
            logger.error(f"  [Sprite] Output exceeded {self.max_output_bytes} bytes, truncated")
            return ExecResult(
                ok=False,
                stdout=stdout,
                returncode=result.returncode,
                error="output too large",
                truncated=True,
            )
        if result.returncode != 0:
            stderr = (result.stderr or b"").decode("utf-8", errors="replace").strip()
            logger.error(
                f"  [Sprite] '{args[0]}' failed (exit {result.returncode}): {stderr[-500:]}"
            )
            return ExecResult(
                ok=False,
                stdout=stdout,
                returncode=result.returncode,
                error=stderr or f"exit {result.returncode}",
            )
        return ExecResult(ok=True, stdout=stdout, returncode=0)

    def run(self, command: str, timeout: int = config.EXEC_TIMEOUT_S) -> ExecResult:
        """Run a bash command inside the sprite."""
        # Base64-wrapped so quoting survives both the local argv and the remote shell
        b64_cmd = base64.b64encode(command.encode("utf-8")).decode("ascii")
        wrapped = f"echo {b64_cmd} | base64 -d | bash"
        return self._invoke(["exec", "-s", self.name, "bash", "-c", wrapped], timeout)

    def exec(self, command: str, timeout: int = config.EXEC_TIMEOUT_S) -> str:
        """Run a command inside the sprite and return its (possibly partial) stdout."""
        return self.run(command, timeout).stdout

    # ---- Lifecycle ----

    def restore(self, checkpoint_id: str | None = None) -> bool:
        """Reset the sprite to a checkpoint. Blocks, then waits for it to settle."""
        checkpoint = checkpoint_id or self.checkpoint_id
        logger.info(f"  Restoring checkpoint {checkpoint}...")
        result = self._invoke(
            ["restore", "-s", self.name, checkpoint], timeout=config.RESTORE_TIMEOUT_S
        )
        if not result.ok:
            return False
        time.sleep(self.restore_settle_s)
        return True

    def prepare(self) -> bool:
        """
        Kill the browser left over from the snapshot, make sure Xvfb runs and
        empty the scratch directories. Safe to call repeatedly.
        """
        self.run("killall chrome 2>/dev/null; sleep 1; echo ready", timeout=15)

        count = self.run("ps aux | grep Xvfb | grep -v grep | wc -l", timeout=10)
        if not count.ok:
            return False
        if count.stdout.strip() in ("", "0"):
            started = self.run(
                f"nohup Xvfb {self.display} -screen 0 {config.XVFB_SCREEN} >/dev/null 2>&1 & "
                "sleep 1 && echo xvfb_started",
                timeout=15,
            )
            if "xvfb_started" not in started.stdout:
                logger.error("  [Sprite] Xvfb did not start")
                return False
            logger.info(f"  Started Xvfb on {self.display}")

        dirs = f"{shlex.quote(str(self.input_dir))} {shlex.quote(str(self.output_dir))}"
        reset = self.run(
            f"mkdir -p {dirs} && rm -rf {shlex.quote(str(self.input_dir))}/* "
            f"{shlex.quote(str(self.output_dir))}/*",
            timeout=10,
        )
        return reset.ok

    def upload_file(self, local_path: Path, remote_name: str) -> bool:
        """Copy one local file into the sprite's scratch input dir."""
        remote_path = f"{self.input_dir}/{remote_name}"
        result = self._invoke(
            [
                "exec",
                "-s",
                self.name,
                "-file",
                f"{local_path}:{remote_path}",
                "echo",
                f"uploaded {remote_name}",
            ],
            timeout=config.EXEC_TIMEOUT_S,
        )
        return result.ok

    def driver_command(self, with_reference: bool) -> str:
        ref_flag = " --with-reference" if with_reference else ""
        return (
            f"export DISPLAY={self.display} && cd {shlex.quote(config.REMOTE_APP_DIR)} && "
            f"{config.REMOTE_PYTHON} -m glare_engine.driver{ref_flag} 2>&1"
        )

    def run_driver(
        self, with_reference: bool, timeout: int = config.REMOTE_RUN_TIMEOUT_S
    ) -> ExecResult:
        return self.run(self.driver_command(with_reference), timeout=timeout)
