import subprocess
from dataclasses import dataclass
from typing import List, Optional, Sequence


@dataclass(frozen=True)
class CommandResult:
    cmd: List[str]
    stdout: str = ""
    stderr: str = ""
    returncode: int = 0
    timed_out: bool = False


class CommandRunner:
    """Small wrapper around subprocess.run with timeouts and consistent output."""

    def __init__(self, timeout_seconds: float = 10.0):
        self.timeout_seconds = float(timeout_seconds)

    def run(self, cmd: Sequence[str], timeout_seconds: Optional[float] = None) -> CommandResult:
        cmd_list = list(cmd)
        t = self.timeout_seconds if timeout_seconds is None else float(timeout_seconds)
        try:
            p = subprocess.run(cmd_list, capture_output=True, text=True, timeout=t)
            return CommandResult(
                cmd=cmd_list,
                stdout=p.stdout or "",
                stderr=p.stderr or "",
                returncode=p.returncode,
            )
        except subprocess.TimeoutExpired:
            return CommandResult(
                cmd=cmd_list,
                stderr=f"[timeout after {t:g}s] {' '.join(cmd_list)}",
                returncode=-1,
                timed_out=True,
            )

    def dig(self, args: Sequence[str], timeout_seconds: Optional[float] = None) -> CommandResult:
        return self.run(["dig", *list(args)], timeout_seconds=timeout_seconds)
