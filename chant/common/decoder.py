import logging
import subprocess
from typing import Optional, Sequence

from schemas import DecodeResult

logger = logging.getLogger(__name__)

DEFAULT_DECODE_COMMAND = ("chant", "-d")


class DecoderLaunchError(Exception):
    pass


class DecoderBridge:
    """Hands the consensus text to the external spell decoder and reports what it said."""

    def __init__(self, command: Optional[Sequence[str]] = None, timeout: Optional[float] = 120.0):
        self.command = list(command or DEFAULT_DECODE_COMMAND)
        self.timeout = timeout

    def decode(self, text: str) -> DecodeResult:
        cmd = self.command + [text]
        logger.debug("running decoder: %s", cmd)
        try:
            proc = subprocess.run(cmd, stdout=subprocess.PIPE, stderr=subprocess.PIPE,
                                  text=True, encoding="utf-8", timeout=self.timeout)
        except (OSError, subprocess.TimeoutExpired) as e:
            raise DecoderLaunchError(f"failed to launch decoder: {' '.join(self.command)}") from e
        return DecodeResult(exit_code=proc.returncode, output=proc.stdout.rstrip(), error=proc.stderr.rstrip())
