"""Detachable code-signature stripping ahead of comparison."""

from __future__ import annotations

import fnmatch
import logging
import subprocess
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Sequence

from repro_check.hashing.hasher import sha256_bytes

LOGGER = logging.getLogger(__name__)


def render_command(template: Sequence[str], *, input_path: Path, output_path: Path) -> list[str]:
    """Substitute `{input}` and `{output}` placeholders in a command template."""

    return [
        part.replace("{input}", str(input_path)).replace("{output}", str(output_path))
        for part in template
    ]


@dataclass(frozen=True, slots=True)
class StripResult:
    """Bytes to compare for one signed file."""

    path: Path
    data: bytes
    stripped: bool
    warning: str | None = None

    @property
    def digest(self) -> str:
        return sha256_bytes(self.data)


class SignatureNormalizer:
    """Remove embedded authenticity signatures with an external tool.

    Failures never propagate: the original bytes are returned together with
    a warning, so the later comparison fails on its own merits.
    """

    def __init__(
        self,
        command: Sequence[str],
        patterns: Sequence[str] = (),
        logger: logging.Logger | None = None,
    ) -> None:
        self.command = list(command)
        self.patterns = list(patterns)
        self.logger = logger or LOGGER

    def applies_to(self, relative_path: str) -> bool:
        """True when the path belongs to an artifact class known to be signed."""

        name = relative_path.rsplit("/", 1)[-1]
        return any(
            fnmatch.fnmatchcase(relative_path, pattern) or fnmatch.fnmatchcase(name, pattern)
            for pattern in self.patterns
        )

    def strip(self, path: Path) -> StripResult:
        """Return signature-free bytes for `path`; raises OSError only if `path` is unreadable."""

        original = path.read_bytes()
        with tempfile.TemporaryDirectory(prefix="repro_check_strip_") as tmp_dir:
            output_path = Path(tmp_dir) / path.name
            argv = render_command(self.command, input_path=path, output_path=output_path)
            try:
                proc = subprocess.run(argv, capture_output=True, text=True, check=False)
            except OSError as exc:
                return self._fallback(path, original, f"signature tool unavailable: {exc}")

            if proc.returncode != 0:
                detail = (proc.stderr or proc.stdout or "").strip().splitlines()
                reason = detail[0] if detail else "no output"
                return self._fallback(path, original, f"signature tool exited {proc.returncode}: {reason}")
            if not output_path.exists():
                return self._fallback(path, original, "signature tool produced no output file")

            data = output_path.read_bytes()

        self.logger.info("signature.stripped path=%s before=%s after=%s", path, len(original), len(data))
        return StripResult(path=path, data=data, stripped=True)

    def _fallback(self, path: Path, original: bytes, reason: str) -> StripResult:
        warning = f"{path.name}: {reason}; comparing unmodified bytes"
        self.logger.warning("signature.strip_failed path=%s reason=%s", path, reason)
        return StripResult(path=path, data=original, stripped=False, warning=warning)
