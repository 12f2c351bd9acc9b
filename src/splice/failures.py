"""Structured failure records for isolated, non-fatal export problems.

A renderer that raises or returns something that is not an image, a
component that cannot be loaded, a frame source that cannot be opened or
read, a seek that does not converge and a media file whose audio cannot
be decoded are recorded here, and the export carries on. Encoder and
muxer failures are not recorded: they abort the export.
"""

from dataclasses import dataclass


FAILURE_KINDS = {
    "renderer", "renderer_missing", "source", "media_timeout", "audio_decode",
}


@dataclass(frozen=True)
class FailureRecord:
    kind: str
    clip_id: int | None
    frame: int | None
    message: str


class FailureLog:
    """Collects FailureRecords and optionally prints a SKIP line for each."""

    def __init__(self, quiet: bool = True):
        self.quiet = quiet
        self.records: list[FailureRecord] = []
        self._once = set()

    def record(
        self,
        kind: str,
        message: str,
        clip_id: int | None = None,
        frame: int | None = None,
        once_key=None,
    ) -> FailureRecord | None:
        """Append a record. With once_key, repeats of the same key are dropped."""
        if kind not in FAILURE_KINDS:
            raise ValueError(f"Unknown failure kind '{kind}'. Valid: {sorted(FAILURE_KINDS)}")
        if once_key is not None:
            if once_key in self._once:
                return None
            self._once.add(once_key)
        rec = FailureRecord(kind, clip_id, frame, message)
        self.records.append(rec)
        if not self.quiet:
            where = f"clip {clip_id}" if clip_id is not None else "export"
            at = f" @ frame {frame}" if frame is not None else ""
            print(f"  SKIP   [{kind}] {where}{at}: {message}", flush=True)
        return rec

    def __len__(self):
        return len(self.records)
