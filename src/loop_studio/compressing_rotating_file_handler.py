#!/usr/bin/env python
import gzip
import logging.handlers
import shutil
from pathlib import Path


class CompressingRotatingFileHandler(logging.handlers.RotatingFileHandler):
    """
    A rotating file handler that gzips rotated logs.

    `app.log` rolls over to `app.log.1.gz`, older archives shift up by one,
    and at most `backupCount` archives are kept.
    """
    def doRollover(self) -> None:
        if self.stream:
            self.stream.close()
            self.stream = None

        base = Path(self.baseFilename)
        if self.backupCount > 0 and base.exists():
            for i in range(self.backupCount - 1, 0, -1):
                src = self._archive(i)
                if src.exists():
                    src.replace(self._archive(i + 1))

            rotated = base.with_name(f"{base.name}.1")
            base.replace(rotated)
            self.compress_log(rotated)

        if not self.delay:
            self.stream = self._open()
        self.cleanup_old_logs()

    def _archive(self, index: int) -> Path:
        base = Path(self.baseFilename)
        return base.with_name(f"{base.name}.{index}.gz")

    def compress_log(self, file_path: Path) -> None:
        compressed = file_path.with_name(file_path.name + ".gz")
        with open(file_path, "rb") as f_in, gzip.open(compressed, "wb") as f_out:
            shutil.copyfileobj(f_in, f_out)
        file_path.unlink()

    def cleanup_old_logs(self) -> None:
        base = Path(self.baseFilename)
        archives = sorted(base.parent.glob(f"{base.name}.*.gz"), key=lambda p: p.stat().st_mtime)
        # Oldest archives go first once there are more than backupCount.
        while len(archives) > max(self.backupCount, 0):
            archives.pop(0).unlink()
