"""Output sink for generated kubeconfig documents."""

import os
import sys
from pathlib import Path
from typing import TextIO

OUTPUT_FILE_MODE = 0o600


class ProfileSink:
    """Writes a kubeconfig to a file (owner read/write only) or to a stream."""

    def __init__(self, output_path: Path | None = None, stream: TextIO | None = None) -> None:
        self.output_path = output_path
        self.stream = stream

    def write(self, content: str) -> None:
        """Write content to the file if a path was given, else to the stream.

        Existing files are overwritten and their mode reset to 0600.
        """
        if self.output_path is None:
            stream = self.stream or sys.stdout
            stream.write(content)
            stream.flush()
            return

        self.output_path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(
            self.output_path,
            os.O_WRONLY | os.O_CREAT | os.O_TRUNC,
            OUTPUT_FILE_MODE,
        )
        with os.fdopen(fd, "w") as f:
            f.write(content)
        # O_CREAT mode does not apply to files that already existed
        os.chmod(self.output_path, OUTPUT_FILE_MODE)
