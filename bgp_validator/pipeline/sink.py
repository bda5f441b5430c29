"""
Result file writer

Writes accepted facts to a plain text file, one "<asn> <prefix> " line per
fact after an "asn ip " header. In annotate mode every line also carries the
RPKI verdict.
"""

import logging
from pathlib import Path
from typing import Optional, Union

from bgp_validator.models import Fact, Verdict

HEADER = "asn ip "
ANNOTATED_HEADER = "asn ip verdict "


class ResultWriter:
    """Line-buffered writer for the result file"""

    def __init__(self, path: Union[str, Path] = "result", annotate: bool = False,
                 logger: Optional[logging.Logger] = None):
        self.path = Path(path)
        self.annotate = annotate
        self.logger = logger or logging.getLogger(__name__)
        self.lines_written = 0
        self._file = None

    def __enter__(self):
        self.open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    def open(self):
        """Create (or truncate) the result file and write the header"""
        if self.path.parent != Path("."):
            self.path.parent.mkdir(parents=True, exist_ok=True)
        self._file = open(self.path, "w", buffering=1, encoding="utf-8")
        self._file.write((ANNOTATED_HEADER if self.annotate else HEADER) + "\n")
        self.logger.info(f"Writing results to {self.path}")

    def write(self, fact: Fact, verdict: Optional[Verdict] = None):
        if self._file is None:
            raise ValueError(f"Result file {self.path} is not open")
        self._file.write(fact.to_line(verdict if self.annotate else None) + "\n")
        self.lines_written += 1

    def close(self):
        if self._file is not None:
            self._file.close()
            self._file = None
            self.logger.info(f"Wrote {self.lines_written} facts to {self.path}")
