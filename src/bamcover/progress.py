from __future__ import annotations

import logging


class ProcessStatus:
    """
    Record counter for long streaming loops.
    Call update_status() once per record; every `every` records the running
    count is logged at INFO.
    """

    def __init__(self, info: str, logger: logging.Logger | None = None, every: int = 100000):
        self.info = info
        self.logger = logger
        self.every = every
        self.status = 0

    def update_status(self) -> int:
        self.status += 1
        if self.logger and self.every and self.status % self.every == 0:
            self.logger.info(f"Processed {self.status:,} {self.info}...")
        return self.status

    def set_info(self, info: str) -> None:
        self.info = info

    def reset(self) -> None:
        self.status = 0

    def finish(self) -> int:
        if self.logger:
            self.logger.info(f"Total {self.status:,} {self.info}")
        return self.status
