import itertools
import json
import logging

import pytest

from http_handlers.core.logging import JSONFormatter, StructuredLogger

_counter = itertools.count()


class ListHandler(logging.Handler):
    def __init__(self):
        super().__init__()
        self.lines: list[str] = []

    def emit(self, record: logging.LogRecord) -> None:
        self.lines.append(self.format(record))

    def entries(self) -> list[dict]:
        return [json.loads(line) for line in self.lines]


@pytest.fixture
def log_handler():
    handler = ListHandler()
    handler.setFormatter(JSONFormatter("test-service"))
    return handler


@pytest.fixture
def access_logger(log_handler):
    logger = logging.getLogger(f"tests.access.{next(_counter)}")
    logger.setLevel(logging.INFO)
    logger.propagate = False
    logger.addHandler(log_handler)
    yield StructuredLogger(logger)
    logger.removeHandler(log_handler)
