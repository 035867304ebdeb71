"""Root conftest: test environment and log routing shared by every suite."""

from pathlib import Path

import pytest
import structlog
from dotenv import load_dotenv

from shared.logging import event_processors

load_dotenv(Path(__file__).resolve().parent.parent / ".env.tests")

# Same event chain as production, rendered by whatever handler caplog installs.
structlog.configure(
    processors=event_processors(),
    logger_factory=structlog.stdlib.LoggerFactory(),
    wrapper_class=structlog.stdlib.BoundLogger,
    cache_logger_on_first_use=False,
)


@pytest.fixture(autouse=True)
def _reset_log_context():
    """Bound session context must not leak from one test into the next."""
    structlog.contextvars.clear_contextvars()
    yield
    structlog.contextvars.clear_contextvars()
