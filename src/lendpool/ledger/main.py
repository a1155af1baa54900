"""
Ledger service entry point.
"""

import uvicorn

from ..config import settings
from ..logging import configure_logging
from .api import app


def main():
    """Run the Ledger service."""
    configure_logging("lendpool-ledger")

    uvicorn.run(
        app,
        host=settings.api.host,
        port=settings.api.port,
        log_level=settings.monitoring.log_level.lower()
    )


if __name__ == "__main__":
    main()
