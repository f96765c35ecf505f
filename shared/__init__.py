"""
Shared module for common utilities used by the multiplexer.

STRUCTURE:
- shared.config: Configuration
  - settings.py: Environment config (pydantic-settings)
  - logging.py: Structured logging, connection audit trail

- shared.utils: Utilities
  - exceptions.py: Multiplexer exceptions with auto-logging

IMPORT EXAMPLES:
    from shared.config.settings import settings
    from shared.config.logging import get_logger
    from shared.utils.exceptions import ConnectionFailedError
"""
