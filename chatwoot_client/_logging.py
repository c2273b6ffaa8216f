# =============================================================================
# Chatwoot Python Client -- Logging
# =============================================================================

from __future__ import annotations

import logging

logger = logging.getLogger("chatwoot_client")
logger.addHandler(logging.NullHandler())
