"""Billing bounded context — Bill lifecycle.

Each bill is owned by a single long-lived actor that processes commands one at
a time. The Bill aggregate is event-sourced so that an actor's state can be
rebuilt exactly from its history.
"""

import structlog
from protean.domain import Domain

billing = Domain(name="billing")

logger = structlog.get_logger(__name__)
