"""Delivery bounded context — order lifecycle, courier dispatch and payment gate.

Coordinates three independent actors (customer, dispatcher/admin, courier)
mutating the same order. Orders, couriers and invoices are CQRS aggregates;
their domain events are mirrored to live observers through the in-process
fan-out bus once the unit of work commits.
"""

from protean.domain import Domain

from delivery.utils.logging import configure_logging, get_logger

# Configure logging for the application
configure_logging()

logger = get_logger(__name__)

# Domain Composition Root
delivery = Domain(name="delivery")
