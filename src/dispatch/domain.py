"""Dispatch bounded context — reliable push delivery to device tokens.

Resolves recipients to registered device tokens, batches them through a
push gateway, retries transient failures with backoff, and prunes tokens
the provider reports as permanently unregistered.
"""

from protean.domain import Domain

from dispatch.utils.logging import configure_logging, get_logger

configure_logging()

dispatch = Domain(name="dispatch")

logger = get_logger(__name__)
