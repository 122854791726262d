"""Domain resolution checks run after a router or database is created."""

import logging

from envdock.errors import EngineError
from envdock.models import Action
from envdock.progress import ProgressInfo, ProgressLevel
from envdock.retry import Retry, RetryExhausted, RetryPolicy, retry

logger = logging.getLogger(__name__)


async def _lookup_until_resolved(target, domain, policy: RetryPolicy):
    async def lookup():
        try:
            addresses = await target.resolve_host(domain)
        except (OSError, UnicodeError) as e:
            return Retry(f"{domain}: {e}")
        if not addresses:
            return Retry(f"{domain}: no address")
        return addresses

    return await retry(policy.schedule(), lookup, sleep=target.sleep, description=f"DNS lookup of {domain}")


async def wait_for_domain(target, scope, domain, policy: RetryPolicy):
    """Block until ``domain`` resolves; exhausting ``policy`` is fatal."""
    listeners = target.listeners
    listeners.info(scope, Action.CREATE, f"Let's check domain resolution for '{domain}'. Please wait, it can take some time...", target.execution_id)
    try:
        addresses = await _lookup_until_resolved(target, domain, policy)
    except RetryExhausted as e:
        listeners.error(ProgressInfo(scope, ProgressLevel.ERROR, "DNS propagation goes wrong.", target.execution_id))
        raise EngineError.new_service_not_ready(scope, target.execution_id, f"Domain '{domain}'", reason=e.reason) from e
    listeners.info(scope, Action.CREATE, f"Domain {domain} is ready! ⚡️", target.execution_id)
    return addresses


async def check_domains(target, scope, domains, policy: RetryPolicy):
    """Best-effort resolution check; an unresolved domain only produces a warning."""
    listeners = target.listeners
    for domain in domains:
        listeners.info(scope, Action.CREATE, f"Let's check domain resolution for '{domain}'. Please wait, it can take some time...", target.execution_id)
        try:
            await _lookup_until_resolved(target, domain, policy)
        except RetryExhausted:
            listeners.warn(
                scope,
                Action.CREATE,
                f"Unable to check domain availability for '{domain}'. It can be due to a too long domain propagation. Note: this is not critical.",
                target.execution_id,
            )
            continue
        listeners.info(scope, Action.CREATE, f"Domain {domain} is ready! ⚡️", target.execution_id)
