"""Core business logic functions for cstemplate: template registration and status polling."""

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, Optional

from .config import MainSettings, RegisterSettings, POLL_INTERVAL_SECONDS, parse_bool
from .errors import CloudStackError, LookupNotFoundError
from .utils import escape_keyword, escape_url, pretty_duration, pretty_size


class PollState(str, Enum):
    polling = "polling"
    ready = "ready"
    not_found = "not_found"
    timed_out = "timed_out"


@dataclass
class PollResult:
    template_id: str
    state: PollState
    elapsed: int = 0
    size: int = 0


@dataclass
class RegisterSummary:
    registered: Dict[str, PollResult] = field(default_factory=dict)
    failed: Dict[str, str] = field(default_factory=dict)

    @property
    def total(self) -> int:
        return len(self.registered) + len(self.failed)


def resolve_ostype_id(client, ostype: str) -> str:
    """Resolve an OS type description to its id.

    Raises:
        LookupNotFoundError: If the search returns no OS type
    """
    ostypes = client.list_ostypes(escape_keyword(ostype))
    if not ostypes:
        raise LookupNotFoundError("ostype is not exist")
    logging.debug(f"ostype {ostype} resolved to {ostypes[0]['id']}")
    return str(ostypes[0]['id'])


def resolve_zone_id(client, zonename: str) -> str:
    """Resolve a zone name to its id.

    Raises:
        LookupNotFoundError: If the search returns no zone
    """
    zones = client.list_zones(escape_keyword(zonename))
    if not zones:
        raise LookupNotFoundError("zonename is not exist")
    logging.debug(f"zone {zonename} resolved to {zones[0]['id']}")
    return str(zones[0]['id'])


def _is_ready(value) -> bool:
    if isinstance(value, bool):
        return value
    return parse_bool(value)


def wait_for_template(
    client,
    template_id: str,
    interval: int = POLL_INTERVAL_SECONDS,
    out: Callable[[str], None] = print,
    sleep: Callable[[float], None] = time.sleep,
    timeout: Optional[int] = None
) -> PollResult:
    """Poll a template until it is ready or no longer exists.

    The template is queried every interval seconds. "waiting" is printed the
    first time the template is found not ready. With timeout None (the
    default) there is no bound on the number of polls.

    Returns:
        PollResult with the final state, the elapsed seconds and the size
    """
    elapsed = 0
    first = True
    while True:
        templates = client.list_templates(template_filter='all', template_id=template_id)
        if not templates:
            out(f"id not exist {template_id}")
            return PollResult(template_id, PollState.not_found, elapsed)

        template = templates[0]
        if _is_ready(template.get('isready')):
            try:
                size = int(template.get('size') or 0)
            except (TypeError, ValueError):
                size = 0
            out(f"IsReady: true , cost {pretty_duration(elapsed)} , template size is {pretty_size(size)}")
            return PollResult(template_id, PollState.ready, elapsed, size)

        if first:
            out("waiting")
            first = False

        if timeout is not None and elapsed >= timeout:
            out(f"gave up waiting for {template_id} after {pretty_duration(elapsed)}")
            return PollResult(template_id, PollState.timed_out, elapsed)

        logging.debug(f"Template {template_id} not ready after {elapsed}s, status: {template.get('status')}")
        elapsed += interval
        sleep(interval)


def register_templates(
    client,
    main: MainSettings,
    settings: RegisterSettings,
    out: Callable[[str], None] = print,
    sleep: Callable[[float], None] = time.sleep
) -> RegisterSummary:
    """Register each (name, url) template and wait for it to become ready.

    The OS type and zone are resolved before any registration is submitted.
    A failed registration is reported and the remaining templates are still
    processed.

    Raises:
        LookupNotFoundError: If the OS type or the zone cannot be resolved
    """
    ostype_id = resolve_ostype_id(client, settings.ostype)
    zone_id = resolve_zone_id(client, main.zonename)

    summary = RegisterSummary()
    for name, url in settings.templates:
        out(f"{name} {url}")
        try:
            templates = client.register_template(
                name=name,
                display_text=name,
                format=main.format,
                hypervisor=main.hypervisor,
                ostype_id=ostype_id,
                url=escape_url(url),
                zone_id=zone_id,
                is_public=True,
                password_enabled=settings.password_enabled,
            )
            if not templates or not templates[0].get('id'):
                raise CloudStackError('registerTemplate', 200, f"no template id returned for {name}")

            template_id = str(templates[0]['id'])
            out(f"return template id : {template_id}")
            logging.info(f"Registered template {name} as {template_id}")
            summary.registered[name] = wait_for_template(client, template_id, out=out, sleep=sleep)
        except CloudStackError as e:
            out(str(e))
            summary.failed[name] = str(e)

    out(f"register {len(settings.templates)} templates.")
    return summary
