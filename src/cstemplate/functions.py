"""Core business logic functions for cstemplate: list and delete operations."""

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List

from .config import DeleteSettings, ListSettings, KEYWORD_ALL
from .data_processors import select_columns, render_table
from .errors import CloudStackError
from .utils import escape_keyword


@dataclass
class DeleteSummary:
    deleted: List[str] = field(default_factory=list)
    failed: Dict[str, str] = field(default_factory=dict)

    @property
    def total(self) -> int:
        return len(self.deleted) + len(self.failed)


def delete_templates(client, settings: DeleteSettings, out: Callable[[str], None] = print) -> DeleteSummary:
    """Delete every template id in settings, one API call per id.

    A failed delete is reported and the remaining ids are still processed.
    """
    summary = DeleteSummary()
    for template_id in settings.ids:
        try:
            response = client.delete_template(template_id)
        except CloudStackError as e:
            out(str(e))
            summary.failed[template_id] = str(e)
            continue
        out(template_id)
        out(json.dumps(response, indent=4, default=str))
        summary.deleted.append(template_id)
        logging.info(f"Deleted template {template_id}")

    out(f"delete {len(settings.ids)} templates.")
    return summary


def list_templates(client, settings: ListSettings, out: Callable[[str], None] = print) -> List[Dict[str, Any]]:
    """List templates and print them as a table of the visible columns.

    Returns:
        The records returned by the API
    """
    if settings.keyword != KEYWORD_ALL:
        templates = client.list_templates(template_filter='all', keyword=escape_keyword(settings.keyword))
    else:
        templates = client.list_templates(template_filter='all')

    out(f"total: {len(templates)}")
    if not templates:
        return templates

    columns = select_columns(templates[0], settings.visible_columns)
    logging.debug(f"Listing {len(templates)} templates with columns {columns}")
    out(render_table(templates, columns))
    return templates
