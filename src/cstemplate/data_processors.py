"""Column selection and table rendering for template listings."""

from typing import Any, Callable, Dict, Iterable, List

from tabulate import tabulate

# Field kinds
IDENTIFIER = 'identifier'
GROUP = 'group'
VALUE = 'value'

# Known template fields and how each one is rendered. Fields returned by the
# API that are missing here are rendered by the type of their value.
TEMPLATE_COLUMNS: Dict[str, str] = {
    'id': IDENTIFIER,
    'name': VALUE,
    'displaytext': VALUE,
    'ispublic': VALUE,
    'created': VALUE,
    'isready': VALUE,
    'passwordenabled': VALUE,
    'format': VALUE,
    'isfeatured': VALUE,
    'crosszones': VALUE,
    'ostypeid': IDENTIFIER,
    'ostypename': VALUE,
    'account': VALUE,
    'accountid': IDENTIFIER,
    'zoneid': IDENTIFIER,
    'zonename': VALUE,
    'status': VALUE,
    'size': VALUE,
    'physicalsize': VALUE,
    'templatetype': VALUE,
    'hypervisor': VALUE,
    'domain': VALUE,
    'domainid': IDENTIFIER,
    'isextractable': VALUE,
    'checksum': VALUE,
    'sourcetemplateid': IDENTIFIER,
    'hostid': IDENTIFIER,
    'hostname': VALUE,
    'projectid': IDENTIFIER,
    'project': VALUE,
    'bootable': VALUE,
    'isdynamicallyscalable': VALUE,
    'sshkeyenabled': VALUE,
    'requireshvm': VALUE,
    'tags': GROUP,
    'details': GROUP,
    'childtemplates': GROUP,
    'downloaddetails': GROUP,
}


def _render_identifier(value: Any) -> str:
    return str(value)


def _render_group(value: Any) -> str:
    # Nested structures are not expanded in a table cell
    return type(value).__name__


def _render_value(value: Any) -> str:
    if isinstance(value, bool):
        return 'true' if value else 'false'
    if isinstance(value, (dict, list, tuple)):
        return _render_group(value)
    return str(value)


EXTRACTORS: Dict[str, Callable[[Any], str]] = {
    IDENTIFIER: _render_identifier,
    GROUP: _render_group,
    VALUE: _render_value,
}


def render_cell(column: str, record: Dict[str, Any]) -> str:
    """Render one field of a record using the extractor of its kind."""
    if column not in record or record[column] is None:
        return ''
    kind = TEMPLATE_COLUMNS.get(column.lower(), VALUE)
    return EXTRACTORS[kind](record[column])


def select_columns(record: Dict[str, Any], visible: Iterable[str]) -> List[str]:
    """Pick the fields of record whose lower-cased name is visible, in record order.

    The selection is made once, from the first record of a listing, and used
    for every following record.
    """
    wanted = {name.lower() for name in visible}
    return [name for name in record.keys() if name.lower() in wanted]


def render_table(records: List[Dict[str, Any]], columns: List[str]) -> str:
    """Render records as a header row, a separator row and one row per record."""
    rows = [[render_cell(column, record) for column in columns] for record in records]
    return tabulate(rows, headers=columns, tablefmt='github', disable_numparse=True)
