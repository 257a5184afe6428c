from __future__ import annotations
from typing import Any, Dict, Mapping
from fmc.errors import ValidationError


def apply_filters(query, specs: Dict[str, Dict[str, Any]], params: Mapping[str, Any]):
    """Narrow ``query`` with the query-string parameters named in ``specs``.

    Each spec: ``op(query, value) -> query``, optional ``coerce`` (e.g. ``int``)
    and optional ``validate(value) -> bool``. Absent or empty parameters are skipped.
    """
    for name, spec in specs.items():
        raw = params.get(name)
        if raw in (None, ''):
            continue
        value = raw
        coerce = spec.get('coerce')
        if coerce is not None:
            try:
                value = coerce(raw)
            except (TypeError, ValueError):
                raise ValidationError(f'{name} invalid', field=name, value=raw)
        check = spec.get('validate')
        if check is not None and not check(value):
            raise ValidationError(f'{name} invalid', field=name, value=raw)
        query = spec['op'](query, value)
    return query
