from __future__ import annotations
from typing import List, Optional, Tuple
from fmc.errors import ValidationError


def parse_sort(sort_expr: Optional[str], allowed) -> List[Tuple[str, bool]]:
    """Split ``-created_at,priority`` into [(key, descending), ...].

    A leading ``-`` sorts descending, ``+`` or nothing ascending. Unknown or
    repeated keys raise ValidationError.
    """
    keys: List[Tuple[str, bool]] = []
    seen = set()
    for token in (sort_expr or '').split(','):
        token = token.strip()
        if not token:
            continue
        desc = token[0] == '-'
        key = token.lstrip('+-')
        if key not in allowed:
            raise ValidationError(f'Invalid sort field {key}', field='sort', allowed=sorted(allowed))
        if key in seen:
            raise ValidationError(f'Duplicate sort field {key}', field='sort')
        seen.add(key)
        keys.append((key, desc))
    return keys


def apply_multi_sort(query, sort_expr: str | None, allowed: dict, tie_breaker):
    """Order ``query`` by the parsed sort keys, then ``tie_breaker`` ascending for stable pages."""
    order = [allowed[key].desc() if desc else allowed[key].asc() for key, desc in parse_sort(sort_expr, allowed)]
    return query.order_by(*order, tie_breaker.asc())
