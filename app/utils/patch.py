"""Explicit partial updates.

A patch is a pydantic model whose fields all default to ``None``; the
fields the caller actually sent are read with ``exclude_unset=True`` so an
absent field and an explicit ``null`` stay distinguishable.

``apply_patch`` copies present fields onto the target, driven by a table of
``FieldRule`` entries:

* a field with no rule is ignored,
* ``nullable=False`` rejects an explicit ``null``,
* ``check`` validates a present, non-null value and returns an error message
  (or ``None`` when the value is acceptable),
* ``attr`` renames the field on the target.
"""
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional
from pydantic import BaseModel
from app.errors import InvalidPatch


@dataclass(frozen=True)
class FieldRule:
    nullable: bool = False
    check: Optional[Callable[[Any], Optional[str]]] = None
    attr: Optional[str] = None


def positive(value) -> Optional[str]:
    return None if value > 0 else "must be greater than 0"


def non_negative(value) -> Optional[str]:
    return None if value >= 0 else "must not be negative"


def non_blank(value) -> Optional[str]:
    return None if str(value).strip() else "must not be empty"


def present_fields(patch: BaseModel) -> Dict[str, Any]:
    return patch.model_dump(exclude_unset=True)


def apply_patch(target: Any, patch: BaseModel, rules: Dict[str, FieldRule]) -> List[str]:
    """Apply the set fields of ``patch`` to ``target``; returns the changed attribute names"""
    changes = present_fields(patch)
    errors = []
    for field, value in changes.items():
        rule = rules.get(field)
        if rule is None:
            continue
        if value is None:
            if not rule.nullable:
                errors.append(f"{field} cannot be null")
            continue
        if rule.check is not None:
            problem = rule.check(value)
            if problem:
                errors.append(f"{field} {problem}")

    if errors:
        raise InvalidPatch("; ".join(errors))

    changed = []
    for field, value in changes.items():
        rule = rules.get(field)
        if rule is None:
            continue
        attr = rule.attr or field
        setattr(target, attr, value)
        changed.append(attr)
    return changed
