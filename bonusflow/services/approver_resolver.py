"""Resolve free-text approver references to canonical employees.

Spreadsheet imports carry approvers as whatever the author typed: an employee
number, ``"Last, First"`` or ``"First Last"`` (sometimes with middle names).
:class:`ApproverIndex` builds the lookup tables once per bulk operation so
resolving every reference in a directory stays linear.
"""
from __future__ import annotations

from typing import Dict, Iterable, Optional

from bonusflow.models import Employee

EMPTY_REFERENCES = {"", "-"}


def normalize(value: str) -> str:
    """Lower-case and collapse internal whitespace."""
    return " ".join(value.lower().split())


def last_first_key(first_name: str, last_name: str) -> str:
    return normalize(f"{last_name}, {first_name}")


def first_last_key(first_name: str, last_name: str) -> str:
    return normalize(f"{first_name} {last_name}")


class ApproverIndex:
    """Lookup tables keyed by employee number and by both name orderings.

    Employees are indexed in ``employee_id`` order and the first employee
    registered under a key keeps it, so ambiguous names always resolve to
    the same person.
    """

    def __init__(self, directory: Iterable[Employee]):
        self.by_employee_id: Dict[str, Employee] = {}
        self.by_name: Dict[str, Employee] = {}
        for employee in sorted(directory, key=lambda emp: emp.employee_id):
            self.add(employee)

    def add(self, employee: Employee) -> None:
        self.by_employee_id.setdefault(employee.employee_id, employee)
        first_name = employee.first_name or ""
        last_name = employee.last_name or ""
        self.by_name.setdefault(last_first_key(first_name, last_name), employee)
        self.by_name.setdefault(first_last_key(first_name, last_name), employee)

    def __len__(self) -> int:
        return len(self.by_employee_id)

    def _by_name_pair(self, first_name: str, last_name: str) -> Optional[Employee]:
        return self.by_name.get(first_last_key(first_name, last_name)) or self.by_name.get(
            last_first_key(first_name, last_name)
        )

    def resolve(self, reference: Optional[str]) -> Optional[Employee]:
        """Return the employee ``reference`` points at, or ``None``."""
        if reference is None:
            return None
        reference = reference.strip()
        if reference in EMPTY_REFERENCES:
            return None

        approver = self.by_employee_id.get(reference)
        if approver:
            return approver

        approver = self.by_name.get(normalize(reference))
        if approver:
            return approver

        name_parts = [part.strip() for part in reference.split(",")]
        if len(name_parts) == 2:
            last_name, first_name = name_parts
            approver = self._by_name_pair(first_name, last_name)
            if approver:
                return approver

        # A single token never matches on first name alone.
        tokens = reference.split()
        if len(tokens) >= 2:
            approver = self._by_name_pair(tokens[0], tokens[-1])
            if approver:
                return approver

        return None


def resolve_approver(reference: Optional[str], directory: Iterable[Employee]) -> Optional[Employee]:
    """One-off resolution against ``directory``."""
    return ApproverIndex(directory).resolve(reference)
