"""Feature classification and cabinet assignment."""

from .cabinets import CabinetMapping, build_cabinet_mappings, disk_id_for
from .classifier import (
    CategoryRule,
    Classification,
    build_rule_table,
    classify,
    misplacement_findings,
    sanity_checks,
)

__all__ = [
    "CabinetMapping",
    "CategoryRule",
    "Classification",
    "build_cabinet_mappings",
    "build_rule_table",
    "classify",
    "disk_id_for",
    "misplacement_findings",
    "sanity_checks",
]
