"""Read-only audit of a domain's tracking stack.

Modules:

- ``detectors`` -- one detector per subsystem (tag container, analytics
  property, search indexing, behaviour recording, data layer).
- ``auditor``   -- ``Auditor``: concurrent fan-out of the detectors, then
  progress and KPI scoring.
"""

from .auditor import AuditResult, Auditor

__all__ = ["AuditResult", "Auditor"]
