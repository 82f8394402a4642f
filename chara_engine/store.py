"""Scoped variable store.

Bucket layout (mirrors ``EngineState.variables``):

  global        {param: value}
  scene         {param: value}
  character     {subject: {param: value}}
  relationship  {subject: {param: {target: value}}}

Missing reads return None; writes create intermediate buckets.
"""

from __future__ import annotations

import copy
from typing import Any

from chara_engine.errors import UsageError
from chara_engine.models import SCOPES, empty_variables


class VariableStore:
    def __init__(self, variables: dict[str, dict[str, Any]] | None = None) -> None:
        # Works on the mapping it is given; callers pass a copy when they need one.
        self._variables = variables if variables is not None else empty_variables()
        for scope in SCOPES:
            self._variables.setdefault(scope, {})

    @staticmethod
    def _check(scope: str, subject: str | None, target: str | None) -> None:
        if scope not in SCOPES:
            raise UsageError(f"unknown scope {scope!r}")
        if scope in ("character", "relationship") and not subject:
            raise UsageError(f"{scope} scope needs a subject")
        if scope == "relationship" and not target:
            raise UsageError("relationship scope needs a target")

    def read(
        self,
        scope: str,
        param: str,
        subject: str | None = None,
        target: str | None = None,
    ) -> Any:
        self._check(scope, subject, target)
        bucket = self._variables[scope]
        if scope in ("global", "scene"):
            return bucket.get(param)
        per_subject = bucket.get(subject)
        if not isinstance(per_subject, dict):
            return None
        value = per_subject.get(param)
        if scope == "character":
            return value
        if not isinstance(value, dict):
            return None
        return value.get(target)

    def write(
        self,
        scope: str,
        param: str,
        value: Any,
        subject: str | None = None,
        target: str | None = None,
    ) -> None:
        self._check(scope, subject, target)
        bucket = self._variables[scope]
        if scope in ("global", "scene"):
            bucket[param] = value
            return
        per_subject = bucket.setdefault(subject, {})
        if scope == "character":
            per_subject[param] = value
            return
        per_subject.setdefault(param, {})[target] = value

    def snapshot(self) -> dict[str, dict[str, Any]]:
        return copy.deepcopy(self._variables)
