# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/ocsgitops/render/renderer.py
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

import yaml
from jinja2 import Environment, FileSystemLoader, StrictUndefined, TemplateError

from ocsgitops.config.models import DriverConfig, UnitSpec
from ocsgitops.errors import ConfigurationError

TEMPLATES_DIR = Path(__file__).parent / "templates"

APPLICATIONS_DIR = "argocd"
CLUSTER_WIDE_OPERATOR_NAMESPACE = "openshift-operators"


@dataclass(frozen=True)
class RenderedDocument:
    path: str            # relative to the state repository root
    document: Dict[str, Any]

    @property
    def kind(self) -> str:
        return self.document.get("kind", "<unknown>")

    @property
    def content(self) -> str:
        return dump_document(self.document)


def dump_document(document: Dict[str, Any]) -> str:
    """Deterministic YAML: insertion order, block style, trailing newline."""
    return yaml.safe_dump(
        document,
        sort_keys=False,
        default_flow_style=False,
        allow_unicode=True,
    )


class ManifestRenderer:
    """
    Turns DesiredStateUnits into desired-state documents.

    Pure: reads only its own templates and returns data. The caller decides
    where (and whether) the documents are written.
    """

    def __init__(self, config: DriverConfig, templates_dir: Optional[Path] = None):
        self.config = config
        self.env = Environment(
            loader=FileSystemLoader(str(templates_dir or TEMPLATES_DIR)),
            autoescape=False,
            undefined=StrictUndefined,
            keep_trailing_newline=True,
        )

    # ------------------------- internal helpers -------------------------

    def _render(self, template_name: str, context: dict) -> Dict[str, Any]:
        text = self.env.get_template(template_name).render(**context)
        # Parse back so a broken template fails here, not in ArgoCD.
        doc = yaml.safe_load(text)
        if not isinstance(doc, dict):
            raise ValueError(f"template {template_name} did not render a mapping")
        return doc

    def _expand(self, value: Any, unit: UnitSpec) -> Any:
        """Render string leaves of a custom resource spec as inline templates."""
        if isinstance(value, dict):
            return {k: self._expand(v, unit) for k, v in value.items()}
        if isinstance(value, list):
            return [self._expand(v, unit) for v in value]
        if isinstance(value, str) and "{{" in value:
            return self.env.from_string(value).render(unit=unit, repo=self.config.repo)
        return value

    # ------------------------- documents -------------------------

    def application(self, unit: UnitSpec) -> RenderedDocument:
        doc = self._render(
            "application.yaml.j2",
            {
                "unit": unit,
                "repo": self.config.repo,
                "argocd": self.config.argocd,
                "sync_options": unit.sync.flags(),
            },
        )
        return RenderedDocument(f"{APPLICATIONS_DIR}/{unit.application}.yaml", doc)

    def subscription(self, unit: UnitSpec) -> Optional[RenderedDocument]:
        if unit.operator is None:
            return None
        doc = self._render("subscription.yaml.j2", {"operator": unit.operator})
        return RenderedDocument(f"{unit.path}/subscription.yaml", doc)

    def operator_group(self, unit: UnitSpec) -> Optional[RenderedDocument]:
        # openshift-operators already carries the global OperatorGroup
        if unit.operator is None or unit.operator.namespace == CLUSTER_WIDE_OPERATOR_NAMESPACE:
            return None
        doc = self._render("operatorgroup.yaml.j2", {"operator": unit.operator})
        return RenderedDocument(f"{unit.path}/operatorgroup.yaml", doc)

    def custom_resource(self, unit: UnitSpec) -> Optional[RenderedDocument]:
        cr = unit.custom_resource
        if cr is None:
            return None

        metadata: Dict[str, Any] = {"name": cr.name}
        if not cr.cluster_scoped:
            metadata["namespace"] = cr.namespace or unit.namespace

        doc = {
            "apiVersion": cr.api_version,
            "kind": cr.kind,
            "metadata": metadata,
            "spec": self._expand(cr.spec, unit),
        }
        return RenderedDocument(f"{unit.path}/{cr.kind.lower()}.yaml", doc)

    # ------------------------- public API -------------------------

    def render_unit(self, unit: UnitSpec) -> List[RenderedDocument]:
        """Render every document of *unit*. Template problems are ConfigurationError."""
        try:
            docs = [
                self.application(unit),
                self.operator_group(unit),
                self.subscription(unit),
                self.custom_resource(unit),
            ]
        except (TemplateError, yaml.YAMLError, ValueError) as e:
            raise ConfigurationError(
                f"cannot render unit '{unit.name}': {e}",
                unit=unit.name,
                step="render",
            ) from e
        return [d for d in docs if d is not None]

    def render_all(self, units: Optional[Iterable[UnitSpec]] = None) -> List[RenderedDocument]:
        units = list(self.config.units if units is None else units)
        out: List[RenderedDocument] = []
        for unit in units:
            out.extend(self.render_unit(unit))
        return out
