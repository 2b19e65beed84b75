"""Read-only access to bundle and project metadata."""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

import yaml


@dataclass(frozen=True, slots=True)
class Bundle:
    id: str
    project_id: str
    name: str | None = None


@dataclass(frozen=True, slots=True)
class Project:
    id: str
    name: str | None = None


class DocumentStore(Protocol):
    """Lookup contract; both methods return ``None`` for unknown ids."""

    def get_bundle(self, bundle_id: str) -> Bundle | None: ...

    def get_project(self, project_id: str) -> Project | None: ...


class InMemoryDocumentStore:
    def __init__(self, bundles: list[Bundle] | None = None, projects: list[Project] | None = None) -> None:
        self._bundles = {bundle.id: bundle for bundle in bundles or []}
        self._projects = {project.id: project for project in projects or []}

    def get_bundle(self, bundle_id: str) -> Bundle | None:
        return self._bundles.get(bundle_id)

    def get_project(self, project_id: str) -> Project | None:
        return self._projects.get(project_id)


class YamlDocumentStore(InMemoryDocumentStore):
    """Documents loaded once from a YAML file with ``bundles`` and ``projects`` lists."""

    def __init__(self, path: Path) -> None:
        with Path(path).open("r", encoding="utf-8") as fp:
            data = yaml.safe_load(fp) or {}
        bundles = [
            Bundle(id=str(item["id"]), project_id=str(item["project_id"]), name=item.get("name"))
            for item in data.get("bundles") or []
        ]
        projects = [Project(id=str(item["id"]), name=item.get("name")) for item in data.get("projects") or []]
        super().__init__(bundles, projects)
        self.path = Path(path)


__all__ = ["Bundle", "DocumentStore", "InMemoryDocumentStore", "Project", "YamlDocumentStore"]
