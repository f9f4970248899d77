# src/build/recipe.py — v1
"""Layered build recipes rendered to Dockerfile text.

A recipe is an ordered list of stages. Each stage fetches a base layer,
installs dependencies, copies the source, optionally compiles it, and
may copy build output from an earlier stage. The last stage is the
runtime image: it declares the exposed port and the startup command.

Default recipes cover the two services of the tutorial application:
a Node.js REST backend and a single-page frontend compiled to static
assets and served by nginx.
"""

from __future__ import annotations

import json

from pydantic import BaseModel, Field, model_validator

from shipline.core.errors import BuildFailure


class CopyFrom(BaseModel):
    """Copy build output from a named earlier stage."""

    stage: str
    source: str
    destination: str


class RecipeStage(BaseModel):
    """One layer group of a multi-stage build."""

    base: str
    name: str | None = None
    workdir: str = "/app"
    dependency_files: list[str] = Field(default_factory=list)
    install: list[str] = Field(default_factory=list)
    copy_source: bool = False
    compile: list[str] = Field(default_factory=list)
    copy_from: list[CopyFrom] = Field(default_factory=list)
    files: dict[str, str] = Field(default_factory=dict)


class BuildRecipe(BaseModel):
    """Build description for one service."""

    service: str
    stages: list[RecipeStage]
    expose: int
    command: list[str]

    @model_validator(mode="after")
    def validate_stages(self) -> BuildRecipe:
        if not self.stages:
            raise ValueError("recipe needs at least one stage")
        if not self.command:
            raise ValueError("recipe needs a startup command")
        seen: set[str] = set()
        for stage in self.stages:
            for copy in stage.copy_from:
                if copy.stage not in seen:
                    raise ValueError(
                        f"stage copies from '{copy.stage}' which is not an earlier stage"
                    )
            if stage.name:
                seen.add(stage.name)
        return self

    def render(self) -> str:
        """Render the recipe as Dockerfile text."""
        lines: list[str] = []
        for stage in self.stages:
            if lines:
                lines.append("")
            header = f"FROM {stage.base}"
            if stage.name:
                header += f" AS {stage.name}"
            lines.append(header)
            lines.append(f"WORKDIR {stage.workdir}")
            if stage.dependency_files:
                lines.append(f"COPY {' '.join(stage.dependency_files)} ./")
            lines.extend(f"RUN {cmd}" for cmd in stage.install)
            if stage.copy_source:
                lines.append("COPY . .")
            lines.extend(f"RUN {cmd}" for cmd in stage.compile)
            for copy in stage.copy_from:
                lines.append(f"COPY --from={copy.stage} {copy.source} {copy.destination}")
            for source, destination in stage.files.items():
                lines.append(f"COPY {source} {destination}")
        lines.append(f"EXPOSE {self.expose}")
        lines.append(f"CMD {json.dumps(self.command)}")
        return "\n".join(lines) + "\n"


def backend_recipe(node_version: str = "18", port: int = 8080) -> BuildRecipe:
    """Node.js REST API: install deps, copy source, run the server."""
    return BuildRecipe(
        service="backend",
        stages=[
            RecipeStage(
                base=f"node:{node_version}-alpine",
                dependency_files=["package*.json"],
                install=["npm install --omit=dev"],
                copy_source=True,
            )
        ],
        expose=port,
        command=["node", "server.js"],
    )


def frontend_recipe(
    node_version: str = "18",
    dist_dir: str = "/app/dist",
    port: int = 80,
) -> BuildRecipe:
    """SPA: compile to static assets, serve them from nginx."""
    return BuildRecipe(
        service="frontend",
        stages=[
            RecipeStage(
                base=f"node:{node_version}-alpine",
                name="build",
                dependency_files=["package*.json"],
                install=["npm install"],
                copy_source=True,
                compile=["npm run build"],
            ),
            RecipeStage(
                base="nginx:alpine",
                workdir="/usr/share/nginx/html",
                copy_from=[
                    CopyFrom(stage="build", source=dist_dir, destination="/usr/share/nginx/html")
                ],
                files={"nginx.conf": "/etc/nginx/conf.d/default.conf"},
            ),
        ],
        expose=port,
        command=["nginx", "-g", "daemon off;"],
    )


_DEFAULT_RECIPES = {
    "backend": backend_recipe,
    "frontend": frontend_recipe,
}


def default_recipe(service: str) -> BuildRecipe:
    """Return the built-in recipe for ``service``.

    Raises:
        BuildFailure: If no default recipe exists for the service.
    """
    factory = _DEFAULT_RECIPES.get(service)
    if factory is None:
        raise BuildFailure(
            service,
            f"no default recipe; available: {', '.join(sorted(_DEFAULT_RECIPES))}",
        )
    return factory()
