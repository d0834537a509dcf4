import asyncio

import click
from dependency_injector.wiring import Provide, inject
from rich.console import Console

from forge_toolchain.core.containers import Container
from forge_toolchain.core.domain.errors import MandatoryToolMissing, ToolchainError
from forge_toolchain.core.presentation.logging import ToolchainFormatter

console = Console(stderr=True)

BUNDLES = {
    "csmith": "resolve_csmith_toolchain",
    "llvm": "resolve_llvm_toolchain",
    "emscripten": "resolve_emscripten",
    "spec": "resolve_spec_interpreter",
    "generate": "resolve_generate_toolchain",
}


async def resolve_bundles(registry, names):
    """Resolve each named bundle in order; the first failure aborts the rest."""
    results = {}
    for name in names:
        bundle = await getattr(registry, BUNDLES[name])()
        results[name] = bundle.as_dict()
    return results


@click.command()
@click.argument(
    "bundle", default="all", type=click.Choice(["all", *BUNDLES], case_sensitive=False)
)
@inject
def check(
    bundle,
    registry: Container.registry = Provide[Container.registry],
):
    """Locate the external tools a build step needs and report their paths."""
    names = list(BUNDLES) if bundle == "all" else [bundle.lower()]
    try:
        results = asyncio.run(resolve_bundles(registry, names))
    except MandatoryToolMissing as e:
        console.print(ToolchainFormatter.format_missing(str(e)))
        raise SystemExit(1)
    except ToolchainError as e:
        console.print(ToolchainFormatter.format_error(str(e)))
        raise SystemExit(1)

    for name, roles in results.items():
        console.print(ToolchainFormatter.bundle_table(name, roles))
