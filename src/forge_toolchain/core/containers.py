from dependency_injector import containers, providers


class Container(containers.DeclarativeContainer):
    """DI container for toolchain discovery components."""

    config = providers.Configuration()

    @staticmethod
    def _create_settings(config, project_dir=".", **kwargs):
        from forge_toolchain.core.config import ToolchainSettings, load_config

        project_dir = project_dir or "."
        return ToolchainSettings.from_config(
            config or load_config(project_dir), project_dir=project_dir
        )

    @staticmethod
    def _create_registry(settings, **kwargs):
        from forge_toolchain.services.registry import ToolchainRegistry

        return ToolchainRegistry(settings=settings)

    settings = providers.Singleton(
        _create_settings,
        config=config.toolchain,
        project_dir=config.project_dir,
    )
    registry = providers.Singleton(_create_registry, settings=settings)
