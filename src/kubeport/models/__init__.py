"""
Core models and base settings for kubeport.

This module defines the base settings class used throughout the kubeport
configuration system and re-exports the tunnel data model.
"""

from typing import Type

from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    YamlConfigSettingsSource,
)


class CustomBaseSettings(BaseSettings):
    """
    Base settings for kubeport configuration groups.

    Inherit from this class to define configuration models that load from YAML,
    environment variables, and other sources.

    Example:
        class MySettings(CustomBaseSettings):
            MY_VAR: str = Field(default="value")
    """

    model_config = SettingsConfigDict(
        yaml_file="config.yaml",
        yaml_file_encoding="utf-8",
        alias_generator=lambda name: name.lower(),
        case_sensitive=False,
        nested_model_default_partial_update=True,
        extra="ignore",
        env_prefix="",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: Type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[
        PydanticBaseSettingsSource,
        PydanticBaseSettingsSource,
        PydanticBaseSettingsSource,
        PydanticBaseSettingsSource,
        YamlConfigSettingsSource,
    ]:
        # Make env_settings and dotenv_settings higher priority than YAML and init_settings
        return (
            env_settings,
            dotenv_settings,
            file_secret_settings,
            init_settings,
            YamlConfigSettingsSource(settings_cls),
        )


from .tunnel import (  # noqa: E402
    ProcessInfo,
    TunnelConfig,
    TunnelState,
    TunnelStatus,
)

__all__ = [
    "CustomBaseSettings",
    "ProcessInfo",
    "TunnelConfig",
    "TunnelState",
    "TunnelStatus",
]
