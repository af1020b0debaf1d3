from .settings import RegistrySettings, load_settings

__all__ = ["RegistrySettings", "load_settings"]
