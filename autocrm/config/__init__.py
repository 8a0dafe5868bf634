from autocrm.config.settings import Settings, settings

__all__ = ["Settings", "settings"]
