from transfer.loaders.dhis2_loader import DataValueLoader, ImportOptions

__all__ = ["DataValueLoader", "ImportOptions"]
