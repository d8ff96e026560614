from .settings import CollectionSettings, KubernetesSettings, SchedulingMode, Settings, StorageSettings

__all__ = ["Settings", "KubernetesSettings", "CollectionSettings", "StorageSettings", "SchedulingMode"]
