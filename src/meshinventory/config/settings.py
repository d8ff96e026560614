# config/settings.py
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional
from enum import Enum
from dotenv import load_dotenv

# Load .env file explicitly
load_dotenv()


class LogLevel(str, Enum):
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class SchedulingMode(str, Enum):
    COMPLETION = "completion"
    BATCH = "batch"


class KubernetesSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="K8S_")

    kubeconfig_path: Optional[str] = Field(None, description="Path to kubeconfig file")
    context: Optional[str] = Field(None, description="Kubernetes context to use")


class CollectionSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="COLLECTION_")

    max_workers: Optional[int] = Field(None, description="Parallel workers (default: host cores, capped)")
    scheduling: SchedulingMode = Field(SchedulingMode.COMPLETION, description="Pool scheduling discipline")
    timeout_seconds: Optional[int] = Field(300, description="Timeout for a single node or namespace")
    retry_attempts: int = Field(3, description="Number of retry attempts per API call")
    retry_backoff_factor: float = Field(1.5, description="Backoff factor for retries")
    sidecar_container_name: str = Field("istio-proxy", description="Name of the mesh proxy container")
    mesh_only: bool = Field(False, description="Only collect mesh-injected namespaces")
    include_native_sidecars: bool = Field(True, description="Count init containers with restartPolicy Always")

    @field_validator('scheduling', mode='before')
    @classmethod
    def validate_scheduling(cls, v):
        if isinstance(v, str):
            return SchedulingMode(v.lower())
        return v


class StorageSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="STORAGE_")

    output_path: str = Field("cluster_info.json", description="Snapshot document path")


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    debug: bool = Field(False, description="Debug mode")
    log_level: LogLevel = Field(LogLevel.INFO, description="Log level")
    log_format: str = Field("console", description="Log format (json or console)")
    log_config_path: Optional[str] = Field(None, description="YAML logging dictConfig file")
    obfuscate: bool = Field(False, description="Hash cluster, node and namespace names")
    resume: bool = Field(False, description="Skip entries already present in the output")

    kubernetes: KubernetesSettings = Field(default_factory=lambda: KubernetesSettings())
    collection: CollectionSettings = Field(default_factory=lambda: CollectionSettings())
    storage: StorageSettings = Field(default_factory=lambda: StorageSettings())

    @field_validator('log_level', mode='before')
    @classmethod
    def validate_log_level(cls, v):
        if isinstance(v, str):
            return LogLevel(v.upper())
        return v

    @classmethod
    def create_from_env(cls) -> "Settings":
        """Create settings instance from environment variables."""
        return cls()
