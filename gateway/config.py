import os
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel

from gateway.models import NodeDescriptor

load_dotenv()


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


class Settings(BaseModel):
    root_dir: str = "./storage"
    api_key: Optional[str] = None
    port: int = 3001
    public_host: str = "localhost"
    node_id: Optional[str] = None

    redis_enabled: bool = True
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_password: Optional[str] = None
    # connect + read timeout for every coordination call, in seconds
    coordination_timeout: float = 0.5

    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            root_dir=os.getenv("ROOT_DIR", "./storage"),
            api_key=os.getenv("API_KEY") or None,
            port=int(os.getenv("PORT", "3001")),
            public_host=os.getenv("PUBLIC_HOST", "localhost"),
            node_id=os.getenv("NODE_ID") or None,
            redis_enabled=_env_bool("REDIS_ENABLED", True),
            redis_host=os.getenv("REDIS_HOST", "localhost"),
            redis_port=int(os.getenv("REDIS_PORT", "6379")),
            redis_password=os.getenv("REDIS_PASSWORD") or None,
            coordination_timeout=float(os.getenv("COORDINATION_TIMEOUT", "0.5")),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
        )

    @property
    def redis_url(self) -> str:
        if self.redis_password:
            return f"redis://:{self.redis_password}@{self.redis_host}:{self.redis_port}/0"
        return f"redis://{self.redis_host}:{self.redis_port}/0"

    def self_descriptor(self) -> NodeDescriptor:
        """Descriptor this node records as owner and registers under."""
        node_id = self.node_id or f"server-{os.getpid()}"
        return NodeDescriptor(id=node_id, host=self.public_host, port=self.port)
