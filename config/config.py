from dataclasses import dataclass, field
from typing import List, Mapping, Optional
import os

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

TRANSPORTS = ("kubectl", "ssh", "local")


@dataclass(frozen=True)
class Settings:
    debug: bool = False
    transport: str = "kubectl"
    deployment_name: str = "go-ipfs-stress"
    kubectl: str = "kubectl"
    namespace: Optional[str] = None
    poll_interval: float = 3.0
    max_parallel: int = 0
    ssh_hosts: List[str] = field(default_factory=list)
    ssh_user: Optional[str] = None
    ssh_password: Optional[str] = None
    ssh_key_file: Optional[str] = None
    ssh_port: int = 22


def load_settings(environ: Optional[Mapping[str, str]] = None, **overrides) -> Settings:
    """
    Build Settings from the process environment (or the given mapping).
    Keyword overrides whose value is None are ignored, so CLI flags can be
    passed straight through.
    """
    env = os.environ if environ is None else environ

    hosts = [h.strip() for h in env.get("SSH_HOSTS", "").split(",") if h.strip()]

    values = dict(
        debug=bool(env.get("DEBUG")),
        transport=env.get("CLUSTER_TRANSPORT", "kubectl"),
        deployment_name=env.get("DEPLOYMENT_NAME", "go-ipfs-stress"),
        kubectl=env.get("KUBECTL_BIN", "kubectl"),
        namespace=env.get("KUBE_NAMESPACE") or None,
        poll_interval=float(env.get("SCALE_POLL_INTERVAL", "3")),
        max_parallel=int(env.get("MAX_PARALLEL", "0")),
        ssh_hosts=hosts,
        ssh_user=env.get("SSH_USER") or None,
        ssh_password=env.get("SSH_PASSWORD") or None,
        ssh_key_file=env.get("SSH_KEY_FILE") or None,
        ssh_port=int(env.get("SSH_PORT", "22")),
    )
    values.update({k: v for k, v in overrides.items() if v is not None})

    if values["transport"] not in TRANSPORTS:
        raise ValueError(
            f"Unknown transport '{values['transport']}', expected one of {', '.join(TRANSPORTS)}"
        )
    if values["max_parallel"] < 0:
        raise ValueError("MAX_PARALLEL must be >= 0")

    return Settings(**values)
