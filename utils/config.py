import os
from pathlib import Path
import yaml
from dotenv import load_dotenv

from utils.logger import logger

def load_cfg(cfg_path: str | None = None):

    base_dir = Path(__file__).resolve().parents[1]

    cfg_file = Path(cfg_path) if cfg_path else (base_dir / "config.yaml")

    load_dotenv(base_dir / ".env")

    with open(cfg_file, "r", encoding="utf-8") as f:
        raw_cfg = yaml.safe_load(f) or {}

    def resolve_env(obj):
        if isinstance(obj, dict):
            return {k: resolve_env(v) for k, v in obj.items()}
        if isinstance(obj, list):
            return [resolve_env(v) for v in obj]
        if isinstance(obj, str) and obj.startswith("${") and obj.endswith("}"):
            varname, _, default = obj[2:-1].partition(":-")
            return os.getenv(varname, default)
        return obj

    cfg = resolve_env(raw_cfg)

    def insecure_urls(obj, prefix=""):
        found = []
        if isinstance(obj, dict):
            for k, v in obj.items():
                found.extend(insecure_urls(v, f"{prefix}{k}."))
        elif isinstance(obj, str) and obj.startswith(("ws://", "http://")):
            found.append(prefix.rstrip("."))
        return found

    plain = insecure_urls(cfg)
    if plain:
        logger.warning(f"Unencrypted endpoints configured: {', '.join(plain)}")

    return cfg
