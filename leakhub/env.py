import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

DEFAULT_GITHUB_REPO = "elder-plinius/CL4R1T4S"
DEFAULT_GITHUB_BRANCH = "main"


def load_env() -> None:
    """Load .env from the working directory if present. Existing variables win."""
    env_path = Path.cwd() / ".env"
    if env_path.exists():
        load_dotenv(dotenv_path=env_path)


@dataclass
class Settings:
    db_path: Path = Path("data/leakhub.db")
    log_level: str = "INFO"
    log_dir: Path = Path("logs")
    workers: int = 4
    eval_retries: int = 3
    github_token: Optional[str] = None
    github_repo: str = DEFAULT_GITHUB_REPO
    github_branch: str = DEFAULT_GITHUB_BRANCH

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from LEAKHUB_* / GITHUB_* environment variables."""
        return cls(
            db_path=Path(os.getenv("LEAKHUB_DB_PATH", "data/leakhub.db")),
            log_level=os.getenv("LEAKHUB_LOG_LEVEL", "INFO"),
            log_dir=Path(os.getenv("LEAKHUB_LOG_DIR", "logs")),
            workers=int(os.getenv("LEAKHUB_WORKERS", "4")),
            eval_retries=int(os.getenv("LEAKHUB_EVAL_RETRIES", "3")),
            github_token=os.getenv("GITHUB_API_TOKEN") or None,
            github_repo=os.getenv("LEAKHUB_GITHUB_REPO", DEFAULT_GITHUB_REPO),
            github_branch=os.getenv("LEAKHUB_GITHUB_BRANCH", DEFAULT_GITHUB_BRANCH),
        )
