"""設定管理 - 環境変数の型安全な読み込み"""

import os
from dataclasses import dataclass
from dotenv import load_dotenv


def _env_flag(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class AppConfig:
    """アプリケーション設定"""
    project_id: str
    gcs_bucket_name: str
    app_timezone: str = "UTC"
    allow_self_role_assignment: bool = True

    @classmethod
    def from_env(cls) -> "AppConfig":
        """環境変数から設定を読み込む"""
        load_dotenv()

        project_id = os.getenv("PROJECT_ID")
        if not project_id:
            raise ValueError("PROJECT_ID is not set in environment")

        gcs_bucket_name = os.getenv("GCS_BUCKET_NAME")
        if not gcs_bucket_name:
            raise ValueError("GCS_BUCKET_NAME is not set in environment")

        return cls(
            project_id=project_id,
            gcs_bucket_name=gcs_bucket_name,
            app_timezone=os.getenv("APP_TIMEZONE", "UTC"),
            allow_self_role_assignment=_env_flag("ALLOW_SELF_ROLE_ASSIGNMENT", True),
        )
