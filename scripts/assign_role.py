"""ユーザーにシステムロールを付与するスクリプト

ALLOW_SELF_ROLE_ASSIGNMENT=false で運用する環境の最初の Admin 作成や、
API を経由しない一括変更に使う。

実行方法:
    # Firestore Emulator で検証する場合
    FIRESTORE_EMULATOR_HOST=localhost:8080 python scripts/assign_role.py --uid <uid> --role Admin --dry-run

    # UID 指定
    python scripts/assign_role.py --uid <uid> --role Admin

    # メールアドレスで指定（Firebase Auth でメール→UID を解決）
    python scripts/assign_role.py --email user@example.com --role Supervisor

処理内容:
    users/{uid} が存在すれば role を更新、なければ指定ロールで作成する。
    ロール名は組み込みロールと roles コレクションのカスタムロールから検証する。
    既に同じロールの場合はスキップ（冪等）。
"""

from __future__ import annotations

import argparse
import logging
import os

import firebase_admin
from firebase_admin import auth as fb_auth
from firebase_admin import credentials as fb_creds
from google.cloud import firestore

from mineaction.adapters.firestore_repository import (
    FirestoreRoleRepository,
    FirestoreUserRepository,
)
from mineaction.domain.models import UserRecord
from mineaction.logging_config import setup_logging
from mineaction.services.role_registry import RoleRegistry

logger = logging.getLogger(__name__)


def _init_firebase() -> None:
    """Firebase Admin SDK を初期化（未初期化の場合のみ）。"""
    try:
        firebase_admin.get_app()
    except ValueError:
        project_id = os.environ.get("PROJECT_ID")
        firebase_admin.initialize_app(
            fb_creds.ApplicationDefault(),
            options={"projectId": project_id} if project_id else {},
        )


def resolve_uid_by_email(email: str) -> str:
    """Firebase Auth でメールアドレスから UID を取得する。"""
    _init_firebase()
    try:
        user = fb_auth.get_user_by_email(email)
    except fb_auth.UserNotFoundError:
        raise SystemExit(f"User not found in Firebase Auth: {email}")
    logger.info("Resolved uid=%s for email=%s", user.uid, email)
    return user.uid


def assign_role(
    users: FirestoreUserRepository, uid: str, role: str, dry_run: bool
) -> bool:
    """
    1ユーザーにロールを付与する。

    Returns:
        True: 更新（または作成）した場合（dry_run では予定）
        False: 既に同じロールのためスキップ
    """
    record = users.get_user(uid)
    if record is not None and record.role == role:
        logger.info("SKIP uid=%s (already %s)", uid, role)
        return False

    logger.info("ASSIGN uid=%s role=%s (dry_run=%s)", uid, role, dry_run)
    if dry_run:
        return True

    if record is None:
        users.create_user(UserRecord(uid=uid, role=role))
    else:
        users.update_role(uid, role)
    return True


def main() -> None:
    setup_logging()

    parser = argparse.ArgumentParser(description="Assign a system role to a user")
    parser.add_argument("--role", required=True, help="Role name (e.g. Admin)")
    parser.add_argument("--uid", type=str, default=None, help="Target uid")
    parser.add_argument("--email", type=str, default=None, help="Resolve uid from this email")
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Run without making any changes (preview only)",
    )
    args = parser.parse_args()

    if bool(args.uid) == bool(args.email):
        raise SystemExit("Specify exactly one of --uid or --email")

    project_id = os.environ.get("PROJECT_ID") or os.environ.get("GOOGLE_CLOUD_PROJECT")
    db = firestore.Client(project=project_id)
    logger.info("Firestore client initialized project=%s", project_id)

    registry = RoleRegistry(FirestoreRoleRepository(db))
    registry.load()
    if registry.find(args.role) is None:
        known = ", ".join(r.name for r in registry.roles)
        raise SystemExit(f"Unknown role: {args.role} (known: {known})")

    uid = args.uid or resolve_uid_by_email(args.email)
    assign_role(FirestoreUserRepository(db), uid, args.role, dry_run=args.dry_run)

    if args.dry_run:
        logger.info("DRY RUN: No changes were made")


if __name__ == "__main__":
    main()
