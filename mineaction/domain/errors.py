"""ドメイン固有の例外クラス"""


class MineActionError(Exception):
    """MineAction の基底例外"""

    pass


class AuthFailure(MineActionError):
    """サインイン失敗（トークン不正・ポップアップ拒否等）。再試行可能"""

    pass


class PermissionDenied(MineActionError):
    """ロールチェック失敗"""

    pass


class NotFoundError(MineActionError):
    """参照先エンティティが存在しない"""

    def __init__(self, kind: str, entity_id: str) -> None:
        super().__init__(f"{kind} not found: {entity_id}")
        self.kind = kind
        self.entity_id = entity_id


class WriteFailedError(MineActionError):
    """バックエンドへの書き込みが拒否された（リトライしない）"""

    pass


class UploadFailedError(MineActionError):
    """エビデンスのバイナリアップロード失敗"""

    pass


class DuplicateRoleError(MineActionError):
    """同名のロールが既に存在する"""

    def __init__(self, name: str) -> None:
        super().__init__(f"Role with name '{name}' already exists")
        self.name = name


class PartialFailure(MineActionError):
    """
    主書き込みはコミット済みだが後続ステップ（監査ログ・メタデータ追記等）が失敗した。

    補償トランザクションは行わない。entity_id はコミット済みのエンティティ。
    """

    def __init__(self, message: str, entity_id: str) -> None:
        super().__init__(message)
        self.entity_id = entity_id
