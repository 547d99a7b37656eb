"""Cloud Storage Adapter

BlobStorage ABC の Google Cloud Storage 実装。
アクションのエビデンス（写真・ファイル）の保存・URL発行・削除を行う。

URL は Firebase Storage のダウンロードトークン形式で発行する。
トークンは blob のカスタムメタデータ firebaseStorageDownloadTokens に保存され、
有効期限を持たない（署名付きURLと違い、Action に保存しても失効しない）。
"""

from __future__ import annotations

import logging
import uuid
from urllib.parse import quote

from google.cloud import storage

from mineaction.domain.ports import BlobStorage

logger = logging.getLogger(__name__)

_TOKEN_KEY = "firebaseStorageDownloadTokens"
_DOWNLOAD_URL = "https://firebasestorage.googleapis.com/v0/b/{bucket}/o/{path}?alt=media&token={token}"


class GCSBlobStorage(BlobStorage):
    """
    Google Cloud Storage を使った BlobStorage 実装。

    全ファイルは単一バケット内の blob_path で管理する。
    パス規約: actions/{action_id}/evidence/{evidence_id}{ext}
    """

    def __init__(self, bucket_name: str, client: storage.Client | None = None) -> None:
        """
        Args:
            bucket_name: GCS バケット名（Firebase Storage のデフォルトバケット）
            client: 初期化済みの GCS クライアント（省略時は ADC で自動初期化）
        """
        self._client = client or storage.Client()
        self._bucket = self._client.bucket(bucket_name)
        self._bucket_name = bucket_name

    def upload(self, blob_path: str, content: bytes, content_type: str) -> str:
        """
        ファイルを GCS にアップロード。ダウンロードトークンを同時に付与する。

        Args:
            blob_path: GCS 上のパス（例: "actions/a1/evidence/e1.jpg"）
            content: バイナリ内容
            content_type: MIME タイプ（例: "image/jpeg"）

        Returns:
            ストレージパス（blob_path と同一）
        """
        blob = self._bucket.blob(blob_path)
        blob.metadata = {_TOKEN_KEY: str(uuid.uuid4())}
        blob.upload_from_string(content, content_type=content_type)
        logger.info(
            "Uploaded: bucket=%s, path=%s, size=%d bytes",
            self._bucket_name,
            blob_path,
            len(content),
        )
        return blob_path

    def get_retrievable_url(self, blob_path: str) -> str:
        """
        ダウンロードトークン付きの URL を返す。

        トークンが未設定の blob（コンソールから直接置いたファイル等）には
        新しいトークンを付与してから URL を組み立てる。

        Raises:
            FileNotFoundError: blob が存在しない場合
        """
        blob = self._bucket.get_blob(blob_path)
        if blob is None:
            raise FileNotFoundError(f"gs://{self._bucket_name}/{blob_path}")

        # 複数トークンはカンマ区切りで保存される。先頭を使う
        token = ((blob.metadata or {}).get(_TOKEN_KEY) or "").split(",")[0]
        if not token:
            token = str(uuid.uuid4())
            blob.metadata = {**(blob.metadata or {}), _TOKEN_KEY: token}
            blob.patch()
            logger.info("Download token added: bucket=%s, path=%s", self._bucket_name, blob_path)

        return _DOWNLOAD_URL.format(
            bucket=self._bucket_name, path=quote(blob_path, safe=""), token=token
        )

    def delete(self, blob_path: str) -> None:
        """
        GCS からファイルを削除。

        Note:
            ファイルが存在しない場合は警告ログを出力してスキップする。
        """
        blob = self._bucket.blob(blob_path)
        try:
            blob.delete()
            logger.info("Deleted: bucket=%s, path=%s", self._bucket_name, blob_path)
        except Exception:
            logger.warning(
                "Failed to delete (may not exist): bucket=%s, path=%s",
                self._bucket_name,
                blob_path,
            )
