"""GCSBlobStorage のユニットテスト（GCS クライアントはモック）"""

from unittest.mock import MagicMock

import pytest
from mineaction.adapters.cloud_storage import GCSBlobStorage


@pytest.fixture
def client():
    return MagicMock()


@pytest.fixture
def blob(client):
    return client.bucket.return_value.blob.return_value


@pytest.fixture
def stored_blob(client):
    """get_blob で取得される既存 blob"""
    return client.bucket.return_value.get_blob.return_value


class TestUpload:
    def test_upload(self, client, blob):
        storage = GCSBlobStorage("evidence-bucket", client=client)

        path = storage.upload("actions/a1/evidence/e1.jpg", b"jpeg", "image/jpeg")

        client.bucket.assert_called_once_with("evidence-bucket")
        blob.upload_from_string.assert_called_once_with(b"jpeg", content_type="image/jpeg")
        assert path == "actions/a1/evidence/e1.jpg"

    def test_upload_sets_download_token(self, client, blob):
        """アップロード時にダウンロードトークンをメタデータに付与する"""
        storage = GCSBlobStorage("evidence-bucket", client=client)

        storage.upload("actions/a1/evidence/e1.jpg", b"jpeg", "image/jpeg")

        assert blob.metadata["firebaseStorageDownloadTokens"]

    def test_upload_error_propagates(self, client, blob):
        blob.upload_from_string.side_effect = RuntimeError("403 Forbidden")
        storage = GCSBlobStorage("evidence-bucket", client=client)

        with pytest.raises(RuntimeError):
            storage.upload("p", b"x", "text/plain")


class TestRetrievableUrl:
    def test_download_token_url(self, client, stored_blob):
        """トークン付きの失効しない URL を返す（パスは URL エンコード）"""
        # Arrange
        stored_blob.metadata = {"firebaseStorageDownloadTokens": "tok-1"}
        storage = GCSBlobStorage("evidence-bucket", client=client)

        # Act
        url = storage.get_retrievable_url("actions/a1/evidence/e1.jpg")

        # Assert
        assert url == (
            "https://firebasestorage.googleapis.com/v0/b/evidence-bucket/o/"
            "actions%2Fa1%2Fevidence%2Fe1.jpg?alt=media&token=tok-1"
        )
        stored_blob.generate_signed_url.assert_not_called()
        stored_blob.patch.assert_not_called()

    def test_first_of_multiple_tokens(self, client, stored_blob):
        stored_blob.metadata = {"firebaseStorageDownloadTokens": "tok-1,tok-2"}
        storage = GCSBlobStorage("evidence-bucket", client=client)

        assert storage.get_retrievable_url("e1.jpg").endswith("token=tok-1")

    def test_missing_token_is_added(self, client, stored_blob):
        """トークンのない blob にはトークンを付与して保存する"""
        stored_blob.metadata = {"origin": "console"}
        storage = GCSBlobStorage("evidence-bucket", client=client)

        url = storage.get_retrievable_url("e1.jpg")

        token = stored_blob.metadata["firebaseStorageDownloadTokens"]
        assert stored_blob.metadata["origin"] == "console"
        assert url.endswith(f"token={token}")
        stored_blob.patch.assert_called_once()

    def test_missing_blob(self, client):
        client.bucket.return_value.get_blob.return_value = None
        storage = GCSBlobStorage("evidence-bucket", client=client)

        with pytest.raises(FileNotFoundError):
            storage.get_retrievable_url("actions/a1/evidence/missing.jpg")


class TestDelete:
    def test_delete(self, client, blob):
        storage = GCSBlobStorage("evidence-bucket", client=client)

        storage.delete("actions/a1/evidence/e1.jpg")

        blob.delete.assert_called_once()

    def test_delete_missing_blob_is_skipped(self, client, blob):
        """存在しないファイルの削除は警告ログのみで例外にしない"""
        blob.delete.side_effect = RuntimeError("404 Not Found")
        storage = GCSBlobStorage("evidence-bucket", client=client)

        storage.delete("actions/a1/evidence/missing.jpg")

        blob.delete.assert_called_once()
