import os

from database_models import Seed
from services.media_service import MediaService
from services.media_cleanup import cleanup_unreferenced_media

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 32


def test_save_and_resolve(tmp_path):
    service = MediaService(upload_dir=str(tmp_path))
    result = service.save_file(PNG_BYTES, "image/png", 7, "planta.PNG")
    assert result["success"]
    assert result["url"].startswith("/uploads/user_7/")
    assert result["url"].endswith(".png")

    user_dir, filename = result["url"].split("/")[-2:]
    assert service.resolve_path(user_dir, filename) == result["file_path"]
    assert service.resolve_path("..", filename) is None
    assert service.resolve_path("user_7", "../secret") is None


def test_rejects_bad_uploads(tmp_path):
    service = MediaService(upload_dir=str(tmp_path), max_file_size=16)
    assert not service.save_file(b"", "image/png", 1)["success"]
    assert not service.save_file(PNG_BYTES, "image/png", 1)["success"]
    assert not service.save_file(b"hola", "text/plain", 1)["success"]
    assert service.save_file(b"RIFF", "audio/wav", 1)["url"].endswith(".wav")


def test_delete_by_url(tmp_path):
    service = MediaService(upload_dir=str(tmp_path))
    result = service.save_file(PNG_BYTES, "image/png", 3, "a.png")
    assert service.delete_by_url(result["url"])
    assert not os.path.exists(result["file_path"])
    assert not service.delete_by_url(result["url"])
    assert not service.delete_by_url("https://example.com/a.png")
    assert not service.delete_by_url(None)


def test_cleanup_keeps_referenced_files(db, make_user, tmp_path):
    service = MediaService(upload_dir=str(tmp_path))
    user_id = make_user()
    kept = service.save_file(PNG_BYTES, "image/png", user_id, "kept.png")
    orphan = service.save_file(PNG_BYTES, "image/png", user_id, "orphan.png")
    db.add(Seed(user_id=user_id, type="girasol", photo_url=kept["url"], share_code="ABC123"))
    db.commit()

    preview = cleanup_unreferenced_media(db, service, dry_run=True)
    assert preview["deleted"] == 1
    assert os.path.exists(orphan["file_path"])

    stats = cleanup_unreferenced_media(db, service)
    assert stats == {"scanned": 2, "deleted": 1, "failed": 0, "freed_bytes": len(PNG_BYTES)}
    assert os.path.exists(kept["file_path"])
    assert not os.path.exists(orphan["file_path"])
