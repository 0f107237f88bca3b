import io
from datetime import timedelta

import pytest

from catalog import CURRICULUM_EXTENSIONS, LIBRARY_EXTENSIONS
from errors import Unauthorized, ValidationError
from security import PasswordHasher, TokenIssuer
from uploads import UploadStore, describe_extensions


def test_describe_extensions():
    assert describe_extensions(LIBRARY_EXTENSIONS) == "PDF, DOC, and DOCX"
    assert describe_extensions([".pdf", ".doc"]) == "PDF and DOC"


def test_save_writes_timestamped_file(tmp_path):
    store = UploadStore(tmp_path, 1024)

    link = store.save("curriculum", "notes.pdf", io.BytesIO(b"%PDF-1.4"), CURRICULUM_EXTENSIONS)

    assert link.startswith("/uploads/curriculum/")
    assert link.endswith("-notes.pdf")
    assert store.path_for(link).read_bytes() == b"%PDF-1.4"


def test_save_rejects_wrong_extension(tmp_path):
    store = UploadStore(tmp_path, 1024)
    with pytest.raises(ValidationError, match="Only PDF, DOC, and DOCX files are allowed"):
        store.save("library", "slides.pptx", io.BytesIO(b"x"), LIBRARY_EXTENSIONS)


def test_save_rejects_oversized_file_and_cleans_up(tmp_path):
    store = UploadStore(tmp_path, 1024 * 1024)
    with pytest.raises(ValidationError, match="exceeds the 1MB limit"):
        store.save("library", "big.pdf", io.BytesIO(b"x" * (1024 * 1024 + 1)), LIBRARY_EXTENSIONS)
    assert list((tmp_path / "library").iterdir()) == []


def test_remove_only_touches_local_uploads(tmp_path):
    store = UploadStore(tmp_path, 1024)
    link = store.save("library", "book.pdf", io.BytesIO(b"x"), LIBRARY_EXTENSIONS)
    outside = tmp_path.parent / "keep.txt"
    outside.write_text("keep")

    store.remove("https://example.org/book.pdf")
    store.remove("/uploads/../keep.txt")
    store.remove(link)

    assert store.path_for(link).exists() is False
    assert outside.exists()


def test_password_hash_roundtrip():
    hasher = PasswordHasher(rounds=4)
    hashed = hasher.hash("secret123")
    assert hashed != "secret123"
    assert hasher.verify("secret123", hashed)
    assert not hasher.verify("wrong", hashed)
    assert not hasher.verify("secret123", "")


def test_token_carries_only_user_id():
    tokens = TokenIssuer("test-secret")
    token = tokens.create_access_token("abc123")
    assert tokens.decode_user_id(token) == "abc123"


def test_expired_or_foreign_token_is_rejected():
    tokens = TokenIssuer("test-secret")
    expired = tokens.create_access_token("abc123", expires_delta=timedelta(seconds=-5))
    foreign = TokenIssuer("other-secret").create_access_token("abc123")
    for token in (expired, foreign, "not-a-jwt"):
        with pytest.raises(Unauthorized):
            tokens.decode_user_id(token)
