"""
tests/test_upload_ingestor.py

Pytest unit tests for UploadIngestor.

Every test works inside pytest's ``tmp_path``: a staging directory plays the
platform's temporary upload area and a sibling directory is the storage root.

Coverage
--------
- MIME allow-list membership and the empty-list bypass
- Strict size limit, explicit and platform-derived
- No side effects on rejected construction
- Extension derivation and caller-supplied extensions
- Generated name shape and uniqueness
- Directory creation idempotence and failure
- Move failures and the cross-filesystem copy path
- Single-shot store and path queries before store
"""

from __future__ import annotations

import errno
import os
import re
from pathlib import Path

import pytest

from uploads import ingestor as ingestor_module
from uploads.errors import (
    FileTooLargeError,
    InvalidExtensionError,
    InvalidStateError,
    MalformedRequestError,
    MoveFailedError,
    StorageUnavailableError,
    UnsupportedMediaTypeError,
)
from uploads.ingestor import UploadIngestor
from uploads.types import StorageRoot, UploadConfig, UploadRequest


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def storage_root(tmp_path: Path) -> StorageRoot:
    return StorageRoot(upload_dir=tmp_path / "uploads", upload_max_filesize="2M", post_max_size="8M")


@pytest.fixture()
def staging_dir(tmp_path: Path) -> Path:
    path = tmp_path / "staging"
    path.mkdir()
    return path


@pytest.fixture()
def make_request(staging_dir: Path):
    counter = {"n": 0}

    def _make(
        original_name: str = "photo.png",
        *,
        mime: str = "image/png",
        content: bytes = b"\x89PNG fake image bytes",
        size_bytes: int | None = None,
    ) -> UploadRequest:
        counter["n"] += 1
        staged = staging_dir / f"php{counter['n']}.tmp"
        staged.write_bytes(content)
        return UploadRequest(
            original_name=original_name,
            temporary_location=staged,
            declared_mime_type=mime,
            size_bytes=len(content) if size_bytes is None else size_bytes,
        )

    return _make


def _config(**kwargs) -> UploadConfig:
    kwargs.setdefault("storage_subdirectory", "avatars")
    return UploadConfig.build(**kwargs)


# ---------------------------------------------------------------------------
# MIME validation
# ---------------------------------------------------------------------------


class TestMimeValidation:
    @pytest.mark.parametrize(
        ("allowed", "declared", "accepted"),
        [
            ((), "application/x-anything", True),
            ((), "", True),
            (("image/png",), "image/png", True),
            (("image/png", "image/jpeg"), "image/jpeg", True),
            (("image/png",), "image/gif", False),
            (("image/png",), "IMAGE/PNG", False),
            (("image/*",), "image/png", False),
            (("image/png",), "image/png; charset=binary", False),
        ],
    )
    def test_accepts_iff_list_empty_or_member(self, make_request, storage_root, allowed, declared, accepted) -> None:
        request = make_request(mime=declared)
        config = _config(allowed_mime_types=allowed)

        if accepted:
            UploadIngestor(request, config, storage_root)
        else:
            with pytest.raises(UnsupportedMediaTypeError) as exc_info:
                UploadIngestor(request, config, storage_root)
            assert exc_info.value.context["declared_mime_type"] == declared


# ---------------------------------------------------------------------------
# Size validation
# ---------------------------------------------------------------------------


class TestSizeValidation:
    def test_below_explicit_limit_is_accepted(self, make_request, storage_root) -> None:
        ingestor = UploadIngestor(make_request(size_bytes=99), _config(max_file_size_bytes=100), storage_root)
        assert ingestor.effective_size_limit == 100

    def test_exactly_at_limit_is_rejected(self, make_request, storage_root) -> None:
        with pytest.raises(FileTooLargeError) as exc_info:
            UploadIngestor(make_request(size_bytes=100), _config(max_file_size_bytes=100), storage_root)
        assert exc_info.value.context == {"size_bytes": 100, "limit_bytes": 100}

    def test_zero_limit_uses_smaller_platform_limit(self, make_request, storage_root) -> None:
        two_megabytes = 2 * 1024 * 1024

        UploadIngestor(make_request(size_bytes=two_megabytes - 1), _config(), storage_root)
        with pytest.raises(FileTooLargeError):
            UploadIngestor(make_request(size_bytes=two_megabytes), _config(), storage_root)

    def test_zero_limit_uses_storage_root_override_below_platform(self, make_request, tmp_path) -> None:
        root = StorageRoot(upload_dir=tmp_path / "uploads", max_upload_size_bytes=10)

        UploadIngestor(make_request(size_bytes=9), _config(), root)
        with pytest.raises(FileTooLargeError):
            UploadIngestor(make_request(size_bytes=10), _config(), root)

    def test_override_above_platform_limit_does_not_raise_it(self, make_request, tmp_path) -> None:
        root = StorageRoot(
            upload_dir=tmp_path / "uploads",
            max_upload_size_bytes=5 * 1024 * 1024,
            upload_max_filesize="2M",
            post_max_size="8M",
        )

        with pytest.raises(FileTooLargeError) as exc_info:
            UploadIngestor(make_request(size_bytes=3 * 1024 * 1024), _config(), root)
        assert exc_info.value.context["limit_bytes"] == 2 * 1024 * 1024

    def test_explicit_limit_ignores_platform_limit(self, make_request, storage_root) -> None:
        big = 4 * 1024 * 1024
        ingestor = UploadIngestor(make_request(size_bytes=big), _config(max_file_size_bytes=big + 1), storage_root)
        assert ingestor.effective_size_limit == big + 1


# ---------------------------------------------------------------------------
# Structural validation and side effects
# ---------------------------------------------------------------------------


class TestConstruction:
    def test_accepts_untyped_submission_mapping(self, staging_dir, storage_root) -> None:
        staged = staging_dir / "php-raw.tmp"
        staged.write_bytes(b"hello")
        submission = {"name": "notes.txt", "tmp_name": str(staged), "type": "text/plain", "size": 5}

        ingestor = UploadIngestor(submission, _config(), storage_root)

        assert ingestor.request.temporary_location == staged
        assert ingestor.request.size_bytes == 5

    def test_rejects_mapping_missing_fields(self, storage_root) -> None:
        with pytest.raises(MalformedRequestError):
            UploadIngestor({"name": "notes.txt"}, _config(), storage_root)

    def test_rejects_unrelated_objects(self, storage_root) -> None:
        with pytest.raises(MalformedRequestError):
            UploadIngestor("photo.png", _config(), storage_root)  # type: ignore[arg-type]

    def test_rejection_leaves_no_side_effects(self, make_request, storage_root) -> None:
        request = make_request(mime="text/html")

        with pytest.raises(UnsupportedMediaTypeError):
            UploadIngestor(request, _config(allowed_mime_types=["image/png"]), storage_root)

        assert not storage_root.upload_dir.exists()
        assert request.temporary_location.exists()

    def test_paths_are_unavailable_before_store(self, make_request, storage_root) -> None:
        ingestor = UploadIngestor(make_request(), _config(), storage_root)

        with pytest.raises(InvalidStateError):
            _ = ingestor.relative_path
        with pytest.raises(InvalidStateError):
            _ = ingestor.absolute_path


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------


class TestStore:
    def test_end_to_end_avatar_upload(self, make_request, storage_root) -> None:
        request = make_request("me.png", mime="image/png", size_bytes=500_000)
        config = _config(allowed_mime_types=["image/png"], max_file_size_bytes=1_000_000)

        ingestor = UploadIngestor(request, config, storage_root)
        stored = ingestor.store("avatar", "png")

        assert re.fullmatch(r"avatars/avatar_[0-9a-f]{32}\.png", stored.relative_path)
        assert stored.absolute_path == storage_root.upload_dir / stored.relative_path
        assert stored.absolute_path.read_bytes() == b"\x89PNG fake image bytes"
        assert not request.temporary_location.exists()
        assert ingestor.relative_path == stored.relative_path
        assert ingestor.absolute_path == stored.absolute_path
        assert stored.mime_type == "image/png"
        assert stored.size_bytes == 500_000

    def test_generated_name_uses_token_factory(self, make_request, storage_root) -> None:
        ingestor = UploadIngestor(make_request(), _config(), storage_root, token_factory=lambda: "abc123")

        stored = ingestor.store("avatar")

        assert stored.generated_name == "avatar_abc123.png"
        assert stored.relative_path == "avatars/avatar_abc123.png"

    def test_empty_subdirectory_stores_at_root(self, make_request, storage_root) -> None:
        config = UploadConfig()
        stored = UploadIngestor(make_request(), config, storage_root, token_factory=lambda: "t").store("logo")

        assert stored.relative_path == "logo_t.png"
        assert stored.absolute_path == storage_root.upload_dir / "logo_t.png"

    def test_generated_names_are_unique(self, make_request, storage_root) -> None:
        first = UploadIngestor(make_request(), _config(), storage_root).store("report")
        second = UploadIngestor(make_request(), _config(), storage_root).store("report")

        assert first.generated_name != second.generated_name
        assert first.absolute_path.exists()
        assert second.absolute_path.exists()

    def test_existing_subdirectory_is_reused(self, make_request, storage_root) -> None:
        (storage_root.upload_dir / "avatars").mkdir(parents=True)

        UploadIngestor(make_request(), _config(), storage_root).store("one")
        UploadIngestor(make_request(), _config(), storage_root).store("two")

        assert len(list((storage_root.upload_dir / "avatars").iterdir())) == 2

    def test_nested_subdirectory_is_created(self, make_request, storage_root) -> None:
        config = _config(storage_subdirectory="users/42/avatars")
        stored = UploadIngestor(make_request(), config, storage_root).store("me")

        assert stored.relative_path.startswith("users/42/avatars/me_")
        assert stored.absolute_path.exists()

    def test_base_name_is_reduced_to_final_component(self, make_request, storage_root) -> None:
        ingestor = UploadIngestor(make_request(), _config(), storage_root, token_factory=lambda: "t")

        stored = ingestor.store("../../etc/passwd")

        assert stored.relative_path == "avatars/passwd_t.png"

    def test_empty_base_name_is_malformed(self, make_request, storage_root) -> None:
        ingestor = UploadIngestor(make_request(), _config(), storage_root)

        with pytest.raises(MalformedRequestError):
            ingestor.store("  ")

    def test_base_name_with_null_byte_is_malformed(self, make_request, storage_root) -> None:
        request = make_request()
        ingestor = UploadIngestor(request, _config(), storage_root)

        with pytest.raises(MalformedRequestError):
            ingestor.store("a\x00b")

        assert request.temporary_location.exists()

    def test_second_store_is_rejected(self, make_request, storage_root) -> None:
        ingestor = UploadIngestor(make_request(), _config(), storage_root)
        stored = ingestor.store("once")

        with pytest.raises(InvalidStateError) as exc_info:
            ingestor.store("twice")

        assert exc_info.value.context["relative_path"] == stored.relative_path
        assert ingestor.relative_path == stored.relative_path


class TestExtensionResolution:
    def test_derives_last_suffix(self, make_request, storage_root) -> None:
        ingestor = UploadIngestor(make_request("report.final.pdf", mime="application/pdf"), _config(), storage_root)

        assert ingestor.store("doc").generated_name.endswith(".pdf")

    @pytest.mark.parametrize("original_name", ["noext", "trailing."])
    def test_missing_suffix_is_rejected(self, make_request, storage_root, original_name) -> None:
        request = make_request(original_name)
        ingestor = UploadIngestor(request, _config(), storage_root)

        with pytest.raises(InvalidExtensionError):
            ingestor.store("doc")

        assert request.temporary_location.exists()

    def test_caller_extension_is_used_verbatim(self, make_request, storage_root) -> None:
        ingestor = UploadIngestor(make_request("noext"), _config(), storage_root, token_factory=lambda: "t")

        assert ingestor.store("doc", "tar.gz").generated_name == "doc_t.tar.gz"

    def test_extension_with_path_separator_is_rejected(self, make_request, storage_root) -> None:
        ingestor = UploadIngestor(make_request(), _config(), storage_root)

        with pytest.raises(InvalidExtensionError):
            ingestor.store("doc", "png/../../x")

    def test_extension_with_null_byte_is_rejected(self, make_request, storage_root) -> None:
        ingestor = UploadIngestor(make_request(), _config(), storage_root)

        with pytest.raises(InvalidExtensionError):
            ingestor.store("doc", "png\x00")

    def test_derived_extension_with_null_byte_is_rejected(self, make_request, storage_root) -> None:
        ingestor = UploadIngestor(make_request("photo.p\x00ng"), _config(), storage_root)

        with pytest.raises(InvalidExtensionError):
            ingestor.store("doc")


class TestStorageFailures:
    def test_uncreatable_subdirectory(self, make_request, storage_root) -> None:
        storage_root.upload_dir.mkdir(parents=True)
        (storage_root.upload_dir / "avatars").write_text("not a directory")

        ingestor = UploadIngestor(make_request(), _config(), storage_root)
        with pytest.raises(StorageUnavailableError):
            ingestor.store("avatar")

    def test_consumed_temporary_file(self, make_request, storage_root) -> None:
        request = make_request()
        request.temporary_location.unlink()
        ingestor = UploadIngestor(request, _config(), storage_root, token_factory=lambda: "t")

        with pytest.raises(MoveFailedError) as exc_info:
            ingestor.store("avatar")

        assert isinstance(exc_info.value.__cause__, FileNotFoundError)
        assert not (storage_root.upload_dir / "avatars" / "avatar_t.png").exists()
        with pytest.raises(InvalidStateError):
            _ = ingestor.relative_path

    def test_cross_device_move_copies_then_renames(self, make_request, storage_root, monkeypatch) -> None:
        request = make_request(content=b"cross-device payload")
        real_replace = os.replace

        def fake_replace(src, dst):
            if Path(src) == request.temporary_location:
                raise OSError(errno.EXDEV, "Invalid cross-device link")
            return real_replace(src, dst)

        monkeypatch.setattr(ingestor_module.os, "replace", fake_replace)

        stored = UploadIngestor(request, _config(), storage_root).store("avatar")

        assert stored.absolute_path.read_bytes() == b"cross-device payload"
        assert not request.temporary_location.exists()
        assert sorted(p.name for p in stored.absolute_path.parent.iterdir()) == [stored.generated_name]

    def test_other_move_errors_leave_temporary_file(self, make_request, storage_root, monkeypatch) -> None:
        request = make_request()

        def failing_replace(src, dst):
            raise PermissionError(errno.EACCES, "Permission denied")

        monkeypatch.setattr(ingestor_module.os, "replace", failing_replace)

        with pytest.raises(MoveFailedError):
            UploadIngestor(request, _config(), storage_root).store("avatar")

        assert request.temporary_location.exists()
        assert list((storage_root.upload_dir / "avatars").iterdir()) == []
