"""
Tests for GalleryAssembler.
"""

from unittest.mock import patch

import pytest

from services.errors import StorageError
from services.gallery import GalleryAssembler
from services.s3_storage import METADATA_SECRET_KEY
from video_models import OwnerRef, VideoStatus


async def _store_ready(lifecycle, fetched_videos, owner, name):
    url = f"https://cdn.example.com/renders/{name}.mp4"
    fetched_videos[url] = (b"\x01" * 512, "video/mp4")
    return await lifecycle.create_from_url(url, owner)


class TestGallery:

    @pytest.mark.asyncio
    async def test_empty_owner(self, gallery):
        result = await gallery.build(OwnerRef.email("new@example.com"))

        assert result == {
            "videos": [],
            "totalCount": 0,
            "readyCount": 0,
            "processingCount": 0,
            "failedCount": 0,
        }

    @pytest.mark.asyncio
    async def test_one_broken_object_does_not_fail_listing(self, gallery, lifecycle, fetched_videos, owner, storage):
        """Three ready videos, URL minting fails for one: all three are listed."""
        created = [await _store_ready(lifecycle, fetched_videos, owner, f"tour_{i}") for i in range(3)]
        broken_key = created[1]["storageKey"]
        real_create_download_url = storage.create_download_url

        def flaky(s3_key, secret_key, expiry=None):
            if s3_key == broken_key:
                raise StorageError("connection reset", storageKey=s3_key)
            return real_create_download_url(s3_key, secret_key, expiry)

        with patch.object(storage, "create_download_url", side_effect=flaky):
            result = await gallery.build(owner)

        by_id = {video["videoId"]: video for video in result["videos"]}
        assert result["totalCount"] == 3
        assert by_id[created[1]["videoId"]]["downloadUrl"] is None
        assert by_id[created[0]["videoId"]]["downloadUrl"]
        assert by_id[created[2]["videoId"]]["downloadUrl"]

    @pytest.mark.asyncio
    async def test_secret_mismatch_only_empties_that_link(self, gallery, lifecycle, fetched_videos, owner, s3_client):
        good = await _store_ready(lifecycle, fetched_videos, owner, "good")
        bad = await _store_ready(lifecycle, fetched_videos, owner, "bad")
        s3_client.objects[bad["storageKey"]]["Metadata"][METADATA_SECRET_KEY] = "tampered"

        result = await gallery.build(owner)

        by_id = {video["videoId"]: video for video in result["videos"]}
        assert by_id[good["videoId"]]["downloadUrl"]
        assert by_id[bad["videoId"]]["downloadUrl"] is None

    @pytest.mark.asyncio
    async def test_counts_by_status(self, gallery, lifecycle, fetched_videos, owner, records):
        await _store_ready(lifecycle, fetched_videos, owner, "ready")
        records.create(owner, "Rendering", "videos/user-123/video_p/1_p.mp4", video_id="video_p")
        records.create(owner, "Broken", "videos/user-123/video_f/1_f.mp4", video_id="video_f")
        records.update_status("video_f", VideoStatus.FAILED, "render crashed")

        result = await gallery.build(owner)

        assert result["totalCount"] == 3
        assert result["readyCount"] == 1
        assert result["processingCount"] == 1
        assert result["failedCount"] == 1

        by_id = {video["videoId"]: video for video in result["videos"]}
        assert by_id["video_p"]["downloadUrl"] is None
        assert by_id["video_f"]["errorMessage"] == "render crashed"

    @pytest.mark.asyncio
    async def test_items_never_expose_secret_or_storage_key(self, gallery, lifecycle, fetched_videos, owner):
        await _store_ready(lifecycle, fetched_videos, owner, "tour")

        result = await gallery.build(owner)

        video = result["videos"][0]
        assert "secretKey" not in video
        assert "storageKey" not in video

    @pytest.mark.asyncio
    async def test_only_own_videos_listed(self, gallery, lifecycle, fetched_videos, owner):
        await _store_ready(lifecycle, fetched_videos, owner, "mine")
        await _store_ready(lifecycle, fetched_videos, OwnerRef.user("someone-else"), "theirs")

        result = await gallery.build(owner)

        assert [video["title"] for video in result["videos"]] == ["mine"]

    @pytest.mark.asyncio
    async def test_custom_url_expiry(self, records, storage, lifecycle, fetched_videos, owner):
        await _store_ready(lifecycle, fetched_videos, owner, "tour")

        result = await GalleryAssembler(records, storage, concurrency=2, url_expiry=600).build(owner)

        assert result["videos"][0]["expiresIn"] == 600


class TestFullCycle:

    @pytest.mark.asyncio
    async def test_create_list_delete_list(self, gallery, lifecycle, fetched_videos, owner):
        """Create (ready), list (one link expiring in 3600s), delete, list (empty)."""
        created = await _store_ready(lifecycle, fetched_videos, owner, "full_cycle")
        assert created["status"] == "ready"

        listed = await gallery.build(owner)
        assert listed["totalCount"] == 1
        assert listed["videos"][0]["downloadUrl"] is not None
        assert listed["videos"][0]["expiresIn"] == 3600

        deleted = await lifecycle.delete_asset(created["videoId"], owner)
        assert deleted["storageDeleted"] is True

        relisted = await gallery.build(owner)
        assert relisted["totalCount"] == 0
        assert relisted["videos"] == []
