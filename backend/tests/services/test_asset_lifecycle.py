"""
Tests for AssetLifecycleService.

Uses the real storage gateway over an in-memory S3 client and the record
store over an in-memory table (see conftest.py).
"""

from unittest.mock import patch

import pytest

from services.asset_lifecycle import (
    AssetLifecycleService,
    callback_error_message,
    clean_title,
    derive_title,
    filename_from_url,
    format_from_content_type,
)
from services.errors import (
    AccessDeniedError,
    ConfigurationError,
    DatabaseError,
    NotFoundError,
    StorageError,
    UpstreamFetchError,
    ValidationError,
)
from services.s3_storage import METADATA_OWNER, METADATA_SECRET_KEY, METADATA_VIDEO_ID
from video_models import OwnerRef, VideoStatus

LISTING_URL = "https://host/path/My_Great-Listing.mp4"
WEBHOOK_URL = "https://generator.example.com/hooks/generate"

GENERATION_FORM = {
    "hook": "Stop scrolling!",
    "body": "Three bedrooms, two baths, ocean views.",
    "conclusion": "Call today.",
    "company_name": "Acme Realty",
    "social_handles": "@acme",
    "license": "DRE 01234567",
    "avatar": "avatar-1",
    "email": "Agent@Example.com",
    "title": "Ocean View Tour",
}


@pytest.fixture
def listing_video(fetched_videos):
    fetched_videos[LISTING_URL] = (b"\x00" * 2048, "video/mp4")
    return LISTING_URL


class TestTitleHelpers:

    def test_derive_title_from_filename(self):
        assert derive_title("My_Great-Listing.mp4") == "My Great Listing"

    def test_derive_title_falls_back(self):
        assert derive_title("!!!.mp4") == "My Video"

    def test_clean_title(self):
        assert clean_title("  Beach   House!! (2024) ") == "Beach House 2024"

    def test_filename_from_url(self):
        assert filename_from_url("https://cdn.example.com/a/b/My%20Tour.mp4?sig=1", "video_1") == "My Tour.mp4"

    def test_filename_from_url_without_path(self):
        assert filename_from_url("https://cdn.example.com/", "video_1") == "video_1.mp4"

    def test_format_from_content_type(self):
        assert format_from_content_type("video/mp4; codecs=avc1") == "mp4"
        assert format_from_content_type("video/quicktime") == "quicktime"

    def test_callback_error_message(self):
        assert callback_error_message("render crashed") == "render crashed"
        assert callback_error_message({"code": 7}) == '{"code": 7}'
        assert callback_error_message({}) == "Generation failed"
        assert callback_error_message([]) == "Generation failed"

    def test_callback_error_message_no_error(self):
        for value in (None, False, 0, "", "   "):
            assert callback_error_message(value) is None


class TestCreateFromUrl:

    @pytest.mark.asyncio
    async def test_title_derived_from_url(self, lifecycle, listing_video, owner):
        """The URL filename becomes the title."""
        result = await lifecycle.create_from_url(listing_video, owner)

        assert result["title"] == "My Great Listing"
        assert result["status"] == "ready"
        assert result["size"] == 2048
        assert result["videoId"].startswith("video_")
        assert "secretKey" not in result

    @pytest.mark.asyncio
    async def test_object_stored_with_bound_secret(self, lifecycle, listing_video, owner, records, s3_client):
        result = await lifecycle.create_from_url(listing_video, owner)

        stored = s3_client.objects[result["storageKey"]]
        record = records.get_by_id(result["videoId"], include_secret_key=True)
        assert stored["Metadata"][METADATA_SECRET_KEY] == record.secretKey
        assert stored["Metadata"][METADATA_VIDEO_ID] == result["videoId"]
        assert stored["Metadata"][METADATA_OWNER] == "user#user-123"
        assert stored["ContentType"] == "video/mp4"
        assert result["storageKey"].startswith(f"videos/user-123/{result['videoId']}/")

    @pytest.mark.asyncio
    async def test_metadata_records_size_and_format(self, lifecycle, listing_video, owner):
        result = await lifecycle.create_from_url(listing_video, owner)

        assert result["metadata"]["size"] == 2048
        assert result["metadata"]["format"] == "mp4"
        assert result["metadata"]["sourceUrl"] == listing_video

    @pytest.mark.asyncio
    async def test_explicit_title_wins(self, lifecycle, listing_video, owner):
        result = await lifecycle.create_from_url(listing_video, owner, title="Sunset Villa!")
        assert result["title"] == "Sunset Villa"

    @pytest.mark.asyncio
    async def test_duplicate_titles_get_counter_suffix(self, lifecycle, listing_video, owner):
        first = await lifecycle.create_from_url(listing_video, owner)
        second = await lifecycle.create_from_url(listing_video, owner)
        third = await lifecycle.create_from_url(listing_video, owner)

        assert first["title"] == "My Great Listing"
        assert second["title"] == "My Great Listing-1"
        assert third["title"] == "My Great Listing-2"

    @pytest.mark.asyncio
    async def test_titles_are_unique_per_owner_only(self, lifecycle, listing_video, owner):
        await lifecycle.create_from_url(listing_video, owner)
        other = await lifecycle.create_from_url(listing_video, OwnerRef.email("someone@example.com"))
        assert other["title"] == "My Great Listing"

    @pytest.mark.asyncio
    async def test_upstream_404_creates_nothing(self, lifecycle, owner, records, s3_client):
        """A failed fetch leaves no record and no object."""
        with pytest.raises(UpstreamFetchError) as exc_info:
            await lifecycle.create_from_url("https://host/missing.mp4", owner)

        assert exc_info.value.details["upstreamStatus"] == 404
        assert records.items == {}
        assert s3_client.objects == {}

    @pytest.mark.asyncio
    async def test_upload_failure_creates_nothing(self, lifecycle, listing_video, owner, records, storage):
        with patch.object(storage, "upload_direct", side_effect=StorageError("Failed to upload video")):
            with pytest.raises(StorageError):
                await lifecycle.create_from_url(listing_video, owner)

        assert records.items == {}

    @pytest.mark.asyncio
    async def test_missing_url_is_validation_error(self, lifecycle, owner):
        with pytest.raises(ValidationError) as exc_info:
            await lifecycle.create_from_url("  ", owner)
        assert exc_info.value.details["field"] == "videoUrl"

    @pytest.mark.asyncio
    async def test_non_http_url_rejected(self, lifecycle, owner):
        with pytest.raises(ValidationError):
            await lifecycle.create_from_url("file:///etc/passwd", owner)

    @pytest.mark.asyncio
    async def test_missing_owner_is_validation_error(self, lifecycle, listing_video):
        with pytest.raises(ValidationError):
            await lifecycle.create_from_url(listing_video, None)


class TestStatusUpdate:

    @pytest.fixture
    def processing_video(self, records, owner):
        return records.create(owner, "Tour", "videos/user-123/video_1/1_tour.mp4", video_id="video_1")

    @pytest.mark.asyncio
    async def test_error_forces_failed(self, lifecycle, processing_video, records):
        """{status: ready, error: x} always ends up failed."""
        result = await lifecycle.apply_status_update("video_1", status="ready", error="x")

        assert result["status"] == "failed"
        assert records.get_by_id("video_1").errorMessage == "x"

    @pytest.mark.asyncio
    async def test_status_defaults_to_ready(self, lifecycle, processing_video, records):
        result = await lifecycle.apply_status_update("video_1")

        assert result["videoId"] == "video_1"
        assert result["status"] == "ready"
        assert records.get_by_id("video_1").status == VideoStatus.READY

    @pytest.mark.asyncio
    async def test_error_wins_over_unknown_status(self, lifecycle, processing_video, records):
        """An error is recorded even when the status sent with it is not a known one."""
        result = await lifecycle.apply_status_update("video_1", status="done", error="render crashed")

        assert result["status"] == "failed"
        video = records.get_by_id("video_1")
        assert video.status == VideoStatus.FAILED
        assert video.errorMessage == "render crashed"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("error", [{}, []])
    async def test_empty_error_object_forces_failed(self, lifecycle, processing_video, records, error):
        result = await lifecycle.apply_status_update("video_1", status="ready", error=error)

        assert result["status"] == "failed"
        assert records.get_by_id("video_1").errorMessage == "Generation failed"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("error", [None, False, 0, ""])
    async def test_no_error_values_do_not_fail(self, lifecycle, processing_video, error):
        result = await lifecycle.apply_status_update("video_1", status="ready", error=error)
        assert result["status"] == "ready"

    @pytest.mark.asyncio
    async def test_metadata_merged_not_replaced(self, lifecycle, records, owner):
        records.create(
            owner, "Tour", "videos/user-123/video_2/1_tour.mp4",
            video_id="video_2", metadata={"a": 1, "b": 2},
        )

        await lifecycle.apply_status_update("video_2", status="ready", metadata={"b": 3, "c": 4})

        assert records.get_by_id("video_2").metadata == {"a": 1, "b": 3, "c": 4}

    @pytest.mark.asyncio
    async def test_unknown_video_is_not_found(self, lifecycle, processing_video, records):
        """Nothing is mutated for an unknown id."""
        before = records.get_by_id("video_1")

        with pytest.raises(NotFoundError):
            await lifecycle.apply_status_update("video_999", status="ready")

        assert list(records.items) == ["video_1"]
        assert records.get_by_id("video_1") == before

    @pytest.mark.asyncio
    async def test_invalid_status_rejected(self, lifecycle, processing_video):
        with pytest.raises(ValidationError, match="Invalid status"):
            await lifecycle.apply_status_update("video_1", status="done")

    @pytest.mark.asyncio
    async def test_missing_video_id_rejected(self, lifecycle):
        with pytest.raises(ValidationError):
            await lifecycle.apply_status_update(None, status="ready")

    @pytest.mark.asyncio
    async def test_non_object_metadata_rejected(self, lifecycle, processing_video):
        with pytest.raises(ValidationError):
            await lifecycle.apply_status_update("video_1", metadata=["not", "a", "dict"])

    @pytest.mark.asyncio
    async def test_failed_video_can_be_set_ready_again(self, lifecycle, processing_video, records):
        await lifecycle.apply_status_update("video_1", error="timeout")
        await lifecycle.apply_status_update("video_1", status="ready")

        video = records.get_by_id("video_1")
        assert video.status == VideoStatus.READY
        assert video.errorMessage is None


class TestDelete:

    @pytest.mark.asyncio
    async def test_delete_removes_object_and_record(self, lifecycle, listing_video, owner, records, s3_client):
        created = await lifecycle.create_from_url(listing_video, owner)

        result = await lifecycle.delete_asset(created["videoId"], owner)

        assert result["videoId"] == created["videoId"]
        assert result["storageDeleted"] is True
        assert records.items == {}
        assert s3_client.objects == {}

    @pytest.mark.asyncio
    async def test_storage_failure_still_deletes_record(self, lifecycle, listing_video, owner, records, storage):
        created = await lifecycle.create_from_url(listing_video, owner)

        with patch.object(storage, "delete", side_effect=RuntimeError("connection reset")):
            result = await lifecycle.delete_asset(created["videoId"])

        assert result["storageDeleted"] is False
        assert records.items == {}

    @pytest.mark.asyncio
    async def test_secret_mismatch_reports_storage_not_deleted(self, lifecycle, listing_video, owner, records, s3_client):
        created = await lifecycle.create_from_url(listing_video, owner)
        s3_client.objects[created["storageKey"]]["Metadata"][METADATA_SECRET_KEY] = "rotated"

        result = await lifecycle.delete_asset(created["videoId"])

        assert result["storageDeleted"] is False
        assert created["storageKey"] in s3_client.objects
        assert records.items == {}

    @pytest.mark.asyncio
    async def test_unknown_video_is_not_found(self, lifecycle):
        with pytest.raises(NotFoundError):
            await lifecycle.delete_asset("video_999")

    @pytest.mark.asyncio
    async def test_other_owner_denied(self, lifecycle, listing_video, owner, records):
        created = await lifecycle.create_from_url(listing_video, owner)

        with pytest.raises(AccessDeniedError):
            await lifecycle.delete_asset(created["videoId"], OwnerRef.user("intruder"))

        assert created["videoId"] in records.items

    @pytest.mark.asyncio
    async def test_record_delete_failure_propagates(self, lifecycle, listing_video, owner, records):
        created = await lifecycle.create_from_url(listing_video, owner)

        with patch.object(records, "delete", side_effect=DatabaseError("Failed to delete video")):
            with pytest.raises(DatabaseError):
                await lifecycle.delete_asset(created["videoId"], owner)

        assert created["videoId"] in records.items


class TestDownload:

    @pytest.mark.asyncio
    async def test_download_url(self, lifecycle, listing_video, owner):
        created = await lifecycle.create_from_url(listing_video, owner)

        result = await lifecycle.get_download(created["videoId"], owner)

        assert result["title"] == "My Great Listing"
        assert result["expiresIn"] == 3600
        assert created["storageKey"] in result["downloadUrl"]

    @pytest.mark.asyncio
    async def test_processing_video_has_no_download(self, lifecycle, records, owner):
        records.create(owner, "Tour", "videos/user-123/video_1/1_tour.mp4", video_id="video_1")

        with pytest.raises(ValidationError, match="not ready"):
            await lifecycle.get_download("video_1", owner)

    @pytest.mark.asyncio
    async def test_missing_object_is_not_found(self, lifecycle, listing_video, owner, s3_client):
        created = await lifecycle.create_from_url(listing_video, owner)
        s3_client.objects.clear()

        with pytest.raises(NotFoundError):
            await lifecycle.get_download(created["videoId"], owner)


class TestRename:

    @pytest.mark.asyncio
    async def test_rename(self, lifecycle, listing_video, owner):
        created = await lifecycle.create_from_url(listing_video, owner)

        result = await lifecycle.rename(created["videoId"], "Beach House!", owner)

        assert result["title"] == "Beach House"

    @pytest.mark.asyncio
    async def test_rename_to_taken_title_gets_suffix(self, lifecycle, listing_video, owner):
        await lifecycle.create_from_url(listing_video, owner, title="Beach House")
        second = await lifecycle.create_from_url(listing_video, owner)

        result = await lifecycle.rename(second["videoId"], "Beach House", owner)

        assert result["title"] == "Beach House-1"

    @pytest.mark.asyncio
    async def test_empty_title_rejected(self, lifecycle, listing_video, owner):
        created = await lifecycle.create_from_url(listing_video, owner)
        with pytest.raises(ValidationError):
            await lifecycle.rename(created["videoId"], "!!!", owner)


class TestGeneration:

    @pytest.mark.asyncio
    async def test_submit_records_processing_video(self, lifecycle, records):
        with patch("services.asset_lifecycle.settings.GENERATE_VIDEO_WEBHOOK_URL", WEBHOOK_URL):
            submission = await lifecycle.submit_generation(dict(GENERATION_FORM), None)

        video = submission["video"]
        assert video["status"] == "processing"
        assert video["title"] == "Ocean View Tour"
        assert video["owner"] == "email#agent@example.com"
        assert records.get_by_id(video["videoId"]).status == VideoStatus.PROCESSING
        assert submission["estimatedCompletion"]

    @pytest.mark.asyncio
    async def test_job_carries_upload_target_and_callback(self, lifecycle, records, owner):
        with patch("services.asset_lifecycle.settings.GENERATE_VIDEO_WEBHOOK_URL", WEBHOOK_URL):
            submission = await lifecycle.submit_generation(dict(GENERATION_FORM), owner)

        job = submission["job"]
        video_id = submission["video"]["videoId"]
        record = records.get_by_id(video_id, include_secret_key=True)

        assert job["videoId"] == video_id
        assert job["company_name"] == "Acme Realty"
        assert job["email"] == "Agent@Example.com"
        assert job["callbackUrl"].endswith("/api/webhooks/video-complete")
        assert job["upload"]["storageKey"] == record.storageKey
        assert job["upload"]["headers"][f"x-amz-meta-{METADATA_SECRET_KEY}"] == record.secretKey

    @pytest.mark.asyncio
    async def test_missing_field_rejected(self, lifecycle, records):
        form = dict(GENERATION_FORM, license="  ")
        with patch("services.asset_lifecycle.settings.GENERATE_VIDEO_WEBHOOK_URL", WEBHOOK_URL):
            with pytest.raises(ValidationError) as exc_info:
                await lifecycle.submit_generation(form, None)

        assert exc_info.value.details["field"] == "license"
        assert records.items == {}

    @pytest.mark.asyncio
    async def test_unconfigured_webhook(self, lifecycle, records):
        with patch("services.asset_lifecycle.settings.GENERATE_VIDEO_WEBHOOK_URL", None):
            with pytest.raises(ConfigurationError):
                await lifecycle.submit_generation(dict(GENERATION_FORM), None)
        assert records.items == {}

    @pytest.mark.asyncio
    async def test_dispatch_sends_job(self, lifecycle, dispatched_jobs):
        with patch("services.asset_lifecycle.settings.GENERATE_VIDEO_WEBHOOK_URL", WEBHOOK_URL):
            submission = await lifecycle.submit_generation(dict(GENERATION_FORM), None)
            delivered = await lifecycle.dispatch_generation(submission["job"])

        assert delivered is True
        assert dispatched_jobs == [(WEBHOOK_URL, submission["job"])]

    @pytest.mark.asyncio
    async def test_undeliverable_job_marks_video_failed(self, records, storage, fetcher):
        async def failing_dispatcher(url, payload):
            raise ValueError("Generation webhook rejected job: 400")

        service = AssetLifecycleService(records, storage, fetcher=fetcher, dispatcher=failing_dispatcher)

        with patch("services.asset_lifecycle.settings.GENERATE_VIDEO_WEBHOOK_URL", WEBHOOK_URL):
            submission = await service.submit_generation(dict(GENERATION_FORM), None)
            delivered = await service.dispatch_generation(submission["job"])

        video = records.get_by_id(submission["video"]["videoId"])
        assert delivered is False
        assert video.status == VideoStatus.FAILED
        assert "400" in video.errorMessage
