"""Tests for the S3 storage helpers."""

import os
from unittest.mock import MagicMock, call, patch

import pytest
from botocore.exceptions import ClientError

from conftest import at, listing_pages, set_listing

from deploy_prune.retention import ObjectRecord
from deploy_prune.s3 import (
    DELETE_BATCH_SIZE,
    DeleteObjectsError,
    create_objects,
    create_s3_client,
    delete_objects,
    ensure_bucket_exists,
    list_buckets,
    list_objects,
    resolve_s3_settings,
)


def _client_error(code: str, status: int) -> ClientError:
    return ClientError(
        {"Error": {"Code": code}, "ResponseMetadata": {"HTTPStatusCode": status}},
        "HeadBucket",
    )


class TestResolveSettings:
    """Tests for region/endpoint/bucket resolution."""

    def test_defaults(self) -> None:
        with patch.dict(os.environ, {}, clear=True):
            settings = resolve_s3_settings({})

        assert settings["region"] == "us-east-1"
        assert settings["endpoint"] is None
        assert settings["bucket"] == "sample-bucket"
        assert settings["access_key_id"] is None

    def test_config_file_values(self) -> None:
        cfg = {"s3": {"region": "eu-west-1", "endpoint": "http://localhost:4566", "bucket": "site"}}
        with patch.dict(os.environ, {}, clear=True):
            settings = resolve_s3_settings(cfg)

        assert settings["region"] == "eu-west-1"
        assert settings["endpoint"] == "http://localhost:4566"
        assert settings["bucket"] == "site"

    def test_environment_overrides_config(self) -> None:
        cfg = {"s3": {"region": "eu-west-1", "bucket": "site"}}
        env = {"AWS_REGION": "us-west-2", "S3_BUCKET": "other", "AWS_ENDPOINT": "http://minio:9000"}
        with patch.dict(os.environ, env, clear=True):
            settings = resolve_s3_settings(cfg)

        assert settings["region"] == "us-west-2"
        assert settings["bucket"] == "other"
        assert settings["endpoint"] == "http://minio:9000"


class TestCreateClient:
    """Tests for boto3 client construction."""

    def test_endpoint_and_keys_passed_through(self) -> None:
        cfg = {"s3": {"access_key_id": "AK", "secret_access_key": "SK"}}
        env = {"AWS_ENDPOINT": "http://localhost:4566"}
        with patch.dict(os.environ, env, clear=True), patch(
            "deploy_prune.s3.boto3.client"
        ) as client_factory:
            s3, bucket, endpoint = create_s3_client(cfg)

        assert s3 is client_factory.return_value
        assert bucket == "sample-bucket"
        assert endpoint == "http://localhost:4566"
        kwargs = client_factory.call_args.kwargs
        assert client_factory.call_args.args == ("s3",)
        assert kwargs["endpoint_url"] == "http://localhost:4566"
        assert kwargs["aws_access_key_id"] == "AK"
        assert kwargs["aws_secret_access_key"] == "SK"
        assert kwargs["region_name"] == "us-east-1"

    def test_default_credential_chain_without_keys(self) -> None:
        with patch.dict(os.environ, {}, clear=True), patch(
            "deploy_prune.s3.boto3.client"
        ) as client_factory:
            create_s3_client({})

        kwargs = client_factory.call_args.kwargs
        assert "endpoint_url" not in kwargs
        assert "aws_access_key_id" not in kwargs


class TestListBuckets:
    """Tests for bucket listing."""

    def test_names_and_dates(self, s3_client: MagicMock) -> None:
        s3_client.list_buckets.return_value = {
            "Buckets": [{"Name": "a", "CreationDate": at(0)}, {"Name": ""}]
        }

        assert list_buckets(s3_client) == [("a", at(0))]

    def test_failure_reported_as_empty(self, s3_client: MagicMock, capsys) -> None:
        s3_client.list_buckets.side_effect = _client_error("AccessDenied", 403)

        assert list_buckets(s3_client) == []
        assert "Failed to list buckets" in capsys.readouterr().out


class TestEnsureBucket:
    """Tests for bucket creation."""

    def test_existing_bucket_untouched(self, s3_client: MagicMock) -> None:
        assert ensure_bucket_exists(s3_client, "site") is False
        s3_client.create_bucket.assert_not_called()

    def test_missing_bucket_created_in_us_east_1(self, s3_client: MagicMock) -> None:
        s3_client.head_bucket.side_effect = _client_error("404", 404)

        assert ensure_bucket_exists(s3_client, "site", region="us-east-1") is True
        s3_client.create_bucket.assert_called_once_with(Bucket="site")

    def test_location_constraint_outside_us_east_1(self, s3_client: MagicMock) -> None:
        s3_client.head_bucket.side_effect = _client_error("NoSuchBucket", 404)

        ensure_bucket_exists(s3_client, "site", region="eu-west-1")

        s3_client.create_bucket.assert_called_once_with(
            Bucket="site",
            CreateBucketConfiguration={"LocationConstraint": "eu-west-1"},
        )

    def test_other_errors_propagate(self, s3_client: MagicMock) -> None:
        s3_client.head_bucket.side_effect = _client_error("Forbidden", 403)

        with pytest.raises(ClientError):
            ensure_bucket_exists(s3_client, "site")
        s3_client.create_bucket.assert_not_called()


class TestListObjects:
    """Tests for exhaustive object listing."""

    def test_all_pages_collected(self, s3_client: MagicMock) -> None:
        set_listing(
            s3_client,
            listing_pages([("a/1", 1), ("a/2", 2)], [("b/1", 3)], []),
        )

        objects = list_objects(s3_client, "site")

        assert objects == [
            ObjectRecord("a/1", at(1)),
            ObjectRecord("a/2", at(2)),
            ObjectRecord("b/1", at(3)),
        ]
        s3_client.get_paginator.assert_called_once_with("list_objects_v2")
        s3_client.get_paginator.return_value.paginate.assert_called_once_with(
            Bucket="site"
        )

    def test_prefix_forwarded(self, s3_client: MagicMock) -> None:
        set_listing(s3_client, [{}])

        assert list_objects(s3_client, "site", prefix="releases/") == []
        s3_client.get_paginator.return_value.paginate.assert_called_once_with(
            Bucket="site", Prefix="releases/"
        )


class TestDeleteObjects:
    """Tests for batched deletion."""

    def test_single_batch(self, s3_client: MagicMock) -> None:
        assert delete_objects(s3_client, "site", ["a/1", "a/2"]) == 2

        s3_client.delete_objects.assert_called_once_with(
            Bucket="site",
            Delete={"Objects": [{"Key": "a/1"}, {"Key": "a/2"}], "Quiet": True},
        )

    def test_batches_of_one_thousand(self, s3_client: MagicMock) -> None:
        keys = [f"old/{i}" for i in range(DELETE_BATCH_SIZE * 2 + 5)]

        assert delete_objects(s3_client, "site", keys) == len(keys)

        sizes = [
            len(c.kwargs["Delete"]["Objects"])
            for c in s3_client.delete_objects.call_args_list
        ]
        assert sizes == [1000, 1000, 5]

    def test_nothing_to_delete(self, s3_client: MagicMock) -> None:
        assert delete_objects(s3_client, "site", []) == 0
        s3_client.delete_objects.assert_not_called()

    def test_dry_run_makes_no_calls(self, s3_client: MagicMock, capsys) -> None:
        assert delete_objects(s3_client, "site", ["a/1"], dry_run=True) == 1

        s3_client.delete_objects.assert_not_called()
        assert "[dry-run] delete s3://site/a/1" in capsys.readouterr().out

    def test_per_key_errors_raise(self, s3_client: MagicMock) -> None:
        s3_client.delete_objects.return_value = {
            "Errors": [{"Key": "a/2", "Code": "AccessDenied", "Message": "no"}]
        }

        with pytest.raises(DeleteObjectsError) as exc_info:
            delete_objects(s3_client, "site", ["a/1", "a/2"])

        assert exc_info.value.failed_keys == ["a/2"]
        assert "AccessDenied" in str(exc_info.value)


class TestCreateObjects:
    """Tests for seeding sample deployments."""

    def test_every_prefix_suffix_pair(self, s3_client: MagicMock) -> None:
        keys = create_objects(s3_client, "site", ["d1", "d2"], ["/index.html", "/app.js"])

        assert keys == ["d1/index.html", "d1/app.js", "d2/index.html", "d2/app.js"]
        assert s3_client.put_object.call_count == 4
        assert s3_client.put_object.call_args_list[0] == call(
            Bucket="site",
            Key="d1/index.html",
            Body=b"Hello World",
            ContentType="application/text",
            ContentDisposition="attachment",
        )
