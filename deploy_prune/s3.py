from typing import Any, Dict, List, Optional, Sequence, Tuple
from botocore.exceptions import ClientError
from botocore.client import Config
from datetime import datetime
import boto3
import os

from .retention import ObjectRecord


DEFAULT_REGION = "us-east-1"
DEFAULT_BUCKET = "sample-bucket"
DELETE_BATCH_SIZE = 1000


class DeleteObjectsError(RuntimeError):
    def __init__(self, bucket: str, failed: List[Dict[str, Any]]) -> None:
        self.bucket = bucket
        self.failed_keys = [f.get("Key", "") for f in failed]
        details = ", ".join(
            f"{f.get('Key')} ({f.get('Code', 'unknown')})" for f in failed[:10]
        )
        super().__init__(
            f"Failed to delete {len(failed)} object(s) from '{bucket}': {details}"
        )


def resolve_s3_settings(cfg: Dict[str, Any]) -> Dict[str, Optional[str]]:
    s3_cfg = cfg.get("s3", {}) or {}
    return {
        "region": os.getenv("AWS_REGION", s3_cfg.get("region") or DEFAULT_REGION),
        "endpoint": os.getenv("AWS_ENDPOINT", s3_cfg.get("endpoint")) or None,
        "bucket": os.getenv("S3_BUCKET", s3_cfg.get("bucket") or DEFAULT_BUCKET),
        "access_key_id": os.getenv(
            "AWS_ACCESS_KEY_ID", s3_cfg.get("access_key_id")
        ),
        "secret_access_key": os.getenv(
            "AWS_SECRET_ACCESS_KEY", s3_cfg.get("secret_access_key")
        ),
    }


def create_s3_client(cfg: Dict[str, Any]):
    settings = resolve_s3_settings(cfg)
    client_kwargs: Dict[str, Any] = {
        "region_name": settings["region"],
        "config": Config(
            signature_version="s3v4",
            s3={"addressing_style": "path"},
        ),
    }
    if settings["endpoint"]:
        client_kwargs["endpoint_url"] = settings["endpoint"]
    # Without explicit keys boto3 falls back to its own credential chain.
    if settings["access_key_id"] and settings["secret_access_key"]:
        client_kwargs["aws_access_key_id"] = settings["access_key_id"]
        client_kwargs["aws_secret_access_key"] = settings["secret_access_key"]
    s3 = boto3.client("s3", **client_kwargs)
    return s3, settings["bucket"], settings["endpoint"]


def list_buckets(s3: Any) -> List[Tuple[str, Optional[datetime]]]:
    try:
        resp = s3.list_buckets()
    except Exception as err:
        print(f"Failed to list buckets: {err}")
        return []
    buckets = [
        (b.get("Name", ""), b.get("CreationDate")) for b in resp.get("Buckets", [])
    ]
    return [(name, created) for name, created in buckets if name]


def ensure_bucket_exists(
    s3: Any, bucket_name: str, region: Optional[str] = None
) -> bool:
    try:
        s3.head_bucket(Bucket=bucket_name)
        print(f"Bucket already exists: {bucket_name}")
        return False
    except ClientError as err:
        status_code = int(
            err.response.get("ResponseMetadata", {}).get("HTTPStatusCode", 0)
        )
        code_str = (err.response.get("Error", {}) or {}).get("Code", "")
        missing = status_code in (301, 404, 400) or code_str in (
            "NoSuchBucket",
            "NotFound",
        )
        if not missing:
            raise
    create_params: Dict[str, Any] = {"Bucket": bucket_name}
    # us-east-1 rejects an explicit LocationConstraint
    if region and region != DEFAULT_REGION:
        create_params["CreateBucketConfiguration"] = {
            "LocationConstraint": region,
        }
    s3.create_bucket(**create_params)
    print(f"Bucket created: {bucket_name}")
    return True


def list_objects(s3: Any, bucket: str, prefix: str = "") -> List[ObjectRecord]:
    paginator = s3.get_paginator("list_objects_v2")
    params: Dict[str, Any] = {"Bucket": bucket}
    if prefix:
        params["Prefix"] = prefix
    records: List[ObjectRecord] = []
    for page in paginator.paginate(**params):
        for obj in page.get("Contents", []) or []:
            records.append(ObjectRecord(obj["Key"], obj["LastModified"]))
    return records


def delete_objects(
    s3: Any, bucket: str, keys: Sequence[str], dry_run: bool = False
) -> int:
    if not keys:
        return 0
    if dry_run:
        for key in keys:
            print(f"[dry-run] delete s3://{bucket}/{key}")
        return len(keys)

    failed: List[Dict[str, Any]] = []
    for i in range(0, len(keys), DELETE_BATCH_SIZE):
        chunk = keys[i : i + DELETE_BATCH_SIZE]
        resp = s3.delete_objects(
            Bucket=bucket,
            Delete={"Objects": [{"Key": k} for k in chunk], "Quiet": True},
        )
        failed.extend(resp.get("Errors", []) or [])
    if failed:
        raise DeleteObjectsError(bucket, failed)
    return len(keys)


def create_objects(
    s3: Any, bucket: str, prefixes: Sequence[str], suffixes: Sequence[str]
) -> List[str]:
    created: List[str] = []
    for prefix in prefixes:
        for suffix in suffixes:
            key = prefix + suffix
            s3.put_object(
                Bucket=bucket,
                Key=key,
                Body=b"Hello World",
                ContentType="application/text",
                ContentDisposition="attachment",
            )
            created.append(key)
    print(f"Created {len(created)} sample object(s) in bucket {bucket}")
    return created

