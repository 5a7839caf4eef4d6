from typing import Any, List, Optional
from botocore.exceptions import BotoCoreError, ClientError
from dotenv import load_dotenv
import argparse
import sys
import os

from .config import load_config, resolve_retention
from .retention import InvalidRetentionCount, RetentionPlan, build_plan
from .s3 import (
    DeleteObjectsError,
    create_objects,
    create_s3_client,
    delete_objects,
    ensure_bucket_exists,
    list_buckets,
    list_objects,
    resolve_s3_settings,
)
from .utils import format_timestamp, split_csv


SAMPLE_PREFIXES = "deployhash112,deploy234sfh,deployTest321,dep348dh,d348hdfzui78"
SAMPLE_SUFFIXES = "/index.html,/css/font.css,/image/hey.png"

EXIT_FAILURE = 1
EXIT_INVALID_RETENTION = 2


def print_extended_help() -> None:
    help_text = (
        "\n"
        "Deployment Pruner - Extended Help\n"
        "\n"
        "Keeps the N most recent deployments in a bucket and deletes the rest.\n"
        "A deployment is every object sharing the key part before the first\n"
        "delimiter ('/' by default); its age is its newest object.\n"
        "\n"
        "Commands/Flags:\n"
        "  -c, --config <file>          Path to the TOML config file\n"
        "  -d, --deploys <n>            Number of most recent deployments to keep\n"
        "      --delete                Delete the objects (default: report only)\n"
        "      --delimiter <char>      Deployment prefix delimiter (default: /)\n"
        "      --prefix <p>            Only consider keys under this prefix\n"
        "      --fail-on-empty         Exit 1 when there is nothing to delete\n"
        "      --list-buckets          List available buckets and exit\n"
        "      --create-bucket         Create the bucket and exit\n"
        "      --bucket-name <name>    Bucket to use (overrides S3_BUCKET)\n"
        "      --seed                  Create sample deployment objects and exit\n"
        "      --seed-prefixes <list>  Comma-separated sample deployment prefixes\n"
        "      --seed-suffixes <list>  Comma-separated sample object suffixes\n"
        "      --help-extended         Show this extended help\n"
        "\n"
        "TOML Configuration:\n"
        "  [s3] region, endpoint, bucket, access_key_id, secret_access_key\n"
        "  [retention] keep, delimiter\n"
        "  dot_env = \".env\" | dot_envs = [\"a.env\", \"b.env\"] (optional)\n"
        "\n"
        "Environment:\n"
        "  AWS_REGION, AWS_ENDPOINT, S3_BUCKET, AWS_ACCESS_KEY_ID,\n"
        "  AWS_SECRET_ACCESS_KEY, DEPLOY_KEEP, DOTENV_PATH\n"
        "\n"
        "ENV_* Placeholders:\n"
        "  Any value 'ENV_NAME' will be replaced by $NAME from the environment (or .env).\n"
        "\n"
        "Exit Codes:\n"
        "  0 success or nothing to delete, 1 storage/config error\n"
        "  (or empty plan with --fail-on-empty), 2 invalid retention count\n"
        "\n"
        "Examples:\n"
        "  Report what would go:   python3 main.py -d 3\n"
        "  Delete old deploys:     python3 main.py -d 3 --delete\n"
        "  LocalStack sample data: AWS_ENDPOINT=http://localhost:4566 python3 main.py --create-bucket\n"
        "                          AWS_ENDPOINT=http://localhost:4566 python3 main.py --seed\n"
    )
    print(help_text)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Keep the most recent deployments in an S3 bucket and delete the rest"
    )
    parser.add_argument(
        "--config", "-c", help="Path to the TOML configuration file"
    )
    parser.add_argument(
        "--deploys",
        "-d",
        type=int,
        help="Number of most recent deployments to keep",
    )
    parser.add_argument(
        "--delete", action="store_true", help="Deletes the S3 objects"
    )
    parser.add_argument(
        "--delimiter", help="Delimiter ending the deployment prefix (default: /)"
    )
    parser.add_argument(
        "--prefix", default="", help="Only list keys under this prefix"
    )
    parser.add_argument(
        "--fail-on-empty",
        action="store_true",
        help="Exit with status 1 when no objects need deleting",
    )
    parser.add_argument(
        "--list-buckets", action="store_true", help="List available buckets and exit"
    )
    parser.add_argument(
        "--create-bucket", action="store_true", help="Create the bucket and exit"
    )
    parser.add_argument("--bucket-name", help="Bucket name (overrides S3_BUCKET)")
    parser.add_argument(
        "--seed", action="store_true", help="Create sample deployment objects and exit"
    )
    parser.add_argument("--seed-prefixes", default=SAMPLE_PREFIXES)
    parser.add_argument("--seed-suffixes", default=SAMPLE_SUFFIXES)
    parser.add_argument(
        "--help-extended", action="store_true", help="Show extended help and exit"
    )
    return parser


def report_plan(plan: RetentionPlan) -> None:
    print("Most Recent Deployments:")
    for group in plan.retained:
        print(f"{group.prefix}\t{format_timestamp(group.recency)}")
    if plan.is_empty:
        print("No objects to delete detected.")
        return
    print(f"Found {len(plan.to_delete)} objects to delete.")
    for key in plan.to_delete:
        print(f"Marked for deletion: {key}")


def run_retention(
    s3: Any,
    bucket: str,
    keep: int,
    delimiter: str,
    prefix: str = "",
    delete: bool = False,
    fail_on_empty: bool = False,
) -> int:
    objects = list_objects(s3, bucket, prefix)
    plan = build_plan(objects, keep, delimiter)
    report_plan(plan)
    if plan.is_empty:
        return EXIT_FAILURE if fail_on_empty else 0
    if not delete:
        print("Dry run: pass --delete to remove the objects above.")
        return 0

    deleted = delete_objects(s3, bucket, list(plan.to_delete))
    print(f"Deleted {deleted} object(s) from bucket {bucket}.")
    print("Remaining objects in bucket:")
    for obj in list_objects(s3, bucket, prefix):
        print(f"\t{obj.key}")
    return 0


def main(argv: Optional[List[str]] = None) -> None:
    load_dotenv(dotenv_path=os.getenv("DOTENV_PATH", ".env"))

    args = build_parser().parse_args(argv)

    if args.help_extended:
        print_extended_help()
        return

    cfg = load_config(args.config)
    admin_mode = args.list_buckets or args.create_bucket or args.seed

    keep = delimiter = None
    if not admin_mode:
        try:
            keep, delimiter = resolve_retention(cfg, args.deploys, args.delimiter)
        except InvalidRetentionCount as err:
            print(f"No deployments selected: {err}", file=sys.stderr)
            raise SystemExit(EXIT_INVALID_RETENTION)

    bucket_name = args.bucket_name
    try:
        s3, default_bucket, _ = create_s3_client(cfg)
        bucket_name = bucket_name or default_bucket

        if args.list_buckets:
            buckets = list_buckets(s3)
            if not buckets:
                print("No buckets returned or insufficient permissions.")
                return
            print("Buckets:")
            for name, created in buckets:
                print(f"{name}: {format_timestamp(created)}")
            return

        if args.create_bucket:
            ensure_bucket_exists(
                s3, bucket_name, region=resolve_s3_settings(cfg)["region"]
            )
            return

        if args.seed:
            create_objects(
                s3,
                bucket_name,
                split_csv(args.seed_prefixes),
                split_csv(args.seed_suffixes),
            )
            return

        code = run_retention(
            s3,
            bucket_name,
            keep,
            delimiter,
            prefix=args.prefix,
            delete=args.delete,
            fail_on_empty=args.fail_on_empty,
        )
    except (ClientError, BotoCoreError, DeleteObjectsError) as err:
        print(f"S3 operation failed on bucket '{bucket_name}': {err}", file=sys.stderr)
        raise SystemExit(EXIT_FAILURE)
    if code:
        raise SystemExit(code)
