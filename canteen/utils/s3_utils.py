import os
import uuid

import boto3
from botocore.exceptions import BotoCoreError, ClientError, NoCredentialsError
from flask import current_app
from werkzeug.utils import secure_filename

from ..errors import ValidationError

ALLOWED_PHOTO_EXTENSIONS = {"jpg", "jpeg", "png", "webp"}
PHOTO_FOLDERS = ("menu", "students", "staff")


def public_url(bucket_name, key):
    base_url = current_app.config.get("S3_BASE_URL")
    if not base_url:
        region = current_app.config.get("S3_REGION") or "us-east-1"
        base_url = f"https://{bucket_name}.s3.{region}.amazonaws.com"
    return f"{base_url.rstrip('/')}/{key}"


def upload_file_to_s3(file, key, bucket_name):
    s3 = boto3.client(
        "s3",
        aws_access_key_id=os.getenv("AWS_ACCESS_KEY_ID"),
        aws_secret_access_key=os.getenv("AWS_SECRET_ACCESS_KEY"),
        region_name=current_app.config.get("S3_REGION"),
    )
    extra_args = {"ACL": "public-read"}
    if getattr(file, "mimetype", None):
        extra_args["ContentType"] = file.mimetype

    try:
        s3.upload_fileobj(file, bucket_name, key, ExtraArgs=extra_args)
    except NoCredentialsError:
        raise RuntimeError("AWS credentials not found. Check environment variables.")
    except (BotoCoreError, ClientError) as e:
        current_app.logger.error(f"S3 upload of {key} failed: {e}")
        raise

    return public_url(bucket_name, key)


def upload_photo(file, folder):
    """
    Store an uploaded photo under ``<folder>/`` and return its public URL.
    Only the URL is kept in the database.
    """
    if folder not in PHOTO_FOLDERS:
        raise ValueError(f"Unknown photo folder {folder}")

    filename = secure_filename(file.filename or "")
    extension = filename.rsplit(".", 1)[-1].lower() if "." in filename else ""
    if extension not in ALLOWED_PHOTO_EXTENSIONS:
        raise ValidationError("Photo must be a jpg, jpeg, png or webp file")

    bucket_name = current_app.config.get("S3_BUCKET_NAME")
    if not bucket_name:
        current_app.logger.error("S3_BUCKET_NAME is not configured")
        raise RuntimeError("S3_BUCKET_NAME is not configured")

    key = f"{folder}/{uuid.uuid4().hex}_{filename}"
    return upload_file_to_s3(file, key, bucket_name)
