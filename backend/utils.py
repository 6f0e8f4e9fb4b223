import logging
import os
from typing import Dict, List, Optional, Sequence
from fastapi import HTTPException, status
from sqlalchemy.orm import Session
from models import AdminLog, User
import boto3
from botocore.config import Config

logger = logging.getLogger(__name__)

AWS_REGION = os.environ.get("AWS_REGION")
S3_BUCKET_NAME = os.environ.get("S3_BUCKET_NAME")
S3_ACCESS_KEY = os.environ.get("S3_ACCESS_KEY") or os.environ.get("AWS_ACCESS_KEY_ID")
S3_SECRET_KEY = os.environ.get("S3_SECRET_KEY") or os.environ.get("AWS_SECRET_ACCESS_KEY")

S3_CLIENT = None
if AWS_REGION and S3_BUCKET_NAME and S3_ACCESS_KEY and S3_SECRET_KEY:
    s3_config = Config(signature_version="s3v4", s3={"addressing_style": "virtual"})
    S3_CLIENT = boto3.client(
        "s3",
        region_name=AWS_REGION,
        aws_access_key_id=S3_ACCESS_KEY,
        aws_secret_access_key=S3_SECRET_KEY,
        endpoint_url=f"https://s3.{AWS_REGION}.amazonaws.com",
        config=s3_config,
    )


def log_admin_action(db: Session, admin: Optional[User], action: str, method: Optional[str] = None, path: Optional[str] = None, meta: Optional[dict] = None):
    db.add(AdminLog(
        admin_id=admin.id if admin else None,
        admin_email=admin.email if admin else "",
        action=action,
        method=method,
        path=path,
        meta=meta
    ))
    db.commit()


def _require_s3():
    if not S3_CLIENT or not S3_BUCKET_NAME:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="S3 not configured")
    return S3_CLIENT


def upload_bytes(key: str, data: bytes, content_type: str = "application/octet-stream") -> str:
    client = _require_s3()
    try:
        client.put_object(
            Bucket=S3_BUCKET_NAME,
            Key=key,
            Body=data,
            ContentType=content_type
        )
    except Exception as exc:
        logger.error("S3 upload failed for %s: %s", key, exc)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Upload failed") from exc
    return key


def generate_download_url(key: str, expires_in: int = 3600) -> str:
    client = _require_s3()
    try:
        return client.generate_presigned_url(
            "get_object",
            Params={"Bucket": S3_BUCKET_NAME, "Key": key},
            ExpiresIn=expires_in,
        )
    except Exception as exc:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to create download URL") from exc


def download_bytes(key: str) -> bytes:
    client = _require_s3()
    try:
        response = client.get_object(Bucket=S3_BUCKET_NAME, Key=key)
        return response["Body"].read()
    except Exception as exc:
        logger.error("S3 download failed for %s: %s", key, exc)
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="Download failed") from exc


def try_download_url(key: Optional[str], expires_in: int = 3600) -> Optional[str]:
    if not key:
        return None
    try:
        return generate_download_url(key, expires_in=expires_in)
    except HTTPException:
        return None


def delete_objects(keys: Sequence[str]) -> List[Dict[str, str]]:
    """Delete storage objects, returning one ``{key, error}`` item per failure."""
    keys = [key for key in keys if key]
    if not keys:
        return []
    if not S3_CLIENT or not S3_BUCKET_NAME:
        logger.warning("S3 not configured; %d stored objects left in place", len(keys))
        return [{"key": key, "error": "S3 not configured"} for key in keys]

    failures: List[Dict[str, str]] = []
    for start in range(0, len(keys), 1000):
        chunk = keys[start:start + 1000]
        try:
            response = S3_CLIENT.delete_objects(
                Bucket=S3_BUCKET_NAME,
                Delete={"Objects": [{"Key": key} for key in chunk], "Quiet": True},
            )
        except Exception as exc:
            logger.error("S3 delete failed for %d objects: %s", len(chunk), exc)
            failures.extend({"key": key, "error": str(exc)} for key in chunk)
            continue
        for err in response.get("Errors", []) or []:
            failures.append({"key": err.get("Key", ""), "error": err.get("Message", "delete failed")})
    for failure in failures:
        logger.warning("Failed to delete stored object %s: %s", failure["key"], failure["error"])
    return failures
